import ipaddress

import pytest
from pydantic import ValidationError

from hostlocal.schemas.ipam_config import IPAMConfig, Range, RangeSet, Route


class TestRange:

    def test_defaults_ipv4(self):
        r = Range.model_validate({"subnet": "10.1.2.0/24"})

        assert r.range_start == ipaddress.ip_address("10.1.2.1")
        assert r.range_end == ipaddress.ip_address("10.1.2.254")
        assert r.gateway == ipaddress.ip_address("10.1.2.1")
        assert str(r) == "10.1.2.1-10.1.2.254"

    def test_defaults_ipv6(self):
        r = Range.model_validate({"subnet": "2001:db8:1::/64"})

        assert r.range_start == ipaddress.ip_address("2001:db8:1::1")
        assert r.range_end == ipaddress.ip_address("2001:db8:1::ffff:ffff:ffff:ffff")

    def test_explicit_bounds(self):
        r = Range.model_validate({
            "subnet": "10.1.2.0/24",
            "rangeStart": "10.1.2.10",
            "rangeEnd": "10.1.2.20",
            "gateway": "10.1.2.254",
        })

        assert r.contains("10.1.2.10")
        assert r.contains("10.1.2.20")
        assert not r.contains("10.1.2.9")
        assert not r.contains("10.1.2.21")
        assert not r.contains("10.1.3.15")
        assert not r.contains("2001:db8::1")

    def test_host_bits_set(self):
        with pytest.raises(ValidationError, match="host bits set"):
            Range.model_validate({"subnet": "10.1.2.5/24"})

    @pytest.mark.parametrize("subnet", ["10.1.2.0/31", "10.1.2.1/32", "2001:db8::/127"])
    def test_network_too_small(self, subnet):
        with pytest.raises(ValidationError, match="too small to allocate from"):
            Range.model_validate({"subnet": subnet})

    def test_invalid_subnet(self):
        with pytest.raises(ValidationError, match="invalid CIDR address"):
            Range.model_validate({"subnet": "not-a-network"})

    def test_range_start_outside_subnet(self):
        with pytest.raises(ValidationError, match="RangeStart 10.1.3.1 not in network"):
            Range.model_validate({"subnet": "10.1.2.0/24", "rangeStart": "10.1.3.1"})

    def test_range_end_outside_subnet(self):
        with pytest.raises(ValidationError, match="RangeEnd"):
            Range.model_validate({"subnet": "10.1.2.0/24", "rangeEnd": "2001:db8::5"})

    def test_start_after_end(self):
        with pytest.raises(ValidationError, match="is after RangeEnd"):
            Range.model_validate({"subnet": "10.1.2.0/24", "rangeStart": "10.1.2.50", "rangeEnd": "10.1.2.40"})

    def test_overlaps(self):
        a = Range.model_validate({"subnet": "10.1.2.0/24", "rangeStart": "10.1.2.10", "rangeEnd": "10.1.2.20"})
        b = Range.model_validate({"subnet": "10.1.2.0/24", "rangeStart": "10.1.2.20", "rangeEnd": "10.1.2.30"})
        c = Range.model_validate({"subnet": "10.1.2.0/24", "rangeStart": "10.1.2.21", "rangeEnd": "10.1.2.30"})

        assert a.overlaps(b)
        assert b.overlaps(a)
        assert not a.overlaps(c)


class TestRangeSet:

    def test_contains_and_range_for(self):
        rs = RangeSet.model_validate([
            {"subnet": "10.1.2.0/24"},
            {"subnet": "10.1.4.0/24"},
        ])

        assert len(rs) == 2
        assert rs.contains("10.1.4.7")
        assert not rs.contains("10.1.3.7")
        assert rs.range_for("10.1.4.7") is rs[1]
        assert rs.range_for("10.1.3.7") is None
        assert str(rs) == "10.1.2.1-10.1.2.254,10.1.4.1-10.1.4.254"

    def test_empty(self):
        with pytest.raises(ValidationError, match="empty range set"):
            RangeSet.model_validate([])

    def test_mixed_families(self):
        with pytest.raises(ValidationError, match="mixed address families"):
            RangeSet.model_validate([{"subnet": "10.1.2.0/24"}, {"subnet": "2001:db8::/64"}])

    def test_overlapping_members(self):
        with pytest.raises(ValidationError, match="overlap"):
            RangeSet.model_validate([{"subnet": "10.1.2.0/24"}, {"subnet": "10.1.0.0/16"}])


class TestIPAMConfig:

    def test_ranges(self):
        conf = IPAMConfig.model_validate({
            "type": "host-local",
            "ranges": [[{"subnet": "10.1.2.0/24"}], [{"subnet": "2001:db8::/64"}]],
            "dataDir": "/tmp/x",
            "resolvConf": "/etc/resolv.conf",
        })

        assert len(conf.ranges) == 2
        assert conf.data_dir == "/tmp/x"
        assert conf.resolv_conf == "/etc/resolv.conf"
        assert conf.ip_args == []

    def test_legacy_range_is_prepended(self):
        conf = IPAMConfig.model_validate({
            "type": "host-local",
            "subnet": "10.1.2.0/24",
            "rangeStart": "10.1.2.100",
            "gateway": "10.1.2.254",
            "ranges": [[{"subnet": "10.1.3.0/24"}]],
        })

        assert len(conf.ranges) == 2
        assert conf.ranges[0][0].range_start == ipaddress.ip_address("10.1.2.100")
        assert conf.ranges[0][0].gateway == ipaddress.ip_address("10.1.2.254")
        assert str(conf.ranges[1][0].subnet) == "10.1.3.0/24"

    def test_no_ranges(self):
        with pytest.raises(ValidationError, match="no IP ranges specified"):
            IPAMConfig.model_validate({"type": "host-local"})

    def test_range_sets_overlap(self):
        with pytest.raises(ValidationError, match="range set 0 overlaps with 1"):
            IPAMConfig.model_validate({
                "type": "host-local",
                "ranges": [[{"subnet": "10.1.2.0/24"}], [{"subnet": "10.1.2.0/25"}]],
            })


class TestRoute:

    def test_normalized(self):
        route = Route.model_validate({"dst": "10.9.0.5/16", "gw": "10.1.2.1"})

        assert route.dst == "10.9.0.0/16"
        assert route.gw == "10.1.2.1"

    def test_extra_fields_pass_through(self):
        route = Route.model_validate({"dst": "0.0.0.0/0", "mtu": 1400})

        assert route.model_dump(exclude_none=True) == {"dst": "0.0.0.0/0", "mtu": 1400}

    def test_invalid_dst(self):
        with pytest.raises(ValidationError, match="invalid route destination"):
            Route.model_validate({"dst": "nowhere"})
