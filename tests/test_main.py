import io
import json

import pytest

from hostlocal import main as entry
from hostlocal.services.ipam import IPAMService


@pytest.fixture
def cni_env(monkeypatch):
    """Set the CNI_* variables for one invocation, clearing any left over."""
    for name in ("COMMAND", "CONTAINERID", "NETNS", "IFNAME", "ARGS", "PATH"):
        monkeypatch.delenv("CNI_" + name, raising=False)

    def _set(command, containerid="c1", netns="/var/run/netns/test", ifname="eth0", args=None):
        values = {
            "CNI_COMMAND": command,
            "CNI_CONTAINERID": containerid,
            "CNI_NETNS": netns,
            "CNI_IFNAME": ifname,
            "CNI_ARGS": args,
        }
        for name, value in values.items():
            if value is None:
                monkeypatch.delenv(name, raising=False)
            else:
                monkeypatch.setenv(name, value)

    return _set


def invoke(conf=None):
    stdin = io.BytesIO(json.dumps(conf).encode() if conf is not None else b"")
    stdout = io.StringIO()
    rc = entry.main(stdin=stdin, stdout=stdout)
    out = stdout.getvalue()
    return rc, json.loads(out) if out else None


def test_version(cni_env):
    cni_env("VERSION", containerid=None, netns=None, ifname=None)

    rc, doc = invoke()

    assert rc == 0
    assert doc == {"cniVersion": "1.0.0", "supportedVersions": ["0.3.0", "0.3.1", "0.4.0", "1.0.0"]}


def test_missing_command(cni_env):
    rc, doc = invoke()

    assert rc == 1
    assert doc["code"] == 4
    assert doc["cniVersion"] == "1.0.0"


def test_unknown_command(cni_env, make_conf):
    cni_env("FROB")

    rc, doc = invoke(make_conf())

    assert rc == 1
    assert doc["code"] == 4
    assert doc["msg"] == "unknown CNI_COMMAND: FROB"


def test_add(cni_env, make_conf):
    cni_env("ADD")

    rc, doc = invoke(make_conf())

    assert rc == 0
    assert doc == {
        "cniVersion": "1.0.0",
        "ips": [{"address": "10.1.2.2/24", "gateway": "10.1.2.1"}],
    }


def test_add_older_version(cni_env, make_conf):
    cni_env("ADD")

    rc, doc = invoke(make_conf(cni_version="0.4.0"))

    assert rc == 0
    assert doc["cniVersion"] == "0.4.0"
    assert doc["ips"][0]["version"] == "4"


def test_add_unsupported_version(cni_env, make_conf):
    cni_env("ADD")

    rc, doc = invoke(make_conf(cni_version="0.2.0"))

    assert rc == 1
    assert doc["code"] == 1


def test_add_missing_ifname(cni_env, make_conf):
    cni_env("ADD", ifname=None)

    rc, doc = invoke(make_conf())

    assert rc == 1
    assert doc["code"] == 4
    assert doc["msg"] == "required env variables [CNI_IFNAME] missing"


def test_add_malformed_config(cni_env):
    cni_env("ADD")

    stdout = io.StringIO()
    rc = entry.main(stdin=io.BytesIO(b"{not json"), stdout=stdout)

    assert rc == 1
    assert json.loads(stdout.getvalue())["code"] == 6


def test_add_twice_fails(cni_env, make_conf):
    cni_env("ADD")
    invoke(make_conf())

    rc, doc = invoke(make_conf())

    assert rc == 1
    assert doc["code"] == 999
    assert doc["msg"].startswith("failed to allocate for range 0:")


def test_check(cni_env, make_conf):
    cni_env("ADD")
    invoke(make_conf())
    cni_env("CHECK")

    rc, doc = invoke(make_conf())

    assert rc == 0
    assert doc is None


def test_check_needs_newer_config_version(cni_env, make_conf):
    cni_env("CHECK")

    rc, doc = invoke(make_conf(cni_version="0.3.1"))

    assert rc == 1
    assert doc["code"] == 1
    assert doc["cniVersion"] == "0.3.1"


def test_del_without_netns(cni_env, make_conf, lease_count):
    cni_env("ADD")
    invoke(make_conf())
    cni_env("DEL", netns=None)

    rc, doc = invoke(make_conf())

    assert rc == 0
    assert doc is None
    assert lease_count() == 0


def test_unexpected_error(cni_env, make_conf, monkeypatch):
    cni_env("ADD")

    def broken(args):
        raise RuntimeError("boom")

    monkeypatch.setattr(IPAMService, "add", staticmethod(broken))

    rc, doc = invoke(make_conf())

    assert rc == 1
    assert doc == {"cniVersion": "1.0.0", "code": 999, "msg": "boom"}
