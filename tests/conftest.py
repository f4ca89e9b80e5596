import json

import pytest

from hostlocal.schemas.cmd_args import CmdArgs
from hostlocal.services.store import Store


NETWORK = "testnet"


@pytest.fixture
def data_dir(tmp_path):
    return str(tmp_path / "networks")


@pytest.fixture
def make_conf(data_dir):
    """Network config dict with one /24 range set unless ranges are given."""

    def _make(ranges=None, cni_version="1.0.0", **ipam_extra):
        ipam = {
            "type": "host-local",
            "dataDir": data_dir,
            "ranges": ranges if ranges is not None else [[{"subnet": "10.1.2.0/24"}]],
        }
        ipam.update(ipam_extra)
        return {"cniVersion": cni_version, "name": NETWORK, "ipam": ipam}

    return _make


@pytest.fixture
def make_args():
    def _make(conf, container_id="c1", if_name="eth0", args=""):
        return CmdArgs(
            container_id=container_id,
            netns="/var/run/netns/test",
            if_name=if_name,
            args=args,
            stdin_data=json.dumps(conf).encode(),
        )

    return _make


@pytest.fixture
def store(data_dir):
    s = Store.open(NETWORK, data_dir)
    yield s
    s.close()


@pytest.fixture
def lease_count(data_dir):
    """Number of leases currently persisted for the test network."""

    def _count(container_id=None):
        with Store.open(NETWORK, data_dir) as s:
            leases = s.leases()
        if container_id is not None:
            leases = [lease for lease in leases if lease.container_id == container_id]
        return len(leases)

    return _count
