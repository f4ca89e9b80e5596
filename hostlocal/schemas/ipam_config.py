from pydantic import BaseModel, Field, RootModel, IPvAnyAddress, IPvAnyNetwork, field_validator, model_validator
from typing import Optional, List, Iterator, Union
import ipaddress


IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def as_ip(value) -> IPAddress:
    """Accept an address object or its textual form."""
    if isinstance(value, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return value
    return ipaddress.ip_address(value)


def last_ip(network) -> IPAddress:
    """Last allocatable address: broadcast - 1 for IPv4, the final address for IPv6."""
    if network.version == 4:
        return network.broadcast_address - 1
    return network.broadcast_address


class Range(BaseModel):
    subnet: IPvAnyNetwork = Field(..., description="Network to allocate from, e.g. 10.1.2.0/24")
    range_start: Optional[IPvAnyAddress] = Field(None, alias="rangeStart")
    range_end: Optional[IPvAnyAddress] = Field(None, alias="rangeEnd")
    gateway: Optional[IPvAnyAddress] = None

    class Config:
        populate_by_name = True

    @field_validator("subnet", mode="before")
    @classmethod
    def validate_subnet(cls, v):
        if isinstance(v, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            network = v
        else:
            if not isinstance(v, str):
                raise ValueError(f"invalid CIDR address: {v!r}")
            try:
                network = ipaddress.ip_network(v, strict=False)
                host = ipaddress.ip_interface(v).ip
            except ValueError:
                raise ValueError(f"invalid CIDR address: {v}")
            if host != network.network_address:
                raise ValueError(
                    f"network has host bits set. For a subnet mask of length "
                    f"{network.prefixlen} the network address is {network.network_address}"
                )
        if network.prefixlen > network.max_prefixlen - 2:
            raise ValueError(f"network {network} too small to allocate from")
        return network

    @model_validator(mode="after")
    def canonicalize(self):
        network = self.subnet

        if self.gateway is None:
            self.gateway = network.network_address + 1

        if self.range_start is not None:
            if not self._in_subnet(self.range_start):
                raise ValueError(f"RangeStart {self.range_start} not in network {network}")
        else:
            self.range_start = network.network_address + 1

        if self.range_end is not None:
            if not self._in_subnet(self.range_end):
                raise ValueError(f"RangeEnd {self.range_end} not in network {network}")
        else:
            self.range_end = last_ip(network)

        if self.range_start > self.range_end:
            raise ValueError(f"RangeStart {self.range_start} is after RangeEnd {self.range_end}")
        return self

    def _in_subnet(self, addr) -> bool:
        return addr.version == self.subnet.version and addr in self.subnet

    def contains(self, addr) -> bool:
        addr = as_ip(addr)
        if not self._in_subnet(addr):
            return False
        return self.range_start <= addr <= self.range_end

    def overlaps(self, other: "Range") -> bool:
        if self.subnet.version != other.subnet.version:
            return False
        return (
            self.contains(other.range_start)
            or self.contains(other.range_end)
            or other.contains(self.range_start)
            or other.contains(self.range_end)
        )

    def __str__(self):
        return f"{self.range_start}-{self.range_end}"


class RangeSet(RootModel[List[Range]]):
    """Ordered group of ranges of one address family, allocated as a single pool."""

    @model_validator(mode="after")
    def validate_ranges(self):
        ranges = self.root
        if not ranges:
            raise ValueError("empty range set")
        if len({r.subnet.version for r in ranges}) > 1:
            raise ValueError("mixed address families")
        for i, r1 in enumerate(ranges):
            for r2 in ranges[i + 1:]:
                if r1.overlaps(r2):
                    raise ValueError(f"subnets {r1.subnet} and {r2.subnet} overlap")
        return self

    def __iter__(self) -> Iterator[Range]:
        return iter(self.root)

    def __len__(self):
        return len(self.root)

    def __getitem__(self, idx) -> Range:
        return self.root[idx]

    def contains(self, addr) -> bool:
        return self.range_for(addr) is not None

    def range_for(self, addr) -> Optional[Range]:
        addr = as_ip(addr)
        for r in self.root:
            if r.contains(addr):
                return r
        return None

    def overlaps(self, other: "RangeSet") -> bool:
        return any(r1.overlaps(r2) for r1 in self.root for r2 in other.root)

    def __str__(self):
        return ",".join(str(r) for r in self.root)


class Route(BaseModel):
    dst: str = Field(..., description="Destination network, e.g. 0.0.0.0/0")
    gw: Optional[str] = None

    class Config:
        extra = "allow"

    @field_validator("dst")
    @classmethod
    def validate_dst(cls, v: str) -> str:
        try:
            return str(ipaddress.ip_network(v, strict=False))
        except ValueError:
            raise ValueError(f"invalid route destination {v}")

    @field_validator("gw")
    @classmethod
    def validate_gw(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        try:
            return str(ipaddress.ip_address(v))
        except ValueError:
            raise ValueError(f"invalid route gateway {v}")


class IPAMConfig(BaseModel):
    type: str = ""
    name: str = ""  # network name, copied from the enclosing network config
    data_dir: Optional[str] = Field(None, alias="dataDir")
    resolv_conf: Optional[str] = Field(None, alias="resolvConf")
    ranges: List[RangeSet] = []
    routes: List[Route] = []
    # explicitly requested addresses, filled in by the config loader
    ip_args: List[IPvAnyAddress] = Field(default_factory=list, exclude=True)

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def promote_legacy_range(cls, data):
        # a single range may be given inline as ipam.subnet/rangeStart/rangeEnd/gateway
        if isinstance(data, dict) and data.get("subnet"):
            data = dict(data)
            legacy = {
                key: data.pop(key)
                for key in ("subnet", "rangeStart", "rangeEnd", "gateway")
                if key in data
            }
            data["ranges"] = [[legacy]] + list(data.get("ranges") or [])
        return data

    @model_validator(mode="after")
    def validate_range_sets(self):
        if not self.ranges:
            raise ValueError("no IP ranges specified")
        for i, a in enumerate(self.ranges):
            for j in range(i + 1, len(self.ranges)):
                if a.overlaps(self.ranges[j]):
                    raise ValueError(f"range set {i} overlaps with {j}")
        return self


class CNIArgsIPs(BaseModel):
    ips: List[str] = []


class NetArgs(BaseModel):
    cni: Optional[CNIArgsIPs] = None


class RuntimeConfig(BaseModel):
    ips: List[str] = []


class NetConf(BaseModel):
    cni_version: str = Field("", alias="cniVersion")
    name: str = ""
    ipam: Optional[IPAMConfig] = None
    args: Optional[NetArgs] = None
    runtime_config: Optional[RuntimeConfig] = Field(None, alias="runtimeConfig")

    class Config:
        populate_by_name = True
