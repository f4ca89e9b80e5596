from pydantic import BaseModel, Field, IPvAnyAddress, IPvAnyInterface
from typing import Optional, List, Tuple

from .ipam_config import Route


IMPLEMENTED_SPEC_VERSION = "1.0.0"
SUPPORTED_VERSIONS = ["0.3.0", "0.3.1", "0.4.0", "1.0.0"]


def version_tuple(version: str) -> Tuple[int, ...]:
    try:
        return tuple(int(part) for part in version.split("."))
    except ValueError:
        raise ValueError(f"invalid version {version!r}")


class IPConfig(BaseModel):
    address: IPvAnyInterface  # e.g. 10.1.2.3/24
    gateway: Optional[IPvAnyAddress] = None
    interface: Optional[int] = None

    def to_dict(self, cni_version: str) -> dict:
        doc = {}
        # results before 1.0.0 tag every address with its family
        if version_tuple(cni_version) < (1, 0, 0):
            doc["version"] = str(self.address.version)
        if self.interface is not None:
            doc["interface"] = self.interface
        doc["address"] = str(self.address)
        if self.gateway is not None:
            doc["gateway"] = str(self.gateway)
        return doc


class DNS(BaseModel):
    nameservers: List[str] = []
    domain: str = ""
    search: List[str] = []
    options: List[str] = []

    def is_empty(self) -> bool:
        return not (self.nameservers or self.domain or self.search or self.options)

    def to_dict(self) -> dict:
        return {key: value for key, value in self.model_dump().items() if value}


class Result(BaseModel):
    """Document printed on a successful ADD."""

    cni_version: str = Field(IMPLEMENTED_SPEC_VERSION, alias="cniVersion")
    ips: List[IPConfig] = []
    routes: List[Route] = []
    dns: DNS = Field(default_factory=DNS)

    class Config:
        populate_by_name = True

    def to_dict(self, cni_version: Optional[str] = None) -> dict:
        version = cni_version or self.cni_version
        if version not in SUPPORTED_VERSIONS:
            raise ValueError(f"cannot convert result to unsupported version {version!r}")

        doc = {"cniVersion": version}
        if self.ips:
            doc["ips"] = [ip.to_dict(version) for ip in self.ips]
        if self.routes:
            doc["routes"] = [route.model_dump(exclude_none=True) for route in self.routes]
        if not self.dns.is_empty():
            doc["dns"] = self.dns.to_dict()
        return doc
