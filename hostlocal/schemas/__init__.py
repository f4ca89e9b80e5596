from .ipam_config import (
    Range,
    RangeSet,
    Route,
    IPAMConfig,
    NetConf,
)
from .result import (
    IPConfig,
    DNS,
    Result,
    IMPLEMENTED_SPEC_VERSION,
    SUPPORTED_VERSIONS,
)
from .cmd_args import CmdArgs

__all__ = [
    "Range",
    "RangeSet",
    "Route",
    "IPAMConfig",
    "NetConf",
    "IPConfig",
    "DNS",
    "Result",
    "IMPLEMENTED_SPEC_VERSION",
    "SUPPORTED_VERSIONS",
    "CmdArgs",
]
