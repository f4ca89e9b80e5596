"""Error types carried back to the runtime as CNI error documents."""

from typing import Optional


ERR_INCOMPATIBLE_CNI_VERSION = 1
ERR_UNSUPPORTED_FIELD = 2
ERR_UNKNOWN_CONTAINER = 3
ERR_INVALID_ENVIRONMENT_VARIABLES = 4
ERR_IO_FAILURE = 5
ERR_DECODING_FAILURE = 6
ERR_INVALID_NETWORK_CONFIG = 7
ERR_TRY_AGAIN_LATER = 11
ERR_INTERNAL = 999


class CNIError(Exception):
    code = ERR_INTERNAL

    def __init__(self, msg: str, details: str = "", code: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.details = details
        if code is not None:
            self.code = code

    def to_dict(self, cni_version: str) -> dict:
        doc = {"cniVersion": cni_version, "code": self.code, "msg": self.msg}
        if self.details:
            doc["details"] = self.details
        return doc


class IncompatibleVersionError(CNIError):
    code = ERR_INCOMPATIBLE_CNI_VERSION


class InvalidEnvironmentError(CNIError):
    code = ERR_INVALID_ENVIRONMENT_VARIABLES


class IOFailureError(CNIError):
    code = ERR_IO_FAILURE


class DecodeError(CNIError):
    code = ERR_DECODING_FAILURE


class InvalidConfigError(CNIError):
    code = ERR_INVALID_NETWORK_CONFIG


class ArgsError(CNIError):
    """Malformed CNI_ARGS string."""


class StoreError(IOFailureError):
    """The lease store could not be opened or updated."""


class AllocationError(CNIError):
    """An address could not be allocated, released or found."""
