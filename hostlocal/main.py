"""
host-local IPAM plugin entry point.

The container runtime executes the plugin once per operation. The operation
and the container identity arrive in CNI_* environment variables, the network
configuration on stdin. The result (or a CNI error document) is written to
stdout; logs never go there.

| CNI_COMMAND | Behaviour |
|-------------|-----------|
| ADD | Allocate one address per range set, print the result |
| CHECK | Verify the container interface holds a lease |
| DEL | Release the container interface's leases |
| VERSION | Print the supported CNI versions |
"""

import json
import logging
import sys
from typing import Optional

from .config import CNIEnv, get_settings
from .errors import (
    CNIError,
    DecodeError,
    ERR_INTERNAL,
    IncompatibleVersionError,
    InvalidEnvironmentError,
)
from .log import init_logging
from .schemas.cmd_args import CmdArgs
from .schemas.result import IMPLEMENTED_SPEC_VERSION, SUPPORTED_VERSIONS, version_tuple
from .services.ipam import IPAMService

logger = logging.getLogger(__name__)

COMMANDS = ("ADD", "CHECK", "DEL")


def version_info() -> dict:
    return {
        "cniVersion": IMPLEMENTED_SPEC_VERSION,
        "supportedVersions": list(SUPPORTED_VERSIONS),
    }


def config_version(stdin_data: bytes) -> str:
    """cniVersion of the network config; a missing version means 0.1.0."""
    try:
        raw = json.loads(stdin_data)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError("decoding version from network config", str(e))
    if not isinstance(raw, dict):
        raise DecodeError("decoding version from network config", "expected a JSON object")

    version = raw.get("cniVersion") or "0.1.0"
    if version not in SUPPORTED_VERSIONS:
        raise IncompatibleVersionError(
            "incompatible CNI versions",
            f"config is {version!r}, plugin supports {SUPPORTED_VERSIONS}",
        )
    return version


def load_cmd_args(command: str, env: CNIEnv, stdin_data: bytes) -> CmdArgs:
    required = [("CNI_CONTAINERID", env.containerid), ("CNI_IFNAME", env.ifname)]
    if command in ("ADD", "CHECK"):
        required.append(("CNI_NETNS", env.netns))

    missing = [name for name, value in required if not value]
    if missing:
        raise InvalidEnvironmentError(f"required env variables [{','.join(missing)}] missing")

    return CmdArgs(
        container_id=env.containerid,
        netns=env.netns or "",
        if_name=env.ifname,
        args=env.args,
        path=env.path or "",
        stdin_data=stdin_data,
    )


def dispatch(env: CNIEnv, stdin_data: bytes) -> Optional[dict]:
    """Run one command. Returns the document to print, if any."""
    command = (env.command or "").upper()
    if not command:
        raise InvalidEnvironmentError("required env variables [CNI_COMMAND] missing")
    if command == "VERSION":
        return version_info()
    if command not in COMMANDS:
        raise InvalidEnvironmentError(f"unknown CNI_COMMAND: {env.command}")

    args = load_cmd_args(command, env, stdin_data)
    version = config_version(stdin_data)

    if command == "ADD":
        result = IPAMService.add(args)
        return result.to_dict(version)

    if command == "CHECK":
        if version_tuple(version) < (0, 4, 0):
            raise IncompatibleVersionError("config version does not allow CHECK")
        IPAMService.check(args)
        return None

    IPAMService.delete(args)
    return None


def _error_version(stdin_data: bytes) -> str:
    try:
        return config_version(stdin_data)
    except CNIError:
        return IMPLEMENTED_SPEC_VERSION


def _print(doc: dict, stdout) -> None:
    json.dump(doc, stdout)
    stdout.write("\n")
    stdout.flush()


def main(stdin=None, stdout=None) -> int:
    stdin = stdin if stdin is not None else sys.stdin.buffer
    stdout = stdout if stdout is not None else sys.stdout

    init_logging(get_settings())
    env = CNIEnv()
    stdin_data = stdin.read()

    try:
        doc = dispatch(env, stdin_data)
    except CNIError as e:
        logger.error("%s %s/%s failed: %s", env.command, env.containerid, env.ifname, e.msg)
        _print(e.to_dict(_error_version(stdin_data)), stdout)
        return 1
    except Exception as e:
        logger.exception("%s %s/%s failed", env.command, env.containerid, env.ifname)
        _print(CNIError(str(e), code=ERR_INTERNAL).to_dict(_error_version(stdin_data)), stdout)
        return 1

    if doc is not None:
        _print(doc, stdout)
    return 0


def run():
    sys.exit(main())
