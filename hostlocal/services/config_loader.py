import ipaddress
import json
import logging
from typing import List, Optional, Tuple

from pydantic import ValidationError

from ..config import Settings, get_settings
from ..errors import ArgsError, DecodeError, InvalidConfigError
from ..schemas.ipam_config import IPAMConfig, IPAddress, NetConf
from .args import POD_NAME_KEY, POD_NAMESPACE_KEY, parse_args

logger = logging.getLogger(__name__)

KNOWN_ENV_ARGS = {
    "IgnoreUnknown",
    "IP",
    POD_NAMESPACE_KEY,
    POD_NAME_KEY,
    "K8S_POD_INFRA_CONTAINER_ID",
    "K8S_POD_UID",
}


def parse_requested_ip(value: str) -> IPAddress:
    """Parse "10.1.2.3" or "10.1.2.3/24"; the prefix length is dropped."""
    try:
        return ipaddress.ip_interface(value.strip()).ip
    except ValueError:
        raise InvalidConfigError(f'invalid IP "{value}"')


def ip_args_from_env(env_args: str) -> List[IPAddress]:
    pairs = parse_args(env_args)

    ignore_unknown = any(
        key == "IgnoreUnknown" and value.lower() in ("1", "true")
        for key, value in pairs
    )
    unknown = [key for key, _ in pairs if key not in KNOWN_ENV_ARGS]
    if unknown and not ignore_unknown:
        raise ArgsError(f"ARGS: unknown args {unknown}")

    ips = []
    for key, value in pairs:
        if key == "IP" and value:
            ips.extend(parse_requested_ip(item) for item in value.split(","))
    return ips


def _validation_message(e: ValidationError) -> str:
    err = e.errors()[0]
    msg = err["msg"]
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    loc = ".".join(str(part) for part in err["loc"])
    return f"{loc}: {msg}" if loc else msg


def load_ipam_config(
    stdin_data: bytes,
    env_args: str,
    settings: Optional[Settings] = None,
) -> Tuple[IPAMConfig, str]:
    """
    Decode the network configuration handed to the plugin on stdin.

    Returns the IPAM section, completed with the network name, data directory
    and requested addresses, together with the config's cniVersion.
    Requested addresses come from CNI_ARGS (IP=...), args.cni.ips and
    runtimeConfig.ips, in that order.
    """
    settings = settings or get_settings()

    try:
        raw = json.loads(stdin_data)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError("failed to decode network configuration", str(e))
    if not isinstance(raw, dict):
        raise DecodeError("failed to decode network configuration", "expected a JSON object")

    try:
        conf = NetConf.model_validate(raw)
    except ValidationError as e:
        raise InvalidConfigError(_validation_message(e), str(e))

    if conf.ipam is None:
        raise InvalidConfigError("IPAM config missing 'ipam' key")
    ipam = conf.ipam

    requested = ip_args_from_env(env_args)
    if conf.args is not None and conf.args.cni is not None:
        requested.extend(parse_requested_ip(ip) for ip in conf.args.cni.ips)
    if conf.runtime_config is not None:
        requested.extend(parse_requested_ip(ip) for ip in conf.runtime_config.ips)

    ipam.ip_args = requested
    ipam.name = conf.name
    if not ipam.data_dir:
        ipam.data_dir = settings.data_dir

    logger.debug(
        "loaded ipam config for network %s: %d range set(s), %d requested address(es)",
        ipam.name, len(ipam.ranges), len(requested),
    )
    return ipam, conf.cni_version
