import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

from ..errors import AllocationError, ArgsError
from ..schemas.cmd_args import CmdArgs
from ..schemas.ipam_config import IPAddress, RangeSet
from ..schemas.result import IPConfig, Result
from .allocator import IPAllocator
from .args import resolve_pod_ns_and_name
from .config_loader import load_ipam_config
from .dns import parse_resolv_conf
from .store import Store

logger = logging.getLogger(__name__)


class Allocation(NamedTuple):
    range_id: int
    allocator: IPAllocator
    ip_config: IPConfig


class IPAMService:
    """
    ADD, CHECK and DEL workflows of the host-local IPAM plugin.

    ADD is all-or-nothing across range sets: one address is taken from every
    range set, and on any failure every address taken so far in the same
    invocation is released again before the error is returned.

    DEL is best-effort: every range set is released even if an earlier one
    fails, and the errors are reported together afterwards.

    CHECK only confirms that the container interface holds some lease.
    """

    @staticmethod
    def add(args: CmdArgs) -> Result:
        ipam_conf, conf_version = load_ipam_config(args.stdin_data, args.args)
        pod_ns, pod_name = IPAMService.resolve_pod(args.args)

        result = Result()
        if conf_version:
            result.cni_version = conf_version

        with Store.open(ipam_conf.name, ipam_conf.data_dir) as store:
            # keyed by canonical text form, entries are removed as range sets claim them
            requested_ips: Dict[str, IPAddress] = {str(ip): ip for ip in ipam_conf.ip_args}
            allocations: List[Allocation] = []

            for idx, rangeset in enumerate(ipam_conf.ranges):
                allocator = IPAllocator(rangeset, store, idx)

                requested_ip = IPAMService.claim_requested_ip(requested_ips, rangeset)

                try:
                    ip_conf = allocator.get_by_pod_ns_and_name(
                        args.container_id, args.if_name, requested_ip, pod_ns, pod_name
                    )
                except Exception as e:
                    IPAMService.rollback(allocations, args)
                    raise AllocationError(f"failed to allocate for range {idx}: {e}") from e

                logger.info(
                    "allocated %s to %s/%s from range %d",
                    ip_conf.address, args.container_id, args.if_name, idx,
                )
                allocations.append(Allocation(idx, allocator, ip_conf))
                result.ips.append(ip_conf)

            if requested_ips:
                IPAMService.rollback(allocations, args)
                raise AllocationError(
                    "failed to allocate all requested IPs: " + " ".join(requested_ips)
                )

            result.routes = list(ipam_conf.routes)
            if ipam_conf.resolv_conf:
                try:
                    result.dns = parse_resolv_conf(ipam_conf.resolv_conf)
                except Exception:
                    IPAMService.rollback(allocations, args)
                    raise

        return result

    @staticmethod
    def check(args: CmdArgs) -> None:
        ipam_conf, _ = load_ipam_config(args.stdin_data, args.args)

        # any lease of the container interface will do, whatever its address
        with Store.open(ipam_conf.name, ipam_conf.data_dir) as store:
            with store.locked():
                found = store.find_by_id(args.container_id, args.if_name)

        if not found:
            raise AllocationError(
                f"host-local: Failed to find address added by container {args.container_id}"
            )

    @staticmethod
    def delete(args: CmdArgs) -> None:
        ipam_conf, _ = load_ipam_config(args.stdin_data, args.args)

        errors: List[str] = []
        with Store.open(ipam_conf.name, ipam_conf.data_dir) as store:
            for idx, rangeset in enumerate(ipam_conf.ranges):
                allocator = IPAllocator(rangeset, store, idx)
                try:
                    allocator.release(args.container_id, args.if_name)
                except Exception as e:
                    logger.warning(
                        "failed to release %s/%s from range %d: %s",
                        args.container_id, args.if_name, idx, e,
                    )
                    errors.append(str(e))

        if errors:
            raise AllocationError(";".join(errors))
        logger.info("released %s/%s", args.container_id, args.if_name)

    @staticmethod
    def claim_requested_ip(requested_ips: Dict[str, IPAddress], rangeset: RangeSet) -> Optional[IPAddress]:
        """Take the first requested address inside rangeset out of requested_ips."""
        for key, ip in requested_ips.items():
            if rangeset.contains(ip):
                del requested_ips[key]
                return ip
        return None

    @staticmethod
    def resolve_pod(env_args: str) -> Tuple[str, str]:
        try:
            return resolve_pod_ns_and_name(env_args)
        except ArgsError as e:
            raise ArgsError(f"failed to get pod ns/name from env args: {e}") from e

    @staticmethod
    def rollback(allocations: List[Allocation], args: CmdArgs) -> None:
        """Release what this invocation allocated. Failures are logged, not raised."""
        for alloc in allocations:
            try:
                alloc.allocator.release(args.container_id, args.if_name)
            except Exception as e:
                logger.warning(
                    "rollback: failed to release %s from range %d: %s",
                    alloc.ip_config.address, alloc.range_id, e,
                )
