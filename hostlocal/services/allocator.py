import ipaddress
import logging
from typing import Iterator, Optional, Tuple

from ..errors import AllocationError
from ..schemas.ipam_config import IPAddress, Range, RangeSet, as_ip
from ..schemas.result import IPConfig
from .store import Store

logger = logging.getLogger(__name__)


class IPAllocator:
    """
    Allocates addresses of one range set out of the lease store.

    Every range set of the IPAM config gets its own allocator, identified by
    its position in the config (range_id). That position partitions the
    store: leases and the round-robin cursor are kept per range_id.

    Allocation Logic:
    - A requested address is reserved as-is, or the call fails
    - Otherwise candidates are tried in order, starting right after the
      address handed out last for this range_id and wrapping around
    - Gateways are never handed out
    - A container interface gets at most one address per range set
    """

    def __init__(self, rangeset: RangeSet, store: Store, range_id: int):
        self.rangeset = rangeset
        self.store = store
        self.range_id = range_id

    def get(
        self,
        container_id: str,
        if_name: str,
        requested_ip: Optional[IPAddress] = None,
        pod_ns: str = "",
        pod_name: str = "",
    ) -> IPConfig:
        with self.store.locked():
            return self._get(container_id, if_name, requested_ip, pod_ns, pod_name)

    def get_by_pod_ns_and_name(
        self,
        container_id: str,
        if_name: str,
        requested_ip: Optional[IPAddress],
        pod_ns: str,
        pod_name: str,
    ) -> IPConfig:
        """
        Like get(), but a pod that already holds a lease in this range set
        gets the same address back, re-bound to the new container.

        The lease is reused only when no other address was requested.
        """
        with self.store.locked():
            if pod_ns and pod_name:
                lease = self.store.get_by_pod(pod_ns, pod_name, self.range_id)
                if lease is not None and (requested_ip is None or str(requested_ip) == lease.address):
                    address = as_ip(lease.address)
                    r = self.rangeset.range_for(address)
                    if r is not None:
                        if (lease.container_id, lease.if_name) != (container_id, if_name):
                            logger.info(
                                "reusing %s of pod %s/%s for %s/%s (was %s/%s)",
                                address, pod_ns, pod_name, container_id, if_name,
                                lease.container_id, lease.if_name,
                            )
                            self.store.reassign(lease, container_id, if_name)
                        return self._ip_config(r, address)
            return self._get(container_id, if_name, requested_ip, pod_ns, pod_name)

    def release(self, container_id: str, if_name: str) -> None:
        """Release the address held in this range set. Nothing held is not an error."""
        with self.store.locked():
            self.store.release_by_id(container_id, if_name, self.range_id)

    def _get(self, container_id, if_name, requested_ip, pod_ns, pod_name) -> IPConfig:
        if requested_ip is not None:
            requested_ip = as_ip(requested_ip)
            r = self.rangeset.range_for(requested_ip)
            if r is None:
                raise AllocationError(f"{requested_ip} not in range set {self.rangeset}")
            if requested_ip == r.gateway:
                raise AllocationError(f"requested ip {requested_ip} is subnet's gateway")

            if not self.store.reserve(container_id, if_name, requested_ip, self.range_id, pod_ns, pod_name):
                raise AllocationError(
                    f"requested IP address {requested_ip} is not available in range set {self.rangeset}"
                )
            return self._ip_config(r, requested_ip)

        existing = self.store.get_by_id(container_id, if_name, self.range_id)
        if existing:
            raise AllocationError(
                f"{existing[0]} has been allocated to {container_id}, duplicate allocation is not allowed"
            )

        taken = self.store.allocated_addresses()
        for r, candidate in self._candidates():
            if str(candidate) in taken:
                continue
            if self.store.reserve(container_id, if_name, candidate, self.range_id, pod_ns, pod_name):
                logger.debug("reserved %s for %s/%s in range %d", candidate, container_id, if_name, self.range_id)
                return self._ip_config(r, candidate)

        raise AllocationError(f"no IP addresses available in range set: {self.rangeset}")

    def _candidates(self) -> Iterator[Tuple[Range, IPAddress]]:
        """
        Walk every address of the range set once, round-robin.

        The walk starts after the last address reserved for this range_id
        (or at the first range when that address is gone from the config)
        and ends on that address itself.
        """
        ranges = list(self.rangeset)
        start_idx, last = 0, None

        last_reserved = self.store.last_reserved_ip(self.range_id)
        if last_reserved is not None:
            last_reserved = as_ip(last_reserved)
            for idx, r in enumerate(ranges):
                if r.contains(last_reserved):
                    start_idx, last = idx, last_reserved
                    break

        order = ranges[start_idx:] + ranges[:start_idx]
        if last is not None:
            # come back to the starting range for the addresses up to `last`
            order.append(ranges[start_idx])

        for pos, r in enumerate(order):
            first, stop = r.range_start, r.range_end
            if last is not None and pos == 0:
                if last == r.range_end:
                    continue
                first = last + 1
            if last is not None and pos == len(order) - 1:
                stop = last

            addr = first
            while True:
                if addr != r.gateway:
                    yield r, addr
                if addr >= stop:
                    break
                addr += 1

    @staticmethod
    def _ip_config(r: Range, address: IPAddress) -> IPConfig:
        return IPConfig(
            address=ipaddress.ip_interface(f"{address}/{r.subnet.prefixlen}"),
            gateway=r.gateway,
        )
