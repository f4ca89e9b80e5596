import fcntl
import logging
import os
from contextlib import contextmanager
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..database import create_db_engine, create_session_factory, create_tables
from ..errors import StoreError
from ..models.lease import Lease, LastReservedIP

logger = logging.getLogger(__name__)

LOCK_FILE = "lock"
DB_FILE = "leases.db"


class Store:
    """
    Lease store for one network, kept in <data_dir>/<network>/.

    Leases live in a SQLite database next to a lock file. Plugin processes
    running concurrently serialize every read-modify-write sequence by
    holding an exclusive flock on that file (see locked()).

    A store is opened once per invocation and must be closed; it is a
    context manager for that purpose.
    """

    def __init__(self, network: str, data_dir: str):
        self.network = network
        self.directory = os.path.join(data_dir, network)
        self.db = None
        self._engine = None
        self._lock_fd = None

    @classmethod
    def open(cls, network: str, data_dir: str) -> "Store":
        store = cls(network, data_dir)
        try:
            os.makedirs(store.directory, mode=0o755, exist_ok=True)
            store._lock_fd = os.open(
                os.path.join(store.directory, LOCK_FILE), os.O_RDWR | os.O_CREAT, 0o644
            )
            store._engine = create_db_engine(os.path.join(store.directory, DB_FILE))
            with store.locked():
                create_tables(store._engine)
            store.db = create_session_factory(store._engine)()
        except (OSError, SQLAlchemyError, StoreError) as e:
            store.close()
            raise StoreError(f"failed to open store for network {network}: {e}") from e
        return store

    def close(self) -> None:
        if self.db is not None:
            self.db.close()
            self.db = None
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
        if self._lock_fd is not None:
            os.close(self._lock_fd)
            self._lock_fd = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def lock(self) -> None:
        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_EX)
        except OSError as e:
            raise StoreError(f"failed to lock {self.directory}: {e}") from e

    def unlock(self) -> None:
        try:
            fcntl.flock(self._lock_fd, fcntl.LOCK_UN)
        except OSError as e:
            raise StoreError(f"failed to unlock {self.directory}: {e}") from e

    @contextmanager
    def locked(self):
        self.lock()
        try:
            yield self
        finally:
            self.unlock()

    def _leases_for(self, container_id: str, if_name: str, range_id: Optional[int] = None):
        query = self.db.query(Lease).filter(
            Lease.network == self.network,
            Lease.container_id == container_id,
            Lease.if_name == if_name,
        )
        if range_id is not None:
            query = query.filter(Lease.range_id == range_id)
        return query

    def reserve(
        self,
        container_id: str,
        if_name: str,
        ip,
        range_id: int,
        pod_ns: str = "",
        pod_name: str = "",
    ) -> bool:
        """Record a lease on ip. Returns False if the address is already leased."""
        lease = Lease(
            network=self.network,
            range_id=range_id,
            address=str(ip),
            container_id=container_id,
            if_name=if_name,
            pod_namespace=pod_ns,
            pod_name=pod_name,
        )
        try:
            self.db.add(lease)
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            return False
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"failed to reserve {ip}: {e}") from e

        try:
            self.db.merge(LastReservedIP(network=self.network, range_id=range_id, address=str(ip)))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"failed to reserve {ip}: {e}") from e
        return True

    def last_reserved_ip(self, range_id: int) -> Optional[str]:
        row = self.db.query(LastReservedIP).filter(
            LastReservedIP.network == self.network,
            LastReservedIP.range_id == range_id,
        ).first()
        return row.address if row else None

    def allocated_addresses(self) -> Set[str]:
        rows = self.db.query(Lease.address).filter(Lease.network == self.network).all()
        return {row.address for row in rows}

    def get_by_id(self, container_id: str, if_name: str, range_id: Optional[int] = None) -> List[str]:
        """Addresses leased to the container interface, in range order."""
        leases = self._leases_for(container_id, if_name, range_id).order_by(Lease.range_id).all()
        return [lease.address for lease in leases]

    def find_by_id(self, container_id: str, if_name: str) -> bool:
        return self._leases_for(container_id, if_name).first() is not None

    def get_by_pod(self, pod_ns: str, pod_name: str, range_id: int) -> Optional[Lease]:
        return self.db.query(Lease).filter(
            Lease.network == self.network,
            Lease.range_id == range_id,
            Lease.pod_namespace == pod_ns,
            Lease.pod_name == pod_name,
        ).first()

    def reassign(self, lease: Lease, container_id: str, if_name: str) -> None:
        """Hand an existing lease over to another container interface."""
        lease.container_id = container_id
        lease.if_name = if_name
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"failed to reassign {lease.address} to {container_id}: {e}") from e

    def release_by_id(self, container_id: str, if_name: str, range_id: Optional[int] = None) -> int:
        """Drop the container interface's leases. Releasing nothing is not an error."""
        try:
            count = self._leases_for(container_id, if_name, range_id).delete(synchronize_session=False)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"failed to release {container_id}/{if_name}: {e}") from e
        if count:
            logger.debug("released %d lease(s) of %s/%s in network %s", count, container_id, if_name, self.network)
        return count

    def leases(self) -> List[Lease]:
        return self.db.query(Lease).filter(Lease.network == self.network).order_by(Lease.range_id, Lease.id).all()
