from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from ..database import Base


class Lease(Base):
    __tablename__ = "leases"

    id = Column(Integer, primary_key=True, index=True)
    network = Column(String(255), nullable=False, index=True)
    range_id = Column(Integer, nullable=False)  # position of the range set in the config
    address = Column(String(50), nullable=False)  # canonical form, no prefix length
    container_id = Column(String(255), nullable=False, index=True)
    if_name = Column(String(64), nullable=False)
    pod_namespace = Column(String(253), nullable=False, default="")
    pod_name = Column(String(253), nullable=False, default="")
    allocated_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("network", "address", name="uq_lease_address"),
        UniqueConstraint("network", "range_id", "container_id", "if_name", name="uq_lease_owner"),
    )

    def __repr__(self):
        return f"<Lease {self.network}/{self.range_id} {self.address} {self.container_id}/{self.if_name}>"


class LastReservedIP(Base):
    __tablename__ = "last_reserved_ips"

    network = Column(String(255), primary_key=True)
    range_id = Column(Integer, primary_key=True)
    address = Column(String(50), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
