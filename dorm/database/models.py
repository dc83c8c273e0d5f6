import enum
from datetime import datetime, date
from typing import Optional, List
from sqlalchemy import String, Boolean, ForeignKey, Integer, DateTime, DATE, Text, CheckConstraint, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func
from dorm.database.core import Base

# Enums
class RoomStatus(str, enum.Enum):
    available = "available"
    occupied = "occupied"
    maintenance = "maintenance"

class ResidentType(str, enum.Enum):
    primary = "primary"
    dependent = "dependent"

class IdentityRole(str, enum.Enum):
    admin = "admin"
    staff = "staff"
    tenant = "tenant"

class ProvisioningState(str, enum.Enum):
    init = "init"
    identity_created = "identity_created"
    tenant_created = "tenant_created"
    profile_linked = "profile_linked"
    complete = "complete"
    conflict = "conflict"
    identity_failed = "identity_failed"
    tenant_failed = "tenant_failed"
    profile_failed = "profile_failed"


# 3.1 Room (owned by the room management side, read-only here)
class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    room_number: Mapped[str] = mapped_column(String, unique=True, index=True)
    capacity: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[RoomStatus] = mapped_column(String, default=RoomStatus.available.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    occupancy: Mapped[List["OccupancyRecord"]] = relationship(back_populates="room")

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_rooms_capacity_non_negative"),
    )


# 3.2 Tenant
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str] = mapped_column(String)
    last_name: Mapped[str] = mapped_column(String)
    email: Mapped[Optional[str]] = mapped_column(String, index=True)  # not unique
    phone: Mapped[Optional[str]] = mapped_column(String)
    address: Mapped[Optional[str]] = mapped_column(Text)
    emergency_contact: Mapped[Optional[str]] = mapped_column(String)

    # Denormalized current room, cleared on checkout
    room_id: Mapped[Optional[int]] = mapped_column(ForeignKey("rooms.id", ondelete="SET NULL"), nullable=True)
    room_number: Mapped[Optional[str]] = mapped_column(String, nullable=True)

    residents: Mapped[ResidentType] = mapped_column(String, default=ResidentType.dependent.value)

    version: Mapped[int] = mapped_column(Integer, default=1, server_default="1")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    occupancy: Mapped[List["OccupancyRecord"]] = relationship(back_populates="tenant")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_primary(self) -> bool:
        return self.residents == ResidentType.primary.value


# 3.3 OccupancyRecord
class OccupancyRecord(Base):
    __tablename__ = "occupancy"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[int] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)

    check_in_date: Mapped[date] = mapped_column(DATE)
    check_out_date: Mapped[Optional[date]] = mapped_column(DATE, nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    tenant: Mapped["Tenant"] = relationship(back_populates="occupancy")
    room: Mapped["Room"] = relationship(back_populates="occupancy")

    __table_args__ = (
        # One current record per tenant, enforced by the database as well
        Index(
            "uq_occupancy_current_tenant", "tenant_id", unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current"),
        ),
        Index("ix_occupancy_room_current", "room_id", "is_current"),
    )


# 3.4 Identity (issued by the Identity Provisioning Gateway, recorded here)
class Identity(Base):
    __tablename__ = "identities"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    role: Mapped[IdentityRole] = mapped_column(String, default=IdentityRole.tenant.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    profile: Mapped[Optional["Profile"]] = relationship(back_populates="identity", uselist=False)


# 3.5 Profile (identity <-> tenant join row)
class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(ForeignKey("identities.id", ondelete="CASCADE"), primary_key=True)
    tenant_id: Mapped[int] = mapped_column(ForeignKey("tenants.id", ondelete="CASCADE"), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    identity: Mapped["Identity"] = relationship(back_populates="profile")
    tenant: Mapped["Tenant"] = relationship()


# 3.6 ProvisioningRun (orphan marker for reconciliation)
class ProvisioningRun(Base):
    """One row per provisioning attempt, final state plus whatever was created"""
    __tablename__ = "provisioning_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String, index=True)
    state: Mapped[ProvisioningState] = mapped_column(String, default=ProvisioningState.init.value, index=True)

    identity_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    tenant_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    error_kind: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def is_orphaned(self) -> bool:
        return self.state in (
            ProvisioningState.tenant_failed.value,
            ProvisioningState.profile_failed.value,
        )
