"""ORM models for shipments and their secondary containers.

Shipments are owned upstream; this service reads identifiers and cutoffs and
writes only the derived workflow fields.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shiplink.models.base import Base, TimestampMixin


class ShipmentStatus(str, enum.Enum):
    OPEN = "open"
    DELIVERED = "delivered"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class Shipment(Base, TimestampMixin):
    __tablename__ = "shipments"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    mbl_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    hbl_number: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    container_number_primary: Mapped[str | None] = mapped_column(String(20), nullable=True)
    status: Mapped[ShipmentStatus] = mapped_column(
        SAEnum(ShipmentStatus, name="shipment_status", values_callable=lambda e: [m.value for m in e]),
        default=ShipmentStatus.OPEN,
        nullable=False,
    )
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Declared deadlines
    si_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    vgm_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cargo_cutoff: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Derived by the journey timeline builder
    workflow_state: Mapped[str | None] = mapped_column(String(100), nullable=True)
    workflow_phase: Mapped[str | None] = mapped_column(String(50), nullable=True)
    workflow_rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    workflow_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    containers: Mapped[list["ShipmentContainer"]] = relationship(
        back_populates="shipment", cascade="all, delete-orphan", lazy="selectin"
    )


class ShipmentContainer(Base):
    __tablename__ = "shipment_containers"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    container_number: Mapped[str] = mapped_column(String(20), nullable=False)

    shipment: Mapped["Shipment"] = relationship(back_populates="containers")
