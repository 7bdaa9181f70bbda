"""ORM models for journey anomalies and deadline blockers."""

import enum
import uuid
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy import DateTime, Enum as SAEnum, Float, ForeignKey, Integer, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class BlockerType(str, enum.Enum):
    MISSING_SI = "missing_si"
    MISSING_VGM = "missing_vgm"
    MISSING_CARGO_GATE_IN = "missing_cargo_gate_in"


class BlockerSeverity(str, enum.Enum):
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class WorkflowAnomaly(Base, TimestampMixin):
    __tablename__ = "workflow_anomalies"
    __table_args__ = (
        sa.UniqueConstraint("shipment_id", "email_id", name="uq_workflow_anomalies_shipment_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    email_id: Mapped[str] = mapped_column(String(255), nullable=False)
    state_code: Mapped[str] = mapped_column(String(100), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    expected_min_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    gap: Mapped[int] = mapped_column(Integer, nullable=False)
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class Blocker(Base, TimestampMixin):
    __tablename__ = "shipment_blockers"
    __table_args__ = (
        sa.UniqueConstraint("shipment_id", "blocker_type", name="uq_shipment_blockers_shipment_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    blocker_type: Mapped[BlockerType] = mapped_column(
        SAEnum(BlockerType, name="blocker_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    severity: Mapped[BlockerSeverity] = mapped_column(
        SAEnum(BlockerSeverity, name="blocker_severity", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    days_overdue: Mapped[float] = mapped_column(Float, nullable=False)
    expected_state: Mapped[str] = mapped_column(String(100), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
