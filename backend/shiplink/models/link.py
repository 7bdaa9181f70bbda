"""ORM models for shipment/document links and ambiguous link candidates."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class MatchType(str, enum.Enum):
    BOOKING = "booking"
    MBL = "mbl"
    HBL = "hbl"
    CONTAINER = "container"
    NONE = "none"


class LinkSource(str, enum.Enum):
    REALTIME = "realtime"
    BACKFILL = "backfill"
    MIGRATION = "migration"


class ValidationStatus(str, enum.Enum):
    UNVALIDATED = "unvalidated"
    CONFIRMED = "confirmed"
    FLAGGED = "flagged"
    REMOVED = "removed"


class CandidateStatus(str, enum.Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ShipmentDocumentLink(Base, TimestampMixin):
    __tablename__ = "shipment_document_links"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    # One link row per document; upserts re-point it
    email_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    shipment_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("shipments.id"), nullable=False, index=True
    )
    match_type: Mapped[MatchType] = mapped_column(
        SAEnum(MatchType, name="match_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    matched_value: Mapped[str | None] = mapped_column(String(100), nullable=True)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)
    link_source: Mapped[LinkSource] = mapped_column(
        SAEnum(LinkSource, name="link_source", values_callable=lambda e: [m.value for m in e]),
        default=LinkSource.REALTIME,
        nullable=False,
    )
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    validation_status: Mapped[ValidationStatus] = mapped_column(
        SAEnum(ValidationStatus, name="link_validation_status", values_callable=lambda e: [m.value for m in e]),
        default=ValidationStatus.UNVALIDATED,
        nullable=False,
    )
    validation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LinkCandidate(Base, TimestampMixin):
    __tablename__ = "link_candidates"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    match_type: Mapped[MatchType] = mapped_column(
        SAEnum(MatchType, name="match_type", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    candidate_shipment_ids: Mapped[list] = mapped_column(JSON, nullable=False)
    matched_values: Mapped[list | None] = mapped_column(JSON, nullable=True)
    status: Mapped[CandidateStatus] = mapped_column(
        SAEnum(CandidateStatus, name="candidate_status", values_callable=lambda e: [m.value for m in e]),
        default=CandidateStatus.PENDING,
        nullable=False,
    )
    resolved_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
