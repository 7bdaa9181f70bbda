"""ORM model for classified documents produced by the upstream classifier."""

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, JSON, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from shiplink.models.base import Base, TimestampMixin


class DocumentDirection(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    UNKNOWN = "unknown"


class ClassifiedDocument(Base, TimestampMixin):
    __tablename__ = "classified_documents"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    thread_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    direction: Mapped[DocumentDirection] = mapped_column(
        SAEnum(DocumentDirection, name="document_direction", values_callable=lambda e: [m.value for m in e]),
        default=DocumentDirection.UNKNOWN,
        nullable=False,
    )
    # [{"type": "booking_number", "value": "..."}]
    identifiers: Mapped[list | None] = mapped_column(JSON, nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)
    body_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    attachment_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    upstream_fingerprint: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # Written by the deduplicator
    content_fingerprint: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    duplicate_of: Mapped[str | None] = mapped_column(String(255), nullable=True)
    thread_position: Mapped[int | None] = mapped_column(Integer, nullable=True)
    deduplicated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
