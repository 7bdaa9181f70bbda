"""Pydantic schemas for classifier output entering the linking pipeline."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from shiplink.models.document import DocumentDirection


class IdentifierCandidate(BaseModel):
    type: str
    value: str | None = None


class ClassifiedDocumentIn(BaseModel):
    email_id: str = Field(min_length=1)
    thread_id: str = Field(min_length=1)
    document_type: str
    direction: DocumentDirection = DocumentDirection.UNKNOWN
    identifiers: list[IdentifierCandidate] = Field(default_factory=list)
    subject: str | None = None
    body_text: str | None = None
    attachment_text: str | None = None
    received_at: datetime
    content_fingerprint: str | None = None

    @field_validator("direction", mode="before")
    @classmethod
    def _lower_direction(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            if value not in {d.value for d in DocumentDirection}:
                return DocumentDirection.UNKNOWN
        return value


class IngestResponse(BaseModel):
    received: int
    inserted: int
    skipped_existing: int
