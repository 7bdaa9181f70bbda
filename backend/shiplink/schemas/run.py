"""Pydantic schemas for batch linking runs."""

import uuid
from datetime import datetime

from pydantic import BaseModel

from shiplink.models.link import LinkSource


class LinkingRunRequest(BaseModel):
    link_source: LinkSource = LinkSource.BACKFILL
    relink: bool = False
    validate_links: bool | None = None


class LinkingRunResponse(BaseModel):
    id: uuid.UUID
    link_source: str
    status: str
    processing_time_ms: int | None = None
    report: dict | None = None
    error: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    model_config = {"from_attributes": True}
