"""Pydantic schemas for link candidates awaiting a manual decision."""

import uuid
from datetime import datetime

from pydantic import BaseModel


class LinkCandidateResponse(BaseModel):
    id: uuid.UUID
    email_id: str
    match_type: str
    candidate_shipment_ids: list[str]
    matched_values: list[str] | None = None
    status: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class LinkCandidateListResponse(BaseModel):
    candidates: list[LinkCandidateResponse]
    total: int
    page: int
    per_page: int
