"""Link candidate listing: ambiguous resolutions waiting on a person."""

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db
from shiplink.models.link import CandidateStatus, LinkCandidate
from shiplink.schemas.link import LinkCandidateListResponse, LinkCandidateResponse

router = APIRouter()


@router.get("", response_model=LinkCandidateListResponse)
async def list_link_candidates(
    status: CandidateStatus | None = CandidateStatus.PENDING,
    page: int = 1,
    per_page: int = 50,
    db: AsyncSession = Depends(get_db),
) -> LinkCandidateListResponse:
    query = select(LinkCandidate)
    count_query = select(func.count(LinkCandidate.id))
    if status:
        query = query.where(LinkCandidate.status == status)
        count_query = count_query.where(LinkCandidate.status == status)

    total = (await db.execute(count_query)).scalar_one()

    offset = (page - 1) * per_page
    query = query.order_by(LinkCandidate.created_at.desc()).offset(offset).limit(per_page)
    candidates = list((await db.execute(query)).scalars().all())

    return LinkCandidateListResponse(
        candidates=[LinkCandidateResponse.model_validate(c) for c in candidates],
        total=total,
        page=page,
        per_page=per_page,
    )
