"""Batch linking run endpoints: trigger a run, read its report."""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_batch_runner, get_db
from shiplink.linking.index import IndexSnapshotError
from shiplink.models.run import LinkingRun
from shiplink.pipeline import BatchRunner
from shiplink.schemas.run import LinkingRunRequest, LinkingRunResponse

router = APIRouter()


@router.post("", response_model=LinkingRunResponse)
async def trigger_run(
    request: LinkingRunRequest,
    runner: BatchRunner = Depends(get_batch_runner),
) -> LinkingRunResponse:
    """Run dedup, linking, validation, timelines and blockers once."""
    try:
        run = await runner.run(
            link_source=request.link_source,
            relink=request.relink,
            validate_links=request.validate_links,
        )
    except IndexSnapshotError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return LinkingRunResponse.model_validate(run)


@router.get("", response_model=list[LinkingRunResponse])
async def list_runs(limit: int = 20, db: AsyncSession = Depends(get_db)) -> list[LinkingRunResponse]:
    result = await db.execute(select(LinkingRun).order_by(LinkingRun.started_at.desc()).limit(limit))
    return [LinkingRunResponse.model_validate(r) for r in result.scalars().all()]


@router.get("/{run_id}", response_model=LinkingRunResponse)
async def get_run(run_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> LinkingRunResponse:
    run = await db.get(LinkingRun, run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Linking run not found")
    return LinkingRunResponse.model_validate(run)
