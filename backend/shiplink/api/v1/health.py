from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink import __version__
from shiplink.config import settings
from shiplink.dependencies import get_db, get_timeline_service
from shiplink.schemas.health import HealthResponse
from shiplink.workflow.service import TimelineService

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(
    db: AsyncSession = Depends(get_db),
    timelines: TimelineService = Depends(get_timeline_service),
) -> HealthResponse:
    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception:
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        database=db_status,
        workflow_table_version=timelines.table.version,
        timestamp=datetime.now(timezone.utc),
        environment=settings.environment,
        version=__version__,
    )
