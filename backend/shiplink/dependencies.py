from shiplink.config import settings
from shiplink.database import async_session, get_db
from shiplink.intake import DocumentIntake
from shiplink.pipeline import BatchRunner
from shiplink.workflow.service import TimelineService

# Re-export get_db for use in Depends()
get_db = get_db


def get_batch_runner() -> BatchRunner:
    return BatchRunner(settings, async_session)


def get_timeline_service() -> TimelineService:
    return TimelineService(settings)


def get_document_intake() -> DocumentIntake:
    return DocumentIntake()
