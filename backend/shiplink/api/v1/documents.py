"""Document intake endpoint: accepts classifier output."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shiplink.dependencies import get_db, get_document_intake
from shiplink.intake import DocumentIntake
from shiplink.schemas.document import ClassifiedDocumentIn, IngestResponse

router = APIRouter()


@router.post("", response_model=IngestResponse)
async def ingest_documents(
    documents: list[ClassifiedDocumentIn],
    db: AsyncSession = Depends(get_db),
    intake: DocumentIntake = Depends(get_document_intake),
) -> IngestResponse:
    """Store classified documents for the next linking run."""
    return await intake.ingest(db, documents)
