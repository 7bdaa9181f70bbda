import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shiplink.api.router import api_router
from shiplink.config import settings
from shiplink.workflow.states import load_workflow_table

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)-8s %(name)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Fail fast on a broken workflow table override
    table = load_workflow_table(settings.workflow_table_path)
    logger.info("Starting shiplink (env=%s, workflow table %s)", settings.environment, table.version)
    yield
    logger.info("Shutting down shiplink")


app = FastAPI(
    title="Shiplink - Shipment Document Linking",
    description="Links classified freight documents to shipments and tracks each shipment's journey",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api")
