from fastapi import APIRouter

from shiplink.api.v1 import audit, documents, health, link_candidates, runs, shipments

api_router = APIRouter()

api_router.include_router(health.router, prefix="/v1", tags=["health"])
api_router.include_router(documents.router, prefix="/v1/documents", tags=["documents"])
api_router.include_router(runs.router, prefix="/v1/runs", tags=["runs"])
api_router.include_router(shipments.router, prefix="/v1/shipments", tags=["shipments"])
api_router.include_router(link_candidates.router, prefix="/v1/link-candidates", tags=["link-candidates"])
api_router.include_router(audit.router, prefix="/v1/audit", tags=["audit"])
