from shiplink.schemas.audit import AuditEventListResponse, AuditEventResponse
from shiplink.schemas.document import ClassifiedDocumentIn, IdentifierCandidate, IngestResponse
from shiplink.schemas.health import HealthResponse
from shiplink.schemas.link import LinkCandidateListResponse, LinkCandidateResponse
from shiplink.schemas.run import LinkingRunRequest, LinkingRunResponse
from shiplink.schemas.shipment import ShipmentTimelineResponse

__all__ = [
    "AuditEventListResponse",
    "AuditEventResponse",
    "ClassifiedDocumentIn",
    "IdentifierCandidate",
    "IngestResponse",
    "HealthResponse",
    "LinkCandidateListResponse",
    "LinkCandidateResponse",
    "LinkingRunRequest",
    "LinkingRunResponse",
    "ShipmentTimelineResponse",
]
