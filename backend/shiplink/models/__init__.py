from shiplink.models.base import Base, TimestampMixin
from shiplink.models.shipment import Shipment, ShipmentContainer, ShipmentStatus
from shiplink.models.document import ClassifiedDocument, DocumentDirection
from shiplink.models.link import (
    CandidateStatus,
    LinkCandidate,
    LinkSource,
    MatchType,
    ShipmentDocumentLink,
    ValidationStatus,
)
from shiplink.models.workflow import Blocker, BlockerSeverity, BlockerType, WorkflowAnomaly
from shiplink.models.run import LinkingRun, RunStatus
from shiplink.models.audit import AuditEvent

__all__ = [
    "Base",
    "TimestampMixin",
    "Shipment",
    "ShipmentContainer",
    "ShipmentStatus",
    "ClassifiedDocument",
    "DocumentDirection",
    "CandidateStatus",
    "LinkCandidate",
    "LinkSource",
    "MatchType",
    "ShipmentDocumentLink",
    "ValidationStatus",
    "Blocker",
    "BlockerSeverity",
    "BlockerType",
    "WorkflowAnomaly",
    "LinkingRun",
    "RunStatus",
    "AuditEvent",
]
