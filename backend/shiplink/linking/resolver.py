"""Pure document-to-shipment resolution. No database access.

Strict priority cascade, most specific identifier first:
1. booking number
2. master bill (mbl_number / bl_number)
3. house bill
4. container number

The first kind that matches anything decides the outcome. A kind that matches
two or more shipments is ambiguous on the spot; lower-priority kinds are never
consulted to break the tie.
"""

import enum
import uuid
from dataclasses import dataclass, field
from datetime import datetime

from shiplink.identifiers import (
    BookingNumber,
    ContainerNumber,
    HouseBill,
    Identifier,
    MasterBill,
    Unrecognized,
)
from shiplink.linking.index import IdentifierIndex, ShipmentRef
from shiplink.models.link import MatchType
from shiplink.timeutil import as_utc, utcnow

# (match type, identifier class, literal confidence, normalized-only confidence)
REFERENCE_CASCADE: list[tuple[MatchType, type, int, int]] = [
    (MatchType.BOOKING, BookingNumber, 100, 95),
    (MatchType.MBL, MasterBill, 95, 90),
    (MatchType.HBL, HouseBill, 90, 85),
]

CONTAINER_CONFIDENCE_MAX = 75
CONTAINER_CONFIDENCE_MIN = 60


class ResolutionStatus(str, enum.Enum):
    LINKED = "linked"
    AMBIGUOUS = "ambiguous"
    ORPHAN = "orphan"


@dataclass
class Resolution:
    status: ResolutionStatus
    match_type: MatchType = MatchType.NONE
    shipment_id: uuid.UUID | None = None
    matched_value: str | None = None
    confidence: int = 0
    candidate_ids: list[uuid.UUID] = field(default_factory=list)
    matched_values: list[str] = field(default_factory=list)
    malformed: int = 0
    unrecognized: int = 0


def _stored_reference(ref: ShipmentRef, match_type: MatchType) -> str | None:
    if match_type == MatchType.BOOKING:
        return ref.booking_number
    if match_type == MatchType.MBL:
        return ref.mbl_number
    return ref.hbl_number


def reference_confidence(
    ref: ShipmentRef,
    match_type: MatchType,
    raw_values: list[str],
    text: str,
    literal: int,
    normalized: int,
) -> int:
    """Full confidence when the shipment's exact stored string appears verbatim.

    Verbatim means either an extracted identifier equals the stored string
    exactly, or the stored string occurs case-insensitively in the subject,
    body or attachment text. An exact extracted value counts even when the
    text itself never spells it out, since the classifier read it from the
    document. Any other match scores ``normalized``.
    """
    stored = (_stored_reference(ref, match_type) or "").strip()
    if not stored:
        return normalized
    if any(raw.strip() == stored for raw in raw_values):
        return literal
    if stored.lower() in text.lower():
        return literal
    return normalized


def container_confidence(
    ref: ShipmentRef,
    now: datetime,
    recent_days: int = 30,
    stale_days: int = 180,
) -> int:
    """60 for closed/stale shipments, 75 for recent open ones, linear in between."""
    if not ref.is_active or ref.last_activity_at is None:
        return CONTAINER_CONFIDENCE_MIN
    age_days = max((as_utc(now) - as_utc(ref.last_activity_at)).total_seconds() / 86400, 0.0)
    if age_days <= recent_days:
        return CONTAINER_CONFIDENCE_MAX
    if age_days >= stale_days or stale_days <= recent_days:
        return CONTAINER_CONFIDENCE_MIN
    span = CONTAINER_CONFIDENCE_MAX - CONTAINER_CONFIDENCE_MIN
    fraction = (age_days - recent_days) / (stale_days - recent_days)
    return round(CONTAINER_CONFIDENCE_MAX - span * fraction)


def _match_kind(
    index: IdentifierIndex, identifiers: list[Identifier], kind: type
) -> tuple[set[uuid.UUID], list[str], list[str]]:
    """Union of shipments matched by every identifier of one kind."""
    matched: set[uuid.UUID] = set()
    keys: list[str] = []
    raws: list[str] = []
    for ident in identifiers:
        if not isinstance(ident, kind):
            continue
        hits = index.lookup(ident)
        if hits:
            matched |= hits
            if ident.key not in keys:
                keys.append(ident.key)
            raws.append(ident.raw)
    return matched, keys, raws


def resolve(
    identifiers: list[Identifier],
    index: IdentifierIndex,
    text: str = "",
    now: datetime | None = None,
    container_recent_days: int = 30,
    container_stale_days: int = 180,
) -> Resolution:
    """Resolve a document's parsed identifiers against an index snapshot."""
    now = now or utcnow()
    malformed = sum(1 for i in identifiers if isinstance(i, Unrecognized) and i.reason == "malformed")
    unrecognized = sum(1 for i in identifiers if isinstance(i, Unrecognized) and i.reason != "malformed")

    for match_type, kind, literal, normalized in REFERENCE_CASCADE:
        matched, keys, raws = _match_kind(index, identifiers, kind)
        if not matched:
            continue
        if len(matched) > 1:
            return Resolution(
                status=ResolutionStatus.AMBIGUOUS,
                match_type=match_type,
                candidate_ids=sorted(matched, key=str),
                matched_values=keys,
                malformed=malformed,
                unrecognized=unrecognized,
            )
        shipment_id = next(iter(matched))
        return Resolution(
            status=ResolutionStatus.LINKED,
            match_type=match_type,
            shipment_id=shipment_id,
            matched_value=keys[0],
            confidence=reference_confidence(
                index.shipments[shipment_id], match_type, raws, text, literal, normalized
            ),
            matched_values=keys,
            malformed=malformed,
            unrecognized=unrecognized,
        )

    matched, keys, _ = _match_kind(index, identifiers, ContainerNumber)
    if len(matched) > 1:
        return Resolution(
            status=ResolutionStatus.AMBIGUOUS,
            match_type=MatchType.CONTAINER,
            candidate_ids=sorted(matched, key=str),
            matched_values=keys,
            malformed=malformed,
            unrecognized=unrecognized,
        )
    if matched:
        shipment_id = next(iter(matched))
        return Resolution(
            status=ResolutionStatus.LINKED,
            match_type=MatchType.CONTAINER,
            shipment_id=shipment_id,
            matched_value=keys[0],
            confidence=container_confidence(
                index.shipments[shipment_id], now, container_recent_days, container_stale_days
            ),
            matched_values=keys,
            malformed=malformed,
            unrecognized=unrecognized,
        )

    return Resolution(status=ResolutionStatus.ORPHAN, malformed=malformed, unrecognized=unrecognized)
