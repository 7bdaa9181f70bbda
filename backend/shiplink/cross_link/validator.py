"""Pure cross-link validation. No database access.

Re-reads a linked document's subject/body and decides whether the text backs
the link:

- confirmed:    the linked shipment's own booking/MBL/HBL appears, or its
                container appears and no other shipment's reference does
- contradicted: another shipment's booking/MBL/HBL appears and nothing of the
                linked shipment does; only this outcome removes a link
- inconclusive: no identifiers, container-only mismatch, or mixed evidence;
                flagged for a person to look at
"""

import enum
import re
import uuid
from dataclasses import dataclass, field

from shiplink.identifiers import normalize_container, normalize_reference
from shiplink.linking.index import IdentifierIndex

_REFERENCE_TOKEN = re.compile(r"[A-Za-z0-9][A-Za-z0-9\-_/.]*[A-Za-z0-9]")
_TOKEN_SEPARATORS = re.compile(r"[/.:]")
_CONTAINER_TOKEN = re.compile(r"\b([A-Za-z]{4})[\s-]?(\d{6})[\s-]?(\d)\b")


class CrossLinkOutcome(str, enum.Enum):
    CONFIRMED = "confirmed"
    CONTRADICTED = "contradicted"
    INCONCLUSIVE = "inconclusive"


@dataclass
class CrossLinkResult:
    outcome: CrossLinkOutcome
    reason: str
    own_references: list[str] = field(default_factory=list)
    own_containers: list[str] = field(default_factory=list)
    foreign_references: dict[str, list[str]] = field(default_factory=dict)
    foreign_containers: dict[str, list[str]] = field(default_factory=dict)

    def evidence(self) -> dict:
        return {
            "own_references": self.own_references,
            "own_containers": self.own_containers,
            "foreign_references": self.foreign_references,
            "foreign_containers": self.foreign_containers,
        }


def extract_reference_keys(text: str) -> set[str]:
    """Normalized booking/MBL/HBL-shaped tokens found in free text.

    Each token is also split on "/", "." and ":" so prefixed forms such as
    "BKG/26123456" or "No.26123456" yield the bare reference too.
    """
    keys = set()
    for token in _REFERENCE_TOKEN.findall(text or ""):
        for part in (token, *_TOKEN_SEPARATORS.split(token)):
            key = normalize_reference(part)
            if key:
                keys.add(key)
    return keys


def extract_container_keys(text: str) -> set[str]:
    """ISO 6346 container numbers in free text, tolerating one separator per block."""
    keys = set()
    for owner, serial, check in _CONTAINER_TOKEN.findall(text or ""):
        key = normalize_container(f"{owner}{serial}{check}")
        if key:
            keys.add(key)
    return keys


def validate_link(shipment_id: uuid.UUID, text: str, index: IdentifierIndex) -> CrossLinkResult:
    """Check one link against the document's own text."""
    ref = index.shipments.get(shipment_id)
    if ref is None:
        return CrossLinkResult(CrossLinkOutcome.INCONCLUSIVE, "linked shipment is not in the index")

    references = extract_reference_keys(text)
    containers = extract_container_keys(text)

    own_reference_keys = {k for k in (ref.booking_key, ref.mbl_key, ref.hbl_key) if k}
    own_refs = sorted(own_reference_keys & references)
    own_containers = sorted(ref.container_keys & containers)

    foreign_refs: dict[str, list[str]] = {}
    for key in sorted(references - own_reference_keys):
        owners = index.owners_of_reference(key) - {shipment_id}
        if owners:
            foreign_refs[key] = sorted(str(o) for o in owners)

    foreign_containers: dict[str, list[str]] = {}
    for key in sorted(containers - ref.container_keys):
        owners = index.containers.get(key, frozenset()) - {shipment_id}
        if owners:
            foreign_containers[key] = sorted(str(o) for o in owners)

    def result(outcome: CrossLinkOutcome, reason: str) -> CrossLinkResult:
        return CrossLinkResult(outcome, reason, own_refs, own_containers, foreign_refs, foreign_containers)

    if own_refs:
        return result(CrossLinkOutcome.CONFIRMED, "linked shipment reference present")
    if foreign_refs and own_containers:
        return result(CrossLinkOutcome.INCONCLUSIVE, "other shipment reference alongside own container")
    if foreign_refs:
        return result(CrossLinkOutcome.CONTRADICTED, "text references a different shipment only")
    if own_containers:
        return result(CrossLinkOutcome.CONFIRMED, "linked shipment container present")
    if foreign_containers:
        return result(CrossLinkOutcome.INCONCLUSIVE, "container mismatch only")
    return result(CrossLinkOutcome.INCONCLUSIVE, "no identifiers in text")
