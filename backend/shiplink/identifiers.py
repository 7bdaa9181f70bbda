"""Identifier kinds and normalization.

Every raw ``{type, value}`` pair the classifier extracts is parsed into one of
a closed set of frozen dataclasses. Normalization runs once here; downstream
code only ever compares normalized keys.
"""

import re
from dataclasses import dataclass

BOOKING_TYPES = frozenset({"booking_number", "booking", "bkg", "booking_no"})
MBL_TYPES = frozenset({"mbl_number", "bl_number", "mbl", "master_bl"})
HBL_TYPES = frozenset({"hbl_number", "hbl", "house_bl"})
CONTAINER_TYPES = frozenset({"container_number", "container", "container_no"})

# Placeholder words classifiers emit instead of a real reference
GARBAGE_REFERENCES = frozenset({
    "BOOKING",
    "CONFIRMATION",
    "CANCELLATION",
    "AMENDMENT",
    "APPROVAL",
    "DRAFT",
    "NA",
    "N/A",
    "NONE",
    "NOTIFICATION",
    "NULL",
    "PENDING",
    "REQUEST",
    "SHIPMENT",
    "STUFFING",
    "TBA",
    "TBD",
    "UNKNOWN",
    "UPDATE",
})

_REFERENCE_CHARS = re.compile(r"^[A-Z0-9_/.]+$")
_CONTAINER_SHAPE = re.compile(r"^[A-Z]{4}[0-9]{7}$")
_STRIP_REFERENCE = re.compile(r"[\s\-]+")
_STRIP_CONTAINER = re.compile(r"[^A-Za-z0-9]+")


@dataclass(frozen=True)
class BookingNumber:
    key: str
    raw: str


@dataclass(frozen=True)
class MasterBill:
    key: str
    raw: str


@dataclass(frozen=True)
class HouseBill:
    key: str
    raw: str


@dataclass(frozen=True)
class ContainerNumber:
    key: str
    raw: str


@dataclass(frozen=True)
class Unrecognized:
    identifier_type: str
    raw: str
    reason: str  # "unknown_type" | "malformed"


Identifier = BookingNumber | MasterBill | HouseBill | ContainerNumber | Unrecognized
Reference = BookingNumber | MasterBill | HouseBill | ContainerNumber


def normalize_reference(value: str | None) -> str | None:
    """Normalize a booking/MBL/HBL value. Returns None for malformed input."""
    if not value:
        return None
    key = _STRIP_REFERENCE.sub("", value.strip().upper())
    if len(key) < 4 or key in GARBAGE_REFERENCES:
        return None
    if not _REFERENCE_CHARS.match(key):
        return None
    if not any(ch.isdigit() for ch in key):
        return None
    return key


def normalize_container(value: str | None) -> str | None:
    """Normalize a container number to its ISO 6346 shape (4 letters + 7 digits)."""
    if not value:
        return None
    key = _STRIP_CONTAINER.sub("", value).upper()
    if not _CONTAINER_SHAPE.match(key):
        return None
    return key


def parse_identifier(identifier_type: str | None, raw_value: str | None) -> Identifier:
    """Parse one classifier-extracted identifier into its tagged kind."""
    kind = (identifier_type or "").strip().lower()
    raw = raw_value if isinstance(raw_value, str) else ("" if raw_value is None else str(raw_value))

    if kind in CONTAINER_TYPES:
        key = normalize_container(raw)
        return ContainerNumber(key, raw) if key else Unrecognized(kind, raw, "malformed")

    if kind in BOOKING_TYPES:
        cls = BookingNumber
    elif kind in MBL_TYPES:
        cls = MasterBill
    elif kind in HBL_TYPES:
        cls = HouseBill
    else:
        return Unrecognized(kind, raw, "unknown_type")

    key = normalize_reference(raw)
    return cls(key, raw) if key else Unrecognized(kind, raw, "malformed")


def parse_identifiers(candidates: list[dict] | None) -> list[Identifier]:
    """Parse the JSON identifier list stored on a classified document."""
    parsed: list[Identifier] = []
    for item in candidates or []:
        if not isinstance(item, dict):
            parsed.append(Unrecognized("", str(item), "malformed"))
            continue
        parsed.append(parse_identifier(item.get("type"), item.get("value")))
    return parsed
