"""Pure deduplication functions. No database access.

Duplication is decided strictly by fingerprint equality. Subject reply and
forward markers only seed the thread ordering.
"""

import hashlib
import re
from dataclasses import dataclass
from datetime import datetime

# Header lines repeated by mail clients when replying or forwarding
_HEADER_LINE = re.compile(
    r"^\s*(from|sent|to|cc|bcc|date|subject|reply-to|importance)\s*:.*$",
    re.IGNORECASE,
)
_FORWARD_BANNER = re.compile(
    r"^\s*(-{2,}\s*(forwarded message|original message)\s*-{2,}|begin forwarded message:?)\s*$",
    re.IGNORECASE,
)
_REPLY_ATTRIBUTION = re.compile(r"^\s*on .+ wrote:\s*$", re.IGNORECASE)
_EXTERNAL_BANNER = re.compile(
    r"^\s*(\[?external\]?|caution:|warning:)\s.*(external|outside).*$",
    re.IGNORECASE,
)
_DISCLAIMER_START = re.compile(
    r"^\s*(this (e-?mail|message)( and any attachments?)? (is|are|may be) (confidential|intended)|"
    r"confidentiality notice|disclaimer:)",
    re.IGNORECASE,
)
_SIGNATURE_SEPARATOR = re.compile(r"^--\s*$")
_QUOTE_PREFIX = re.compile(r"^\s*(>\s?)+")
_WHITESPACE = re.compile(r"\s+")
_SUBJECT_MARKER = re.compile(r"^\s*(re|fw|fwd|aw|wg|tr)\s*(\[\d+\])?\s*:\s*", re.IGNORECASE)


def normalize_content(*parts: str | None) -> str:
    """Strip volatile mail boilerplate, collapse whitespace, lowercase."""
    kept: list[str] = []
    for part in parts:
        if not part:
            continue
        in_disclaimer = False
        for line in part.splitlines():
            line = _QUOTE_PREFIX.sub("", line)
            if _SIGNATURE_SEPARATOR.match(line):
                # Signature block runs to the end of this part
                break
            if _DISCLAIMER_START.match(line):
                in_disclaimer = True
            if in_disclaimer:
                if not line.strip():
                    in_disclaimer = False
                continue
            if (
                _HEADER_LINE.match(line)
                or _FORWARD_BANNER.match(line)
                or _REPLY_ATTRIBUTION.match(line)
                or _EXTERNAL_BANNER.match(line)
            ):
                continue
            kept.append(line)
    return _WHITESPACE.sub(" ", " ".join(kept)).strip().lower()


def compute_fingerprint(
    body_text: str | None,
    attachment_text: str | None = None,
    fallback: str | None = None,
) -> str | None:
    """SHA-256 of the normalized content, or the upstream fingerprint when there is no content."""
    normalized = normalize_content(body_text, attachment_text)
    if not normalized:
        return fallback or None
    return hashlib.sha256(normalized.encode("utf-8")).hexdigest()


def reply_depth(subject: str | None) -> int:
    """Number of leading RE:/FW: style markers on a subject line."""
    depth = 0
    remaining = subject or ""
    while True:
        match = _SUBJECT_MARKER.match(remaining)
        if not match:
            return depth
        depth += 1
        remaining = remaining[match.end():]


@dataclass(frozen=True)
class ThreadMessage:
    email_id: str
    received_at: datetime
    subject: str | None = None
    fingerprint: str | None = None


@dataclass(frozen=True)
class DedupAssignment:
    email_id: str
    fingerprint: str | None
    is_primary: bool
    duplicate_of: str | None
    thread_position: int


def _order_key(msg: ThreadMessage) -> tuple:
    return (msg.received_at, reply_depth(msg.subject), msg.email_id)


def assign_duplicates(messages: list[ThreadMessage]) -> list[DedupAssignment]:
    """Group one thread's messages by fingerprint and pick one primary per group.

    The earliest-received message of a group is primary; ties go to the
    shallower reply depth and then the lower email id, so the assignment is
    the same on every run. Messages without a fingerprint are their own group.
    """
    ordered = sorted(messages, key=_order_key)
    primaries: dict[str, str] = {}
    assignments: list[DedupAssignment] = []
    for position, msg in enumerate(ordered):
        if msg.fingerprint is None:
            assignments.append(DedupAssignment(msg.email_id, None, True, None, position))
            continue
        primary = primaries.setdefault(msg.fingerprint, msg.email_id)
        if primary == msg.email_id:
            assignments.append(DedupAssignment(msg.email_id, msg.fingerprint, True, None, position))
        else:
            assignments.append(DedupAssignment(msg.email_id, msg.fingerprint, False, primary, position))
    return assignments
