"""Workflow state table: (document type, direction) -> canonical state, phase, rank.

One versioned table is the only source of ordering. Pairs the table does not
cover come back as UnmappedPair, never as a guessed default state.
"""

import enum
import json
import logging
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, PrivateAttr, field_validator, model_validator

logger = logging.getLogger("shiplink.workflow")


class Phase(str, enum.Enum):
    PRE_DEPARTURE = "pre_departure"
    IN_TRANSIT = "in_transit"
    PRE_ARRIVAL = "pre_arrival"
    ARRIVAL = "arrival"
    DELIVERY = "delivery"


PHASE_ORDER = [Phase.PRE_DEPARTURE, Phase.IN_TRANSIT, Phase.PRE_ARRIVAL, Phase.ARRIVAL, Phase.DELIVERY]

MAPPABLE_DIRECTIONS = ("inbound", "outbound")


class StateDefinition(BaseModel):
    code: str
    label: str
    rank: int
    phase: Phase
    directions: list[str]
    document_types: list[str]


@dataclass(frozen=True)
class StateMapping:
    code: str
    label: str
    phase: Phase
    rank: int


@dataclass(frozen=True)
class UnmappedPair:
    document_type: str
    direction: str

    @property
    def key(self) -> str:
        return f"{self.document_type}:{self.direction}"


def normalize_document_type(document_type: str | None) -> str:
    return "_".join((document_type or "").strip().lower().replace("-", " ").split())


class WorkflowStateTable(BaseModel):
    version: str
    states: list[StateDefinition]
    aliases: dict[str, str] = {}

    _lookup: dict[tuple[str, str], StateDefinition] = PrivateAttr(default_factory=dict)
    _by_code: dict[str, StateDefinition] = PrivateAttr(default_factory=dict)

    @field_validator("aliases")
    @classmethod
    def _normalize_alias_keys(cls, aliases: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for alias, target in aliases.items():
            key = normalize_document_type(alias)
            if key in normalized and normalized[key] != target:
                raise ValueError(f"Alias {alias!r} collides with another alias after normalization")
            normalized[key] = target
        return normalized

    @model_validator(mode="after")
    def _check_table(self) -> "WorkflowStateTable":
        lookup, _ = _index_states(self.states)

        for phase, later in zip(PHASE_ORDER, PHASE_ORDER[1:]):
            current = [s.rank for s in self.states if s.phase == phase]
            following = [s.rank for s in self.states if PHASE_ORDER.index(s.phase) >= PHASE_ORDER.index(later)]
            if current and following and max(current) >= min(following):
                raise ValueError(f"Ranks in phase {phase.value} overlap a later phase")

        known = {doc_type for doc_type, _ in lookup}
        for alias, target in self.aliases.items():
            if normalize_document_type(target) not in known:
                raise ValueError(f"Alias {alias!r} points at unmapped document type {target!r}")
        return self

    def model_post_init(self, __context) -> None:
        self._lookup, self._by_code = _index_states(self.states)

    def canonical_type(self, document_type: str | None) -> str:
        doc_type = normalize_document_type(document_type)
        target = self.aliases.get(doc_type)
        return normalize_document_type(target) if target else doc_type

    def map_document(self, document_type: str | None, direction: str | None) -> StateMapping | UnmappedPair:
        """Map one document to its canonical state. ``unknown`` direction is never mapped."""
        doc_type = self.canonical_type(document_type)
        direction = (direction or "unknown").strip().lower()
        state = self._lookup.get((doc_type, direction))
        if state is None:
            return UnmappedPair(doc_type or "unknown", direction)
        return StateMapping(code=state.code, label=state.label, phase=state.phase, rank=state.rank)

    def state(self, code: str) -> StateDefinition:
        try:
            return self._by_code[code]
        except KeyError:
            raise ValueError(f"Unknown workflow state {code!r}") from None

    def rank_of(self, code: str) -> int:
        return self.state(code).rank


def _index_states(
    states: list[StateDefinition],
) -> tuple[dict[tuple[str, str], StateDefinition], dict[str, StateDefinition]]:
    lookup: dict[tuple[str, str], StateDefinition] = {}
    by_code: dict[str, StateDefinition] = {}
    for state in states:
        if state.code in by_code:
            raise ValueError(f"Duplicate state code {state.code!r}")
        by_code[state.code] = state
        for direction in state.directions:
            if direction not in MAPPABLE_DIRECTIONS:
                raise ValueError(f"State {state.code!r} has unmappable direction {direction!r}")
            for doc_type in state.document_types:
                pair = (normalize_document_type(doc_type), direction)
                if pair in lookup:
                    raise ValueError(
                        f"{pair[0]}:{direction} maps to both {lookup[pair].code!r} and {state.code!r}"
                    )
                lookup[pair] = state
    return lookup, by_code


def _s(code: str, label: str, rank: int, phase: Phase, direction: str | list[str], *types: str) -> dict:
    directions = [direction] if isinstance(direction, str) else direction
    return {
        "code": code,
        "label": label,
        "rank": rank,
        "phase": phase,
        "directions": directions,
        "document_types": list(types),
    }


_PRE = Phase.PRE_DEPARTURE
_TRANSIT = Phase.IN_TRANSIT
_PRE_ARR = Phase.PRE_ARRIVAL
_ARR = Phase.ARRIVAL
_DEL = Phase.DELIVERY

DEFAULT_WORKFLOW_TABLE = WorkflowStateTable(
    version="2026.1",
    states=[
        # Pre-departure
        _s("booking_confirmation_received", "Booking Confirmed", 10, _PRE, "inbound",
           "booking_confirmation", "booking_amendment"),
        _s("booking_confirmation_shared", "Booking Shared", 15, _PRE, "outbound",
           "booking_confirmation", "booking_amendment"),
        _s("si_draft_received", "SI Draft Received", 30, _PRE, "inbound", "shipping_instruction"),
        _s("si_submitted", "SI Submitted", 32, _PRE, "outbound", "shipping_instruction"),
        _s("checklist_received", "Checklist Received", 40, _PRE, "inbound", "checklist"),
        _s("checklist_shared", "Checklist Shared", 42, _PRE, "outbound", "checklist"),
        _s("shipping_bill_received", "Shipping Bill Received", 48, _PRE, "inbound",
           "shipping_bill", "leo_copy"),
        _s("si_confirmed", "SI Confirmed", 60, _PRE, "inbound", "si_confirmation"),
        _s("vgm_submitted", "VGM Submitted", 65, _PRE, ["inbound", "outbound"], "vgm_confirmation"),
        _s("gate_in_complete", "Gate-In Complete", 70, _PRE, "inbound", "gate_in_confirmation"),
        # In transit
        _s("sob_received", "Shipped on Board", 80, _TRANSIT, "inbound", "sob_confirmation"),
        _s("bl_received", "BL Received", 119, _TRANSIT, "inbound",
           "bill_of_lading", "draft_bl", "final_bl", "house_bl"),
        _s("hbl_draft_sent", "HBL Draft Sent", 120, _TRANSIT, "outbound", "draft_bl"),
        _s("hbl_shared", "HBL Shared", 132, _TRANSIT, "outbound", "bill_of_lading", "final_bl", "house_bl"),
        _s("invoice_sent", "Invoice Sent", 135, _TRANSIT, "outbound", "invoice", "debit_note"),
        # Pre-arrival
        _s("pre_alert_sent", "Pre-Alert Sent", 140, _PRE_ARR, "outbound", "pre_alert"),
        _s("entry_draft_received", "Entry Draft Received", 153, _PRE_ARR, "inbound", "entry_draft"),
        _s("entry_draft_shared", "Entry Draft Shared", 156, _PRE_ARR, "outbound", "entry_draft"),
        _s("entry_summary_received", "Entry Summary Received", 168, _PRE_ARR, "inbound", "entry_summary"),
        _s("entry_summary_shared", "Entry Summary Shared", 172, _PRE_ARR, "outbound", "entry_summary"),
        # Arrival
        _s("arrival_notice_received", "Arrival Notice Received", 180, _ARR, "inbound", "arrival_notice"),
        _s("arrival_notice_shared", "Arrival Notice Shared", 185, _ARR, "outbound", "arrival_notice"),
        _s("cargo_released", "Cargo Released", 192, _ARR, "inbound", "container_release", "freight_release"),
        _s("duty_invoice_received", "Duty Invoice Received", 195, _ARR, "inbound", "duty_invoice"),
        _s("duty_summary_shared", "Duty Summary Shared", 200, _ARR, "outbound", "duty_invoice"),
        # Delivery
        _s("delivery_order_received", "Delivery Order Received", 205, _DEL, "inbound", "delivery_order"),
        _s("delivery_order_shared", "Delivery Order Shared", 210, _DEL, "outbound", "delivery_order"),
        _s("container_released", "Container Released", 220, _DEL, "outbound", "container_release"),
        _s("pod_received", "POD Received", 235, _DEL, "inbound", "proof_of_delivery"),
        _s("pod_shared", "POD Shared", 240, _DEL, "outbound", "proof_of_delivery"),
    ],
    aliases={
        "booking_amendment_confirmation": "booking_amendment",
        "booking_cancellation_amendment": "booking_amendment",
        "si_draft": "shipping_instruction",
        "shipping_instructions": "shipping_instruction",
        "si": "shipping_instruction",
        "si_submission": "shipping_instruction",
        "leo": "leo_copy",
        "vgm": "vgm_confirmation",
        "vgm_submission": "vgm_confirmation",
        "gate_in": "gate_in_confirmation",
        "sob": "sob_confirmation",
        "shipped_on_board": "sob_confirmation",
        "bl": "bill_of_lading",
        "mbl": "bill_of_lading",
        "master_bl": "bill_of_lading",
        "hbl": "house_bl",
        "hbl_draft": "draft_bl",
        "bl_draft": "draft_bl",
        "freight_invoice": "invoice",
        "prealert": "pre_alert",
        "customs_entry_draft": "entry_draft",
        "entry_summary_7501": "entry_summary",
        "arrival_notification": "arrival_notice",
        "telex_release": "freight_release",
        "duty_summary": "duty_invoice",
        "do": "delivery_order",
        "pod": "proof_of_delivery",
    },
)


def load_workflow_table(path: str = "") -> WorkflowStateTable:
    """Load a table override from JSON, or return the built-in table."""
    if not path:
        return DEFAULT_WORKFLOW_TABLE
    table = WorkflowStateTable.model_validate(json.loads(Path(path).read_text(encoding="utf-8")))
    logger.info("Loaded workflow state table %s from %s (%d states)", table.version, path, len(table.states))
    return table
