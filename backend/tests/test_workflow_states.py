"""Tests for the workflow state table."""

import json

import pytest

from shiplink.workflow.states import (
    DEFAULT_WORKFLOW_TABLE,
    Phase,
    StateMapping,
    UnmappedPair,
    WorkflowStateTable,
    load_workflow_table,
    normalize_document_type,
)


def _state(code, rank, phase="pre_departure", directions=("inbound",), types=("booking_confirmation",)):
    return {
        "code": code,
        "label": code.title(),
        "rank": rank,
        "phase": phase,
        "directions": list(directions),
        "document_types": list(types),
    }


class TestDefaultTable:
    """Mappings in the built-in table."""

    def test_direction_distinguishes_states(self):
        inbound = DEFAULT_WORKFLOW_TABLE.map_document("booking_confirmation", "inbound")
        outbound = DEFAULT_WORKFLOW_TABLE.map_document("booking_confirmation", "outbound")
        assert inbound.code == "booking_confirmation_received"
        assert outbound.code == "booking_confirmation_shared"
        assert inbound.rank < outbound.rank

    def test_bl_ranks(self):
        bl = DEFAULT_WORKFLOW_TABLE.map_document("bill_of_lading", "inbound")
        assert isinstance(bl, StateMapping)
        assert (bl.code, bl.rank, bl.phase) == ("bl_received", 119, Phase.IN_TRANSIT)

    def test_vgm_maps_both_directions(self):
        assert DEFAULT_WORKFLOW_TABLE.map_document("vgm_confirmation", "inbound").code == "vgm_submitted"
        assert DEFAULT_WORKFLOW_TABLE.map_document("vgm_confirmation", "outbound").code == "vgm_submitted"

    def test_alias_resolves_to_canonical_type(self):
        assert DEFAULT_WORKFLOW_TABLE.map_document("SI Draft", "outbound").code == "si_submitted"
        assert DEFAULT_WORKFLOW_TABLE.map_document("pod", "inbound").code == "pod_received"

    def test_unknown_direction_never_mapped(self):
        result = DEFAULT_WORKFLOW_TABLE.map_document("booking_confirmation", "unknown")
        assert result == UnmappedPair("booking_confirmation", "unknown")
        assert result.key == "booking_confirmation:unknown"

    def test_missing_direction_treated_as_unknown(self):
        assert isinstance(DEFAULT_WORKFLOW_TABLE.map_document("invoice", None), UnmappedPair)

    def test_unknown_type_unmapped(self):
        result = DEFAULT_WORKFLOW_TABLE.map_document("rate_sheet", "inbound")
        assert result == UnmappedPair("rate_sheet", "inbound")

    def test_phases_never_interleave(self):
        ranks = {}
        for state in DEFAULT_WORKFLOW_TABLE.states:
            ranks.setdefault(state.phase, []).append(state.rank)
        assert max(ranks[Phase.PRE_DEPARTURE]) < min(ranks[Phase.IN_TRANSIT])
        assert max(ranks[Phase.ARRIVAL]) < min(ranks[Phase.DELIVERY])

    def test_state_lookup(self):
        assert DEFAULT_WORKFLOW_TABLE.rank_of("si_submitted") == 32
        with pytest.raises(ValueError, match="Unknown workflow state"):
            DEFAULT_WORKFLOW_TABLE.state("teleported")


class TestTableValidation:
    """Rejected table definitions."""

    def test_conflicting_pair_rejected(self):
        with pytest.raises(ValueError):
            WorkflowStateTable(version="bad", states=[_state("a", 10), _state("b", 20)])

    def test_duplicate_code_rejected(self):
        with pytest.raises(ValueError):
            WorkflowStateTable(
                version="bad",
                states=[_state("a", 10), _state("a", 20, types=("checklist",))],
            )

    def test_unknown_direction_rejected(self):
        with pytest.raises(ValueError):
            WorkflowStateTable(version="bad", states=[_state("a", 10, directions=("unknown",))])

    def test_phase_overlap_rejected(self):
        with pytest.raises(ValueError):
            WorkflowStateTable(
                version="bad",
                states=[
                    _state("late_pre", 90),
                    _state("early_transit", 80, phase="in_transit", types=("sob_confirmation",)),
                ],
            )

    def test_alias_to_unmapped_type_rejected(self):
        with pytest.raises(ValueError):
            WorkflowStateTable(version="bad", states=[_state("a", 10)], aliases={"bc": "rate_sheet"})


class TestLoadWorkflowTable:
    def test_empty_path_returns_default(self):
        assert load_workflow_table("") is DEFAULT_WORKFLOW_TABLE

    def test_loads_json_override(self, tmp_path):
        path = tmp_path / "table.json"
        path.write_text(json.dumps({
            "version": "test-1",
            "states": [
                _state("booked", 10),
                _state("sailed", 50, phase="in_transit", types=("sob_confirmation",)),
            ],
            "aliases": {"sob": "sob_confirmation"},
        }))
        table = load_workflow_table(str(path))
        assert table.version == "test-1"
        assert table.map_document("SOB", "inbound").code == "sailed"

    def test_override_alias_keys_are_normalized(self, tmp_path):
        path = tmp_path / "table.json"
        path.write_text(json.dumps({
            "version": "test-2",
            "states": [
                _state("booked", 10),
                _state("sailed", 50, phase="in_transit", types=("sob_confirmation",)),
            ],
            "aliases": {"Shipped On-Board": "sob_confirmation"},
        }))
        table = load_workflow_table(str(path))
        assert table.aliases == {"shipped_on_board": "sob_confirmation"}
        assert table.map_document("shipped on board", "inbound").code == "sailed"


def test_normalize_document_type():
    assert normalize_document_type("  Booking-Confirmation ") == "booking_confirmation"
    assert normalize_document_type(None) == ""
