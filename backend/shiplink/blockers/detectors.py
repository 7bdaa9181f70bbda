"""Pure blocker detection functions. No database access."""

from dataclasses import dataclass
from datetime import datetime

from shiplink.models.shipment import ShipmentStatus
from shiplink.models.workflow import BlockerSeverity, BlockerType
from shiplink.timeutil import as_utc
from shiplink.workflow.states import Phase, WorkflowStateTable


@dataclass(frozen=True)
class DeadlineRule:
    blocker_type: BlockerType
    deadline_field: str
    expected_state: str


DEADLINE_RULES = [
    DeadlineRule(BlockerType.MISSING_SI, "si_cutoff", "si_submitted"),
    DeadlineRule(BlockerType.MISSING_VGM, "vgm_cutoff", "vgm_submitted"),
    DeadlineRule(BlockerType.MISSING_CARGO_GATE_IN, "cargo_cutoff", "gate_in_complete"),
]


@dataclass(frozen=True)
class BlockerFinding:
    blocker_type: BlockerType
    severity: BlockerSeverity
    deadline: datetime
    days_overdue: float
    expected_state: str


def severity_for(
    days_overdue: float,
    high_after_days: float = 1.0,
    critical_after_days: float = 3.0,
) -> BlockerSeverity:
    """Scale severity by how long the deadline has been missed.

    Under a day is medium, from ``high_after_days`` it is high and from
    ``critical_after_days`` critical.
    """
    if days_overdue >= critical_after_days:
        return BlockerSeverity.CRITICAL
    if days_overdue >= high_after_days:
        return BlockerSeverity.HIGH
    return BlockerSeverity.MEDIUM


def is_open_shipment(status: ShipmentStatus | str | None, phase: Phase | str | None) -> bool:
    """Only shipments still in play get new blockers."""
    status_value = status.value if isinstance(status, ShipmentStatus) else (status or ShipmentStatus.OPEN.value)
    phase_value = phase.value if isinstance(phase, Phase) else phase
    return status_value == ShipmentStatus.OPEN.value and phase_value != Phase.DELIVERY.value


def is_satisfied(
    rule: DeadlineRule,
    reached_states: set[str],
    max_rank: int | None,
    table: WorkflowStateTable,
) -> bool:
    """The expected state occurred, or the shipment has already moved past it."""
    if rule.expected_state in reached_states:
        return True
    return max_rank is not None and max_rank >= table.rank_of(rule.expected_state)


def derive_blockers(
    deadlines: dict[str, datetime | None],
    reached_states: set[str],
    max_rank: int | None,
    now: datetime,
    table: WorkflowStateTable,
    high_after_days: float = 1.0,
    critical_after_days: float = 3.0,
) -> list[BlockerFinding]:
    """Return one finding per missed deadline whose expected state never arrived.

    Args:
        deadlines: Mapping of deadline field (si_cutoff, vgm_cutoff, cargo_cutoff) to datetime
        reached_states: State codes seen on the shipment's timeline
        max_rank: Highest accepted rank, None for an empty timeline
        now: Evaluation time
        table: Workflow state table used to rank expected states

    Returns:
        List of BlockerFinding, empty when nothing is overdue.
    """
    findings: list[BlockerFinding] = []
    now = as_utc(now)
    for rule in DEADLINE_RULES:
        deadline = as_utc(deadlines.get(rule.deadline_field))
        if deadline is None or now <= deadline:
            continue
        if is_satisfied(rule, reached_states, max_rank, table):
            continue
        days_overdue = (now - deadline).total_seconds() / 86400
        findings.append(BlockerFinding(
            blocker_type=rule.blocker_type,
            severity=severity_for(days_overdue, high_after_days, critical_after_days),
            deadline=deadline,
            days_overdue=round(days_overdue, 2),
            expected_state=rule.expected_state,
        ))
    return findings
