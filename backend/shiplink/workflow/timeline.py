"""Pure journey timeline functions. No database access.

Events are sorted by when the document was received, then walked once while
tracking the highest rank seen. An event below that rank never moves the
current state back; it is reported as an anomaly instead.
"""

from dataclasses import dataclass, field
from datetime import datetime

from shiplink.timeutil import as_utc
from shiplink.workflow.states import Phase


@dataclass(frozen=True)
class WorkflowEvent:
    email_id: str
    state_code: str
    phase: Phase
    rank: int
    occurred_at: datetime


@dataclass(frozen=True)
class Anomaly:
    email_id: str
    state_code: str
    rank: int
    expected_min_rank: int
    gap: int
    occurred_at: datetime


@dataclass
class Timeline:
    events: list[WorkflowEvent] = field(default_factory=list)
    accepted: list[WorkflowEvent] = field(default_factory=list)
    anomalies: list[Anomaly] = field(default_factory=list)

    @property
    def current(self) -> WorkflowEvent | None:
        return self.accepted[-1] if self.accepted else None

    @property
    def max_rank(self) -> int | None:
        return self.current.rank if self.current else None

    @property
    def reached_states(self) -> set[str]:
        return {e.state_code for e in self.events}


def event_order(event: WorkflowEvent) -> tuple:
    # Same-instant events walk in ascending rank so the higher one ends up current
    return (as_utc(event.occurred_at), event.rank, event.email_id)


def build_timeline(events: list[WorkflowEvent]) -> Timeline:
    """Order events and split them into accepted steps and anomalies."""
    timeline = Timeline(events=sorted(events, key=event_order))
    max_rank_seen: int | None = None
    for event in timeline.events:
        if max_rank_seen is None or event.rank >= max_rank_seen:
            timeline.accepted.append(event)
            max_rank_seen = event.rank
            continue
        timeline.anomalies.append(Anomaly(
            email_id=event.email_id,
            state_code=event.state_code,
            rank=event.rank,
            expected_min_rank=max_rank_seen,
            gap=max_rank_seen - event.rank,
            occurred_at=event.occurred_at,
        ))
    return timeline
