from __future__ import annotations


# Interview slot statuses.
SLOT_SCHEDULED = "scheduled"
SLOT_IN_PROGRESS = "in_progress"
SLOT_COMPLETED = "completed"
SLOT_CANCELLED = "cancelled"

SLOT_STATUSES: tuple[str, ...] = (SLOT_SCHEDULED, SLOT_IN_PROGRESS, SLOT_COMPLETED, SLOT_CANCELLED)

SLOT_GRAPH: dict[str, frozenset[str]] = {
    SLOT_SCHEDULED: frozenset({SLOT_IN_PROGRESS, SLOT_CANCELLED}),
    SLOT_IN_PROGRESS: frozenset({SLOT_COMPLETED, SLOT_CANCELLED}),
    SLOT_COMPLETED: frozenset(),
    SLOT_CANCELLED: frozenset(),
}

# Slots that still show up in reminder lists.
UPCOMING_SLOT_STATUSES: frozenset[str] = frozenset({SLOT_SCHEDULED, SLOT_IN_PROGRESS})


# Per-assignment statuses.
PENDING_CONFIRMATION = "pending_confirmation"
CONFIRMED = "confirmed"
JOINED = "joined"
COMPLETED = "completed"
NO_SHOW = "no_show"
CANCELLED = "cancelled"

ASSIGNMENT_STATUSES: tuple[str, ...] = (PENDING_CONFIRMATION, CONFIRMED, JOINED, COMPLETED, NO_SHOW, CANCELLED)

# NO_SHOW is final: a slot cancelled afterwards leaves the record alone.
ASSIGNMENT_GRAPH: dict[str, frozenset[str]] = {
    PENDING_CONFIRMATION: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({JOINED, NO_SHOW, CANCELLED}),
    JOINED: frozenset({COMPLETED, CANCELLED}),
    COMPLETED: frozenset(),
    NO_SHOW: frozenset(),
    CANCELLED: frozenset(),
}

# Assignments that still occupy a seat for their student.
LIVE_ASSIGNMENT_STATUSES: frozenset[str] = frozenset({PENDING_CONFIRMATION, CONFIRMED, JOINED, COMPLETED, NO_SHOW})


def can_transition_slot(from_status: str | None, to_status: str | None) -> bool:
    if from_status not in SLOT_GRAPH or to_status not in SLOT_GRAPH:
        return False
    return to_status in SLOT_GRAPH[from_status]


def can_transition_assignment(from_status: str | None, to_status: str | None) -> bool:
    if from_status not in ASSIGNMENT_GRAPH or to_status not in ASSIGNMENT_GRAPH:
        return False
    return to_status in ASSIGNMENT_GRAPH[from_status]
