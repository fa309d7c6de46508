from __future__ import annotations

# Canonical invitation statuses.
PENDING = "pending"
NEGOTIATING = "negotiating"
ACCEPTED = "accepted"
DECLINED = "declined"
EXPIRED = "expired"


ALL_STATUSES: tuple[str, ...] = (
    PENDING,
    NEGOTIATING,
    ACCEPTED,
    DECLINED,
    EXPIRED,
)

OPEN_STATUSES: frozenset[str] = frozenset({PENDING, NEGOTIATING})


# Explicit state diagram. NEGOTIATING -> NEGOTIATING is a further counter round.
INVITATION_GRAPH: dict[str, frozenset[str]] = {
    PENDING: frozenset({ACCEPTED, DECLINED, NEGOTIATING, EXPIRED}),
    NEGOTIATING: frozenset({ACCEPTED, DECLINED, NEGOTIATING, EXPIRED}),
    ACCEPTED: frozenset(),
    DECLINED: frozenset(),
    EXPIRED: frozenset(),
}


# History vocabulary.
ACTION_PROPOSED = "proposed"
ACTION_ACCEPTED = "accepted"
ACTION_DECLINED = "declined"
ACTION_COUNTER_PROPOSED = "counter_proposed"
ACTION_EXPIRED = "expired"

ACTOR_RECRUITER = "recruiter"
ACTOR_COLLEGE = "college"
ACTOR_SYSTEM = "system"


def normalize_status(raw: str | None) -> str | None:
    if raw is None:
        return None
    normalized = raw.strip().lower()
    return normalized or None


def is_known_status(value: str | None) -> bool:
    return normalize_status(value) in INVITATION_GRAPH


def can_transition(from_status: str | None, to_status: str | None) -> bool:
    from_normalized = normalize_status(from_status)
    to_normalized = normalize_status(to_status)

    if to_normalized is None or to_normalized not in INVITATION_GRAPH:
        return False

    # New invitations always enter as pending.
    if from_normalized is None:
        return to_normalized == PENDING

    if from_normalized not in INVITATION_GRAPH:
        return False

    return to_normalized in INVITATION_GRAPH[from_normalized]

