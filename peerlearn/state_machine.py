"""Progress state machines for challenges, teach-backs and feedback items.

Challenge:  open → accepted → in_progress → completed
Teachback:  pending → in_progress → completed
Feedback:   pending → completed (completed items may be reviewed again)

``in_progress → in_progress`` is the "save progress" self-loop. Statuses only
ever move forward; ``completed`` is terminal for challenges and teach-backs.
"""

from __future__ import annotations

from peerlearn.errors import InvalidTransitionError

CHALLENGE_STATUSES: tuple[str, ...] = ("open", "accepted", "in_progress", "completed")
TEACHBACK_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")
FEEDBACK_STATUSES: tuple[str, ...] = ("pending", "completed")

CHALLENGE_TRANSITIONS: dict[str, list[str]] = {
    "open": ["accepted", "in_progress"],
    "accepted": ["in_progress"],
    "in_progress": ["in_progress", "completed"],
    "completed": [],    # terminal
}

TEACHBACK_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["in_progress"],
    "in_progress": ["in_progress", "completed"],
    "completed": [],    # terminal
}

FEEDBACK_TRANSITIONS: dict[str, list[str]] = {
    "pending": ["completed"],
    "completed": ["completed"],  # "Review again"
}

TRANSITIONS: dict[str, dict[str, list[str]]] = {
    "challenge": CHALLENGE_TRANSITIONS,
    "teachback": TEACHBACK_TRANSITIONS,
    "feedback": FEEDBACK_TRANSITIONS,
}


def allowed_targets(entity: str, current: str) -> list[str]:
    return list(TRANSITIONS[entity].get(current, []))


def can_transition(entity: str, current: str, target: str) -> bool:
    """Check whether ``entity`` may move from ``current`` to ``target``."""
    return target in TRANSITIONS[entity].get(current, [])


def validate_transition(entity: str, current: str, target: str) -> None:
    """Raise InvalidTransitionError unless the move is in the entity's table."""
    if not can_transition(entity, current, target):
        raise InvalidTransitionError(
            entity, current, target, allowed_targets(entity, current)
        )
