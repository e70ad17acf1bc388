"""Telephony call status lifecycle.

    initiated -> ringing / answered -> in-progress -> completed | failed | busy | no-answer

Terminal statuses accept no further transitions, and re-applying the current
status is a no-op.
"""

from __future__ import annotations

from enum import Enum


class CallStatus(str, Enum):
    INITIATED = "initiated"
    QUEUED = "queued"
    RINGING = "ringing"
    ANSWERED = "answered"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    FAILED = "failed"
    BUSY = "busy"
    NO_ANSWER = "no-answer"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {
        CallStatus.COMPLETED,
        CallStatus.FAILED,
        CallStatus.BUSY,
        CallStatus.NO_ANSWER,
        CallStatus.CANCELED,
    }
)

# Providers may skip stages (e.g. ringing -> completed), so order is by rank.
_RANK = {
    CallStatus.INITIATED: 0,
    CallStatus.QUEUED: 0,
    CallStatus.RINGING: 1,
    CallStatus.ANSWERED: 2,
    CallStatus.IN_PROGRESS: 3,
}
_TERMINAL_RANK = 4


def parse_status(value: str | None) -> CallStatus | None:
    try:
        return CallStatus((value or "").strip().lower())
    except ValueError:
        return None


def rank(status: CallStatus) -> int:
    return _TERMINAL_RANK if status.is_terminal else _RANK[status]


def can_transition(current: CallStatus | str | None, new: CallStatus) -> bool:
    """Whether a call in `current` status may move to `new`."""

    current_status = parse_status(current) if not isinstance(current, CallStatus) else current
    if current_status is None:
        return True
    if current_status.is_terminal:
        return False
    return rank(new) > rank(current_status)
