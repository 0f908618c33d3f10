"""
Match Lifecycle
---------------
Status transition rules and user actions for persisted device matches.

The transition graph is only enforced when the service runs with
strict transitions; otherwise any status may follow any other.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, FrozenSet

from stolen_ai.common.errors import InvalidStatusTransition, ValidationError
from stolen_ai.common.schemas import MatchStatus


ALLOWED_TRANSITIONS: Dict[MatchStatus, FrozenSet[MatchStatus]] = {
    MatchStatus.PENDING: frozenset({MatchStatus.CONTACTED, MatchStatus.REJECTED}),
    MatchStatus.CONTACTED: frozenset({MatchStatus.VERIFIED, MatchStatus.REJECTED}),
    MatchStatus.VERIFIED: frozenset({MatchStatus.RECOVERED, MatchStatus.REJECTED}),
    MatchStatus.RECOVERED: frozenset(),
    MatchStatus.REJECTED: frozenset(),
}


class MatchAction(str, Enum):
    CONTACT = "contact"
    VERIFY = "verify"
    RECOVER = "recover"
    REJECT = "reject"


ACTION_STATUS: Dict[MatchAction, MatchStatus] = {
    MatchAction.CONTACT: MatchStatus.CONTACTED,
    MatchAction.VERIFY: MatchStatus.VERIFIED,
    MatchAction.RECOVER: MatchStatus.RECOVERED,
    MatchAction.REJECT: MatchStatus.REJECTED,
}


def is_terminal(status: MatchStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def can_transition(current: MatchStatus, new: MatchStatus) -> bool:
    return current == new or new in ALLOWED_TRANSITIONS[current]


def validate_status_transition(current: MatchStatus, new: MatchStatus) -> None:
    """Raise InvalidStatusTransition when `new` may not follow `current`"""
    if not can_transition(current, new):
        raise InvalidStatusTransition(current, new)


def status_for_action(action: str | MatchAction) -> MatchStatus:
    """Map a user action (contact/verify/recover/reject) to its match status"""
    try:
        return ACTION_STATUS[MatchAction(action)]
    except ValueError:
        raise ValidationError(f"Invalid action: {action}") from None
