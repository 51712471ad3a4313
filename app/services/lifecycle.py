"""State machines for bookings and appointments.

Each lifecycle is a table of named actions. An action lists the statuses
it may start from, the status it leads to and which side may perform it.
Use-case code calls ``apply`` and never compares status strings itself.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from app.core.exceptions import IllegalTransition, NotAuthorized
from app.models.appointment import AppointmentStatus
from app.models.booking import BookingStatus, CancelledBy
from app.services.timeslots import utcnow

logger = logging.getLogger(__name__)

OWNER = "owner"
USER = "user"


@dataclass(frozen=True)
class Transition:
    action: str
    sources: frozenset
    target: str
    actor: str


@dataclass(frozen=True)
class Lifecycle:
    kind: str
    status_attr: str
    transitions: dict
    terminal: frozenset

    def transition_for(self, action: str) -> Transition:
        try:
            return self.transitions[action]
        except KeyError:
            raise ValueError(f"Unknown {self.kind} action '{action}'")

    def can(self, record, action: str) -> bool:
        return getattr(record, self.status_attr) in self.transition_for(action).sources

    def apply(self, record, action: str, actor: str, reason: Optional[str] = None) -> str:
        """Move ``record`` through ``action``; return the status it left.

        The record is only mutated when the transition is allowed.
        """
        transition = self.transition_for(action)
        if actor != transition.actor:
            raise NotAuthorized(f"Only the {transition.actor} can {action} this {self.kind}")

        current = getattr(record, self.status_attr)
        if current not in transition.sources:
            raise IllegalTransition(action, current, self.kind)

        now = utcnow()
        setattr(record, self.status_attr, transition.target)
        if transition.target == "completed":
            record.completed_at = now
        elif transition.target in ("cancelled", "rejected"):
            record.cancelled_at = now
            record.cancelled_by = CancelledBy.USER.value if actor == USER else CancelledBy.PROVIDER.value
            if reason:
                record.cancellation_reason = reason

        logger.info("%s %s: %s -> %s (%s by %s)", self.kind, record.id, current, transition.target, action, actor)
        return current


def _table(*transitions: Transition) -> dict:
    return {t.action: t for t in transitions}


_B = BookingStatus
BOOKING_LIFECYCLE = Lifecycle(
    kind="booking",
    status_attr="booking_status",
    transitions=_table(
        Transition("accept", frozenset({_B.PENDING.value}), _B.CONFIRMED.value, OWNER),
        Transition("reject", frozenset({_B.PENDING.value, _B.CONFIRMED.value}), _B.REJECTED.value, OWNER),
        Transition("start", frozenset({_B.CONFIRMED.value}), _B.IN_PROGRESS.value, OWNER),
        Transition("complete", frozenset({_B.CONFIRMED.value, _B.IN_PROGRESS.value}), _B.COMPLETED.value, OWNER),
        Transition(
            "cancel",
            frozenset({_B.PENDING.value, _B.CONFIRMED.value, _B.IN_PROGRESS.value}),
            _B.CANCELLED.value,
            USER,
        ),
    ),
    terminal=frozenset({_B.COMPLETED.value, _B.CANCELLED.value, _B.REJECTED.value}),
)

_A = AppointmentStatus
APPOINTMENT_LIFECYCLE = Lifecycle(
    kind="appointment",
    status_attr="appointment_status",
    transitions=_table(
        Transition("accept", frozenset({_A.PENDING.value}), _A.CONFIRMED.value, OWNER),
        Transition("reject", frozenset({_A.PENDING.value, _A.CONFIRMED.value}), _A.REJECTED.value, OWNER),
        Transition("start", frozenset({_A.CONFIRMED.value}), _A.IN_PROGRESS.value, OWNER),
        Transition("complete", frozenset({_A.CONFIRMED.value, _A.IN_PROGRESS.value}), _A.COMPLETED.value, OWNER),
        Transition("no_show", frozenset({_A.CONFIRMED.value}), _A.NO_SHOW.value, OWNER),
        Transition(
            "cancel",
            frozenset({_A.PENDING.value, _A.CONFIRMED.value, _A.IN_PROGRESS.value}),
            _A.CANCELLED.value,
            USER,
        ),
    ),
    terminal=frozenset({_A.COMPLETED.value, _A.CANCELLED.value, _A.REJECTED.value, _A.NO_SHOW.value}),
)

# Statuses from which an appointment may move to another date or time.
RESCHEDULABLE_STATUSES = frozenset({_A.PENDING.value, _A.CONFIRMED.value})
