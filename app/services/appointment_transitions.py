"""Appointment status transition rules.

Pure functions only: nothing here touches the database, so a transition can
be rejected before any write happens.
"""

from app.core.exceptions import BadRequestException, InvalidStateException
from app.schemas.appointments import (
    RECOGNIZED_STATUSES,
    AppointmentStatus,
    normalize_status,
)
from app.schemas.notifications import NotificationEvent

S = AppointmentStatus

TRANSITIONS: dict[AppointmentStatus, tuple[AppointmentStatus, ...]] = {
    S.REQUESTED: (S.UNDER_REVIEW, S.REJECTED, S.CANCELLED),
    S.UNDER_REVIEW: (S.CONFIRMED, S.REJECTED, S.CANCELLED),
    S.CONFIRMED: (S.COMPLETED, S.CANCELLED),
    S.REJECTED: (),
    S.COMPLETED: (),
    S.CANCELLED: (),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Keyed by (target status, staff initiated). Follow-ups were already announced
# when staff created them, so confirming one sends nothing.
STATUS_CHANGE_EVENTS: dict[tuple[AppointmentStatus, bool], NotificationEvent] = {
    (S.CONFIRMED, False): NotificationEvent.APPOINTMENT_CONFIRMED_CLIENT,
    (S.REJECTED, False): NotificationEvent.APPOINTMENT_REJECTED,
    (S.REJECTED, True): NotificationEvent.APPOINTMENT_REJECTED,
}


def parse_status(value: str) -> AppointmentStatus:
    """
    Parse a requested status, accepting legacy names.

    Raises:
        BadRequestException: INVALID_STATUS if the value is not recognized
    """
    try:
        return normalize_status(value)
    except ValueError:
        raise BadRequestException(
            f"Invalid status '{value}'. Allowed values: {', '.join(RECOGNIZED_STATUSES)}",
            error_code="INVALID_STATUS",
            details={"requested_status": value, "allowed_values": list(RECOGNIZED_STATUSES)},
        )


def allowed_transitions(current: str | AppointmentStatus) -> list[AppointmentStatus]:
    """Legal next statuses for ``current``."""
    return list(TRANSITIONS[normalize_status(current)])


def can_transition(current: str | AppointmentStatus, target: str | AppointmentStatus) -> bool:
    """Check whether the table has an edge from ``current`` to ``target``."""
    return normalize_status(target) in TRANSITIONS[normalize_status(current)]


def ensure_transition(
    current: str | AppointmentStatus,
    target: str | AppointmentStatus,
) -> AppointmentStatus:
    """
    Validate a move along the transition table.

    Returns:
        The canonical target status

    Raises:
        InvalidStateException: INVALID_STATE_TRANSITION if the table forbids the move
    """
    source = normalize_status(current)
    destination = normalize_status(target)
    allowed = TRANSITIONS[source]

    if destination not in allowed:
        raise InvalidStateException(
            f'Invalid transition: cannot change from "{source.value}" to "{destination.value}"',
            error_code="INVALID_STATE_TRANSITION",
            details={
                "current_status": source.value,
                "requested_status": destination.value,
                "allowed_transitions": [status.value for status in allowed],
            },
        )

    return destination


def notification_event_for(
    target: AppointmentStatus,
    staff_initiated: bool,
) -> NotificationEvent | None:
    """Event to fire after a generic status change, if any."""
    return STATUS_CHANGE_EVENTS.get((target, staff_initiated))
