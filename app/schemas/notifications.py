"""Notification schemas."""

from enum import Enum

from pydantic import BaseModel


class NotificationEvent(str, Enum):
    """Appointment lifecycle events that produce a client email."""

    APPOINTMENT_REQUESTED = "APPOINTMENT_REQUESTED"
    APPOINTMENT_UNDER_REVIEW = "APPOINTMENT_UNDER_REVIEW"
    APPOINTMENT_CONFIRMED_CLIENT = "APPOINTMENT_CONFIRMED_CLIENT"
    APPOINTMENT_CONFIRMED_FOLLOWUP = "APPOINTMENT_CONFIRMED_FOLLOWUP"
    APPOINTMENT_REJECTED = "APPOINTMENT_REJECTED"


class NotificationResult(BaseModel):
    """Outcome of a best-effort notification, returned next to the state change."""

    event: str | None = None
    email_sent: bool = False
    email_error: str | None = None
    simulated: bool = False

    @classmethod
    def not_sent(cls) -> "NotificationResult":
        """Result for state changes that have no notification mapped."""
        return cls()
