"""Notification dispatch for appointment lifecycle events.

Each event kind is its own payload type. ``render_notification`` matches on
the type, so adding an event without a template is caught by the type
checker through ``assert_never``.
"""

from datetime import date, time
from html import escape
from typing import Annotated, Any, Literal, assert_never

import structlog
from pydantic import BaseModel, Field

from app.config import settings
from app.core.exceptions import TransientNotificationError
from app.core.mail import EmailMessage, MailTransport
from app.schemas.appointments import AppointmentResponse
from app.schemas.notifications import NotificationEvent, NotificationResult
from app.schemas.users import Recipient

logger = structlog.get_logger(__name__)

E = NotificationEvent


class AppointmentRequested(BaseModel):
    """Client request received."""

    kind: Literal[E.APPOINTMENT_REQUESTED] = E.APPOINTMENT_REQUESTED
    appointment: AppointmentResponse
    client: Recipient


class AppointmentUnderReview(BaseModel):
    """Staff opened the request."""

    kind: Literal[E.APPOINTMENT_UNDER_REVIEW] = E.APPOINTMENT_UNDER_REVIEW
    appointment: AppointmentResponse
    client: Recipient


class AppointmentConfirmedClient(BaseModel):
    """Staff approved a client request."""

    kind: Literal[E.APPOINTMENT_CONFIRMED_CLIENT] = E.APPOINTMENT_CONFIRMED_CLIENT
    appointment: AppointmentResponse
    client: Recipient


class AppointmentConfirmedFollowUp(BaseModel):
    """Staff scheduled a follow-up directly."""

    kind: Literal[E.APPOINTMENT_CONFIRMED_FOLLOWUP] = E.APPOINTMENT_CONFIRMED_FOLLOWUP
    appointment: AppointmentResponse
    client: Recipient
    staff_name: str


class AppointmentRejected(BaseModel):
    """Staff rejected the request."""

    kind: Literal[E.APPOINTMENT_REJECTED] = E.APPOINTMENT_REJECTED
    appointment: AppointmentResponse
    client: Recipient
    reason: str | None = None


AppointmentNotification = Annotated[
    AppointmentRequested
    | AppointmentUnderReview
    | AppointmentConfirmedClient
    | AppointmentConfirmedFollowUp
    | AppointmentRejected,
    Field(discriminator="kind"),
]


def build_notification(
    event: NotificationEvent,
    appointment: AppointmentResponse,
    client: Recipient,
    metadata: dict[str, Any] | None = None,
) -> AppointmentNotification:
    """Assemble the typed payload for ``event`` from loose metadata."""
    metadata = metadata or {}
    match event:
        case E.APPOINTMENT_REQUESTED:
            return AppointmentRequested(appointment=appointment, client=client)
        case E.APPOINTMENT_UNDER_REVIEW:
            return AppointmentUnderReview(appointment=appointment, client=client)
        case E.APPOINTMENT_CONFIRMED_CLIENT:
            return AppointmentConfirmedClient(appointment=appointment, client=client)
        case E.APPOINTMENT_CONFIRMED_FOLLOWUP:
            return AppointmentConfirmedFollowUp(
                appointment=appointment,
                client=client,
                staff_name=metadata.get("staff_name") or "our veterinary team",
            )
        case E.APPOINTMENT_REJECTED:
            return AppointmentRejected(
                appointment=appointment,
                client=client,
                reason=metadata.get("reason"),
            )
        case _:
            assert_never(event)


def _format_date(value: date) -> str:
    return value.strftime("%A, %B %d, %Y")


def _format_time(value: time) -> str:
    return value.strftime("%H:%M")


def _layout(color: str, heading: str, greeting_name: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: {color}; color: white; padding: 20px; text-align: center;">
      <h1>{escape(settings.clinic_name)}</h1>
    </div>
    <div style="background: #f9f9f9; padding: 20px;">
      <h2>{heading}</h2>
      <p>Hello <strong>{escape(greeting_name)}</strong>,</p>
      {body}
      <p style="text-align: center; color: #666; font-size: 12px;">
        {escape(settings.clinic_name)} appointments. This is an automated message, please do not reply.
      </p>
    </div>
  </div>
</body>
</html>
"""


def _details(appointment: AppointmentResponse, label: str = "Appointment details") -> str:
    return f"""<div style="background: white; padding: 15px; margin: 20px 0;">
        <h3>{label}</h3>
        <ul>
          <li><strong>Date:</strong> {_format_date(appointment.appointment_date)}</li>
          <li><strong>Time:</strong> {_format_time(appointment.appointment_time)}</li>
          <li><strong>Service:</strong> {escape(appointment.service_type)}</li>
        </ul>
      </div>"""


def render_notification(notification: AppointmentNotification) -> EmailMessage:
    """Turn a typed notification into an email."""
    clinic = settings.clinic_name
    match notification:
        case AppointmentRequested(appointment=appointment, client=client):
            subject = f"Appointment request received - {clinic}"
            html = _layout(
                "#3b82f6",
                "We received your appointment request",
                client.full_name,
                "<p>Your request was registered and is waiting for a veterinarian to review it.</p>"
                + _details(appointment, "Requested slot")
                + "<p>We will email you again as soon as it is reviewed.</p>",
            )
        case AppointmentUnderReview(appointment=appointment, client=client):
            subject = f"Your appointment is under review - {clinic}"
            html = _layout(
                "#f59e0b",
                "A specialist is reviewing your request",
                client.full_name,
                "<p>One of our veterinarians is checking availability for your request.</p>"
                + _details(appointment, "Requested slot"),
            )
        case AppointmentConfirmedClient(appointment=appointment, client=client):
            subject = f"Appointment confirmed - {clinic}"
            html = _layout(
                "#10b981",
                "Your appointment is confirmed",
                client.full_name,
                "<p>Your appointment request has been <strong>confirmed</strong>.</p>"
                + _details(appointment)
                + "<p>Please arrive 10 minutes early and bring your pet's vaccination record. "
                "If you need to cancel, let us know 24 hours in advance.</p>",
            )
        case AppointmentConfirmedFollowUp(appointment=appointment, client=client, staff_name=staff):
            subject = f"Follow-up appointment scheduled - {clinic}"
            html = _layout(
                "#8b5cf6",
                "A follow-up appointment was scheduled",
                client.full_name,
                f"<p>{escape(staff)} scheduled a follow-up visit for your pet.</p>"
                + _details(appointment),
            )
        case AppointmentRejected(appointment=appointment, client=client, reason=reason):
            subject = f"Appointment not available - {clinic}"
            reason_block = (
                f'<div style="background: #fee2e2; padding: 15px;"><h3>Reason</h3>'
                f"<p>{escape(reason)}</p></div>"
                if reason
                else ""
            )
            html = _layout(
                "#ef4444",
                "Appointment not available",
                client.full_name,
                "<p>Unfortunately we cannot see you at the requested date and time.</p>"
                + _details(appointment, "Requested slot")
                + reason_block
                + "<p>Please pick a new slot from your account.</p>",
            )
        case _:
            assert_never(notification)

    return EmailMessage(to=client.email, subject=subject, html_body=html)


class NotificationDispatcher:
    """Map lifecycle events to emails and hand them to the mail transport.

    ``notify`` never raises: every failure comes back inside the
    ``NotificationResult`` so the calling state change is unaffected.
    """

    def __init__(self, transport: MailTransport):
        """Initialize dispatcher with a mail transport."""
        self.transport = transport

    async def notify(
        self,
        event: NotificationEvent | str,
        appointment: AppointmentResponse,
        client: Recipient,
        metadata: dict[str, Any] | None = None,
    ) -> NotificationResult:
        """
        Render and deliver the email for ``event``.

        Args:
            event: Event name or enum member
            appointment: Appointment the event is about
            client: Recipient of the email
            metadata: Extra template data (``staff_name``, ``reason``)

        Returns:
            Delivery outcome; unknown events are a no-op
        """
        try:
            kind = NotificationEvent(event)
        except ValueError:
            logger.warning("notification_event_unknown", notification_event=str(event))
            return NotificationResult(event=str(event))

        try:
            message = render_notification(build_notification(kind, appointment, client, metadata))
            receipt = await self.transport.send(message)
        except TransientNotificationError as e:
            logger.warning(
                "notification_failed",
                notification_event=kind.value,
                appointment_id=str(appointment.id),
                error=e.message,
            )
            return NotificationResult(event=kind.value, email_sent=False, email_error=e.message)
        except Exception as e:
            logger.error(
                "notification_failed",
                notification_event=kind.value,
                appointment_id=str(appointment.id),
                error=str(e),
                exc_info=e,
            )
            return NotificationResult(event=kind.value, email_sent=False, email_error=str(e))

        logger.info(
            "notification_dispatched",
            notification_event=kind.value,
            appointment_id=str(appointment.id),
            simulated=receipt.simulated,
        )
        return NotificationResult(event=kind.value, email_sent=True, simulated=receipt.simulated)
