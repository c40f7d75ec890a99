"""Tests for notification dispatch and the mail transport."""

from datetime import UTC, date, datetime, time
from unittest.mock import AsyncMock
from uuid import uuid4

import httpx
import pytest
from conftest import RecordingTransport

from app.config import settings
from app.core.exceptions import TransientNotificationError
from app.core.mail import EmailMessage, MailTransport
from app.schemas.appointments import AppointmentResponse
from app.schemas.notifications import NotificationEvent
from app.schemas.users import Recipient
from app.services.notification_service import (
    AppointmentConfirmedFollowUp,
    AppointmentRejected,
    NotificationDispatcher,
    build_notification,
    render_notification,
)


@pytest.fixture
def appointment() -> AppointmentResponse:
    now = datetime.now(UTC)
    return AppointmentResponse(
        id=uuid4(),
        pet_id=uuid4(),
        client_id=uuid4(),
        appointment_date=date(2026, 1, 20),
        appointment_time=time(10, 0),
        service_type="Consulta General",
        notes="",
        status="requested",
        staff_initiated=False,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def recipient() -> Recipient:
    return Recipient(email="owner@example.com", full_name="Ana <Owner>")


def mailgun_settings(**overrides):
    values = {
        "mailgun_api_key": "key-123",
        "mailgun_domain": "mg.example.com",
        "mailgun_from_email": "",
        "mailgun_api_base_url": "https://api.mailgun.test",
    }
    values.update(overrides)
    return settings.model_copy(update=values)


@pytest.mark.asyncio
@pytest.mark.parametrize("event", list(NotificationEvent))
async def test_every_event_is_delivered(event, appointment, recipient) -> None:
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport)

    result = await dispatcher.notify(event, appointment, recipient, {"staff_name": "Dr. Vera"})

    assert result.event == event.value
    assert result.email_sent is True
    assert result.email_error is None
    assert transport.sent[0].to == "owner@example.com"
    # Names are escaped into the HTML body
    assert "Ana &lt;Owner&gt;" in transport.sent[0].html_body


@pytest.mark.asyncio
async def test_event_accepts_plain_string(appointment, recipient) -> None:
    dispatcher = NotificationDispatcher(RecordingTransport())
    result = await dispatcher.notify("APPOINTMENT_REQUESTED", appointment, recipient)
    assert result.event == "APPOINTMENT_REQUESTED"
    assert result.email_sent is True


@pytest.mark.asyncio
async def test_unknown_event_is_noop(appointment, recipient) -> None:
    transport = RecordingTransport()
    dispatcher = NotificationDispatcher(transport)

    result = await dispatcher.notify("APPOINTMENT_RESCHEDULED", appointment, recipient)

    assert result.event == "APPOINTMENT_RESCHEDULED"
    assert result.email_sent is False
    assert result.email_error is None
    assert transport.sent == []


@pytest.mark.asyncio
async def test_transport_failure_is_captured(appointment, recipient) -> None:
    transport = RecordingTransport()
    transport.error = "connection refused"
    dispatcher = NotificationDispatcher(transport)

    result = await dispatcher.notify(NotificationEvent.APPOINTMENT_UNDER_REVIEW, appointment, recipient)

    assert result.email_sent is False
    assert result.email_error == "connection refused"


@pytest.mark.asyncio
async def test_unexpected_transport_error_is_captured(appointment, recipient) -> None:
    transport = AsyncMock()
    transport.send.side_effect = RuntimeError("boom")
    dispatcher = NotificationDispatcher(transport)

    result = await dispatcher.notify(NotificationEvent.APPOINTMENT_REQUESTED, appointment, recipient)

    assert result.email_sent is False
    assert result.email_error == "boom"


def test_build_notification_carries_metadata(appointment, recipient) -> None:
    follow_up = build_notification(
        NotificationEvent.APPOINTMENT_CONFIRMED_FOLLOWUP,
        appointment,
        recipient,
        {"staff_name": "Dr. Vera"},
    )
    assert isinstance(follow_up, AppointmentConfirmedFollowUp)
    assert follow_up.staff_name == "Dr. Vera"

    rejected = build_notification(NotificationEvent.APPOINTMENT_REJECTED, appointment, recipient)
    assert isinstance(rejected, AppointmentRejected)
    assert rejected.reason is None


def test_rejection_without_reason_omits_block(appointment, recipient) -> None:
    message = render_notification(AppointmentRejected(appointment=appointment, client=recipient))
    assert "Reason" not in message.html_body

    message = render_notification(
        AppointmentRejected(appointment=appointment, client=recipient, reason="Fully booked")
    )
    assert "Fully booked" in message.html_body


@pytest.mark.asyncio
async def test_simulated_delivery_without_credentials(appointment, recipient) -> None:
    transport = MailTransport(mailgun_settings(mailgun_api_key="", mailgun_domain=""))
    dispatcher = NotificationDispatcher(transport)

    result = await dispatcher.notify(NotificationEvent.APPOINTMENT_REQUESTED, appointment, recipient)

    assert result.email_sent is True
    assert result.simulated is True


@pytest.mark.asyncio
async def test_mailgun_request() -> None:
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(200, json={"id": "<abc@mg.example.com>", "message": "Queued"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = MailTransport(mailgun_settings(), client=http_client)
        receipt = await transport.send(
            EmailMessage(to="owner@example.com", subject="Hello", html_body="<p>Hi</p>")
        )

    assert receipt.simulated is False
    assert receipt.message_id == "<abc@mg.example.com>"

    request = captured[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.mailgun.test/v3/mg.example.com/messages"
    assert request.headers["authorization"].startswith("Basic ")
    body = request.content.decode()
    assert "to=owner%40example.com" in body
    assert "subject=Hello" in body


@pytest.mark.asyncio
async def test_mailgun_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, text="Forbidden")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = MailTransport(mailgun_settings(), client=http_client)
        with pytest.raises(TransientNotificationError) as exc_info:
            await transport.send(EmailMessage(to="a@example.com", subject="s", html_body="b"))

    assert "HTTP 401" in exc_info.value.message


@pytest.mark.asyncio
async def test_mailgun_network_error_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        transport = MailTransport(mailgun_settings(), client=http_client)
        with pytest.raises(TransientNotificationError):
            await transport.send(EmailMessage(to="a@example.com", subject="s", html_body="b"))


def test_sender_defaults_to_clinic_name() -> None:
    transport = MailTransport(mailgun_settings(clinic_name="Happy Paws"))
    assert transport.sender == '"Happy Paws" <no-reply@mg.example.com>'

    transport = MailTransport(mailgun_settings(mailgun_from_email="desk@happypaws.example"))
    assert transport.sender == "desk@happypaws.example"
