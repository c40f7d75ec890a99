"""Mail transport for outbound client emails (Mailgun HTTP API)."""

from enum import Enum
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel

from app.config import Settings, settings
from app.core.exceptions import TransientNotificationError

logger = structlog.get_logger(__name__)


class EmailMessage(BaseModel):
    """Rendered email ready for delivery."""

    to: str
    subject: str
    html_body: str


class DeliveryStatus(str, Enum):
    """Delivery outcome reported by the transport."""

    DELIVERED = "delivered"
    SIMULATED = "simulated"


class DeliveryReceipt(BaseModel):
    """Successful hand-off to the mail provider (or a simulated one)."""

    status: DeliveryStatus
    to: str
    subject: str
    message_id: str | None = None

    @property
    def simulated(self) -> bool:
        """Check if no real email left the system."""
        return self.status == DeliveryStatus.SIMULATED


class MailTransport:
    """Send emails through Mailgun, or simulate delivery when unconfigured.

    A single bounded attempt is made per message; failures raise
    ``TransientNotificationError`` and are never retried here.
    """

    def __init__(self, config: Settings, client: httpx.AsyncClient | None = None):
        """Initialize transport from settings and an optional HTTP client."""
        self.config = config
        self._client = client

    @property
    def configured(self) -> bool:
        """Check if real delivery credentials are present."""
        return self.config.mail_configured

    @property
    def sender(self) -> str:
        """From header for outgoing mail."""
        if self.config.mailgun_from_email:
            return self.config.mailgun_from_email
        return f'"{self.config.clinic_name}" <no-reply@{self.config.mailgun_domain}>'

    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        """
        Deliver one email.

        Args:
            message: Rendered email

        Returns:
            Delivery receipt (simulated when credentials are absent)

        Raises:
            TransientNotificationError: If the provider rejects or cannot be reached
        """
        if not self.configured:
            logger.info("email_simulated", to=message.to, subject=message.subject)
            return DeliveryReceipt(
                status=DeliveryStatus.SIMULATED,
                to=message.to,
                subject=message.subject,
            )

        base_url = self.config.mailgun_api_base_url.rstrip("/")
        endpoint = f"{base_url}/v3/{quote(self.config.mailgun_domain, safe='')}/messages"
        payload = {
            "from": self.sender,
            "to": message.to,
            "subject": message.subject,
            "html": message.html_body,
        }

        try:
            if self._client is not None:
                response = await self._post(self._client, endpoint, payload)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._post(client, endpoint, payload)
        except httpx.HTTPError as e:
            raise TransientNotificationError(f"Mailgun email send failed: {e}") from e

        if response.status_code < 200 or response.status_code >= 300:
            raise TransientNotificationError(
                f"Mailgun email send failed HTTP {response.status_code}: {response.text[:300]}"
            )

        message_id = None
        if response.headers.get("content-type", "").startswith("application/json"):
            message_id = response.json().get("id")

        logger.info("email_delivered", to=message.to, subject=message.subject, message_id=message_id)
        return DeliveryReceipt(
            status=DeliveryStatus.DELIVERED,
            to=message.to,
            subject=message.subject,
            message_id=message_id,
        )

    async def _post(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        payload: dict[str, str],
    ) -> httpx.Response:
        return await client.post(
            endpoint,
            data=payload,
            auth=("api", self.config.mailgun_api_key),
            timeout=self.config.mail_timeout_seconds,
        )


def get_mail_transport() -> MailTransport:
    """Dependency for the configured mail transport."""
    return MailTransport(settings)
