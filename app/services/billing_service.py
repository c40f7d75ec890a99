"""Invoice lookups and the payment intent stub."""

import secrets
from uuid import UUID

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenException, NotFoundException
from app.models.invoices import invoice_items, invoices
from app.schemas.billing import (
    InvoiceDetailResponse,
    InvoiceItemResponse,
    InvoiceResponse,
    PaymentIntentResponse,
)
from app.schemas.users import Principal

logger = structlog.get_logger(__name__)


class BillingService:
    """Read side of invoices posted by prescriptions."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def get_invoice_for_appointment(
        self,
        requester: Principal,
        appointment_id: UUID,
    ) -> InvoiceDetailResponse:
        """
        Get the invoice of an appointment with its items.

        Raises:
            NotFoundException: INVOICE_NOT_FOUND if nothing was posted yet
            ForbiddenException: If a client asks for another client's invoice
        """
        invoice = await self._get_invoice(invoices.c.appointment_id == appointment_id)
        self._check_access(requester, invoice)

        result = await self.db.execute(
            select(invoice_items)
            .where(invoice_items.c.invoice_id == invoice.id)
            .order_by(invoice_items.c.position)
        )
        items = [InvoiceItemResponse.model_validate(dict(row)) for row in result.mappings()]

        return InvoiceDetailResponse(invoice=invoice, items=items)

    async def create_payment_intent(
        self,
        requester: Principal,
        invoice_id: UUID,
    ) -> PaymentIntentResponse:
        """
        Start a payment for the invoice's current total.

        Stub only: returns a mock client secret and writes nothing.
        """
        invoice = await self._get_invoice(invoices.c.id == invoice_id)
        self._check_access(requester, invoice)

        logger.info(
            "payment_intent_created",
            invoice_id=str(invoice.id),
            amount=str(invoice.total_amount),
            simulated=True,
        )

        return PaymentIntentResponse(
            client_secret=f"pi_mock_secret_{secrets.token_hex(8)}",
            amount=invoice.total_amount,
            invoice_id=invoice.id,
        )

    async def _get_invoice(self, condition) -> InvoiceResponse:
        result = await self.db.execute(select(invoices).where(condition))
        row = result.mappings().first()
        if not row:
            raise NotFoundException(
                "No invoice has been generated for this appointment",
                error_code="INVOICE_NOT_FOUND",
            )
        return InvoiceResponse.model_validate(dict(row))

    @staticmethod
    def _check_access(requester: Principal, invoice: InvoiceResponse) -> None:
        if not requester.is_staff and invoice.client_id != requester.id:
            raise ForbiddenException("Access denied to this invoice")
