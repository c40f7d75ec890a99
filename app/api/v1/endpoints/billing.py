"""Invoice and payment endpoints."""

from uuid import UUID

from fastapi import APIRouter, status

from app.dependencies import CurrentUser, DatabaseSession
from app.schemas.billing import InvoiceDetailResponse, PaymentIntentCreate, PaymentIntentResponse
from app.services.billing_service import BillingService

router = APIRouter()


@router.get(
    "/invoices/{appointment_id}",
    response_model=InvoiceDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get the invoice of an appointment",
)
async def get_invoice(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> InvoiceDetailResponse:
    """
    Get the invoice posted for an appointment.

    Args:
        appointment_id: Appointment the invoice belongs to
        current_user: Authenticated user
        db: Database session

    Returns:
        Invoice header and items in posting order
    """
    service = BillingService(db)
    return await service.get_invoice_for_appointment(current_user, appointment_id)


@router.post(
    "/payments/create-intent",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_200_OK,
    summary="Create a payment intent",
)
async def create_payment_intent(
    data: PaymentIntentCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> PaymentIntentResponse:
    """Start a payment for an invoice (mock provider)."""
    service = BillingService(db)
    return await service.create_payment_intent(current_user, data.invoice_id)
