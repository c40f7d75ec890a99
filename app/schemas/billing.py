"""Invoice and payment schemas."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, computed_field


class InvoiceItemResponse(BaseModel):
    """Invoice line as snapshotted at posting time."""

    id: UUID
    position: int
    item_type: str
    item_id: UUID
    description: str
    quantity: int
    unit_price: Decimal

    model_config = {"from_attributes": True}

    @computed_field  # type: ignore[prop-decorator]
    @property
    def line_total(self) -> Decimal:
        """Quantity times unit price."""
        return self.unit_price * self.quantity


class InvoiceResponse(BaseModel):
    """Invoice header."""

    id: UUID
    appointment_id: UUID
    client_id: UUID
    total_amount: Decimal
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class InvoiceDetailResponse(BaseModel):
    """Invoice with its items in posting order."""

    invoice: InvoiceResponse
    items: list[InvoiceItemResponse]


class PaymentIntentCreate(BaseModel):
    """Schema for starting a payment on an invoice."""

    invoice_id: UUID


class PaymentIntentResponse(BaseModel):
    """Stub payment intent; no payment provider is contacted."""

    client_secret: str
    amount: Decimal
    invoice_id: UUID
