"""Prescription schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PrescriptionItemCreate(BaseModel):
    """One medication line; ``unit_price`` and ``name`` are snapshotted onto the invoice."""

    inventory_item_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0, le=10_000)
    dosage: str = Field(..., min_length=1, max_length=500)
    duration: str = Field(..., min_length=1, max_length=200)
    unit_price: Decimal = Field(..., ge=0, max_digits=10, decimal_places=2)

    @property
    def line_total(self) -> Decimal:
        """Quantity times unit price."""
        return self.unit_price * self.quantity


class PrescriptionCreate(BaseModel):
    """Schema for issuing a prescription against an appointment."""

    appointment_id: UUID
    pet_id: UUID
    instructions: str = Field(default="", max_length=5000)
    items: list[PrescriptionItemCreate] = Field(..., min_length=1, max_length=50)

    @field_validator("instructions")
    @classmethod
    def strip_instructions(cls, v: str) -> str:
        """Trim surrounding whitespace."""
        return v.strip()


class PrescriptionIssued(BaseModel):
    """Result of a committed posting."""

    message: str = "Prescription issued and charged to the invoice"
    prescription_id: UUID
    invoice_id: UUID
    invoice_total: Decimal
    items_posted: int


class PrescriptionItemResponse(BaseModel):
    """Prescription item as stored."""

    id: UUID
    position: int
    inventory_item_id: UUID
    quantity: int
    dosage: str
    duration: str

    model_config = {"from_attributes": True}


class PrescriptionResponse(BaseModel):
    """Prescription with its items."""

    id: UUID
    appointment_id: UUID
    pet_id: UUID
    staff_id: UUID
    instructions: str
    status: str
    document_url: str | None = None
    created_at: datetime
    items: list[PrescriptionItemResponse]

    model_config = {"from_attributes": True}
