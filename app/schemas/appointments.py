"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from app.schemas.notifications import NotificationResult


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    REQUESTED = "requested"
    UNDER_REVIEW = "under_review"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Values written by the single-step approval flow, mapped onto the review flow
LEGACY_STATUS_ALIASES: dict[str, AppointmentStatus] = {
    "pending": AppointmentStatus.UNDER_REVIEW,
    "approved": AppointmentStatus.CONFIRMED,
}

RECOGNIZED_STATUSES: tuple[str, ...] = tuple(s.value for s in AppointmentStatus) + tuple(
    LEGACY_STATUS_ALIASES
)


def normalize_status(value: str | AppointmentStatus) -> AppointmentStatus:
    """
    Map a stored or requested status onto the canonical set.

    Raises:
        ValueError: If the value is not a recognized status
    """
    if isinstance(value, AppointmentStatus):
        return value
    cleaned = value.strip().lower()
    if cleaned in LEGACY_STATUS_ALIASES:
        return LEGACY_STATUS_ALIASES[cleaned]
    return AppointmentStatus(cleaned)


def stored_values_for(status: AppointmentStatus) -> list[str]:
    """All raw column values that read back as ``status``."""
    return [status.value] + [
        legacy for legacy, canonical in LEGACY_STATUS_ALIASES.items() if canonical == status
    ]


class AppointmentBase(BaseModel):
    """Base appointment schema with common fields."""

    pet_id: UUID
    appointment_date: date
    appointment_time: time
    service_type: str = Field(..., min_length=1, max_length=200)
    notes: str | None = Field(None, max_length=2000)

    @field_validator("service_type")
    @classmethod
    def strip_service_type(cls, v: str) -> str:
        """Reject blank service labels."""
        stripped = v.strip()
        if not stripped:
            raise ValueError("Service type must not be blank")
        return stripped


class AppointmentRequestCreate(AppointmentBase):
    """Schema for a client requesting an appointment."""


class FollowUpAppointmentCreate(AppointmentBase):
    """Schema for staff scheduling a follow-up directly."""

    client_id: UUID


class AppointmentStatusUpdate(BaseModel):
    """Schema for updating appointment status.

    ``status`` stays a plain string so unknown values are reported as
    ``INVALID_STATUS`` instead of a generic validation error.
    """

    status: str = Field(..., min_length=1, max_length=50)
    admin_notes: str | None = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    pet_id: UUID
    client_id: UUID
    appointment_date: date
    appointment_time: time
    service_type: str
    notes: str | None = None
    admin_notes: str | None = None
    status: AppointmentStatus
    staff_initiated: bool
    created_by_staff_id: UUID | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("status", mode="before")
    @classmethod
    def normalize_legacy_status(cls, v: Any) -> Any:
        """Read legacy values as their canonical status."""
        if isinstance(v, str):
            return normalize_status(v)
        return v


class AppointmentActionResponse(BaseModel):
    """State change result plus the outcome of its notification."""

    message: str
    appointment: AppointmentResponse
    notification: NotificationResult


class AppointmentRequestResponse(AppointmentActionResponse):
    """Response for a client appointment request."""

    next_step: str


class FollowUpAppointmentResponse(AppointmentActionResponse):
    """Response for a staff-created follow-up."""

    created_by: str


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering (exact match, combined with AND)."""

    status: str | None = None
    appointment_date: date | None = None


class AppointmentListResponse(BaseModel):
    """Schema for appointment list response."""

    count: int
    items: list[AppointmentResponse]
    filters: AppointmentFilters
