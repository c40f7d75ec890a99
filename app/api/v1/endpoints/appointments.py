"""Appointment endpoints."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import CurrentUser, DatabaseSession, Dispatcher, StaffUser
from app.schemas.appointments import (
    AppointmentActionResponse,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentRequestCreate,
    AppointmentRequestResponse,
    AppointmentResponse,
    AppointmentStatusUpdate,
    FollowUpAppointmentCreate,
    FollowUpAppointmentResponse,
)
from app.services.appointment_service import AppointmentService

router = APIRouter()


@router.post(
    "/request",
    response_model=AppointmentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request an appointment",
)
async def request_appointment(
    data: AppointmentRequestCreate,
    current_user: CurrentUser,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> AppointmentRequestResponse:
    """
    Request an appointment for one of the caller's pets.

    The appointment starts in ``requested`` and waits for staff review.
    """
    service = AppointmentService(db, dispatcher)
    return await service.request_appointment(current_user, data)


@router.post(
    "/follow-up",
    response_model=FollowUpAppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a follow-up appointment",
)
async def create_follow_up_appointment(
    data: FollowUpAppointmentCreate,
    staff: StaffUser,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> FollowUpAppointmentResponse:
    """
    Schedule a follow-up that is confirmed immediately (staff only).
    """
    service = AppointmentService(db, dispatcher)
    return await service.create_follow_up(staff, data)


@router.get(
    "",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="List appointments",
)
async def list_appointments(
    current_user: CurrentUser,
    db: DatabaseSession,
    status_filter: str | None = Query(None, alias="status"),
    date_filter: date | None = Query(None, alias="date"),
) -> AppointmentListResponse:
    """
    List appointments visible to the caller.

    Args:
        current_user: Authenticated user
        db: Database session
        status_filter: Filter by status
        date_filter: Filter by appointment date (YYYY-MM-DD)

    Returns:
        Matching appointments ordered by slot
    """
    filters = AppointmentFilters(status=status_filter, appointment_date=date_filter)
    service = AppointmentService(db)
    return await service.list_appointments(current_user, filters)


@router.get(
    "/review-queue",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    summary="Appointments awaiting triage",
)
async def list_review_queue(
    staff: StaffUser,
    db: DatabaseSession,
) -> AppointmentListResponse:
    """List requested and under-review appointments (staff only)."""
    service = AppointmentService(db)
    return await service.list_review_queue()


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> AppointmentResponse:
    """Get a specific appointment by ID."""
    service = AppointmentService(db)
    return await service.get_appointment(current_user, appointment_id)


@router.patch(
    "/{appointment_id}/mark-review",
    response_model=AppointmentActionResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark appointment as under review",
)
async def mark_under_review(
    appointment_id: UUID,
    staff: StaffUser,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> AppointmentActionResponse:
    """
    Move a ``requested`` appointment to ``under_review`` (staff only).
    """
    service = AppointmentService(db, dispatcher)
    return await service.mark_under_review(appointment_id)


@router.patch(
    "/{appointment_id}/status",
    response_model=AppointmentActionResponse,
    status_code=status.HTTP_200_OK,
    summary="Update appointment status",
)
async def update_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusUpdate,
    staff: StaffUser,
    db: DatabaseSession,
    dispatcher: Dispatcher,
) -> AppointmentActionResponse:
    """
    Update appointment status along the transition table (staff only).

    A failed email never fails this call; check ``notification.email_sent``.
    """
    service = AppointmentService(db, dispatcher)
    return await service.change_status(appointment_id, data.status, data.admin_notes)
