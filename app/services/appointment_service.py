"""Appointment lifecycle: creation, triage and status changes."""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ConflictException,
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
)
from app.database import transaction
from app.models.appointments import appointments
from app.schemas.appointments import (
    AppointmentActionResponse,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentRequestCreate,
    AppointmentRequestResponse,
    AppointmentResponse,
    AppointmentStatus,
    FollowUpAppointmentCreate,
    FollowUpAppointmentResponse,
    normalize_status,
    stored_values_for,
)
from app.schemas.notifications import NotificationEvent, NotificationResult
from app.schemas.users import Principal, Recipient
from app.services.appointment_transitions import (
    ensure_transition,
    notification_event_for,
    parse_status,
)
from app.services.notification_service import NotificationDispatcher
from app.services.user_service import UserService

logger = structlog.get_logger(__name__)

NEXT_STEP_AFTER_REQUEST = "A veterinarian will review your request soon"

STATUS_MESSAGES = {
    AppointmentStatus.UNDER_REVIEW: "Appointment marked as under review",
    AppointmentStatus.CONFIRMED: "Appointment confirmed",
    AppointmentStatus.REJECTED: "Appointment rejected",
    AppointmentStatus.CANCELLED: "Appointment cancelled",
    AppointmentStatus.COMPLETED: "Appointment marked as completed",
}

REVIEW_QUEUE_STATUSES = (AppointmentStatus.REQUESTED, AppointmentStatus.UNDER_REVIEW)


class AppointmentService:
    """Service owning the appointment status field.

    Every mutation commits first and notifies second; the notification
    outcome is reported next to the committed appointment and never undoes it.
    """

    def __init__(self, db: AsyncSession, dispatcher: NotificationDispatcher | None = None):
        """Initialize service; reads need no dispatcher, mutations do."""
        self.db = db
        self.dispatcher = dispatcher

    async def request_appointment(
        self,
        requester: Principal,
        data: AppointmentRequestCreate,
    ) -> AppointmentRequestResponse:
        """
        Create an appointment request for a pet the requester owns.

        Args:
            requester: Authenticated client
            data: Requested slot and service

        Returns:
            Created appointment in ``requested`` status

        Raises:
            ForbiddenException: If the requester does not own the pet
        """
        self._require_dispatcher()
        async with transaction(self.db):
            if not await UserService.owns_pet(self.db, requester.id, data.pet_id):
                logger.warning(
                    "appointment_request_forbidden",
                    pet_id=str(data.pet_id),
                    client_id=str(requester.id),
                )
                raise ForbiddenException(
                    "You are not allowed to book appointments for this pet",
                    error_code="FORBIDDEN",
                )

            row = await self._insert(
                pet_id=data.pet_id,
                client_id=requester.id,
                appointment_date=data.appointment_date,
                appointment_time=data.appointment_time,
                service_type=data.service_type,
                notes=data.notes or "",
                status=AppointmentStatus.REQUESTED.value,
                staff_initiated=False,
            )

        appointment = AppointmentResponse.model_validate(row)
        logger.info("appointment_requested", appointment_id=str(appointment.id))

        notification = await self._notify(
            NotificationEvent.APPOINTMENT_REQUESTED,
            appointment,
            Recipient(email=requester.email, full_name=requester.full_name),
        )

        return AppointmentRequestResponse(
            message="Appointment request created",
            appointment=appointment,
            notification=notification,
            next_step=NEXT_STEP_AFTER_REQUEST,
        )

    async def create_follow_up(
        self,
        staff: Principal,
        data: FollowUpAppointmentCreate,
    ) -> FollowUpAppointmentResponse:
        """
        Schedule a confirmed follow-up directly, bypassing review.

        Args:
            staff: Authenticated staff member
            data: Client, pet and slot

        Returns:
            Created appointment in ``confirmed`` status

        Raises:
            NotFoundException: CLIENT_NOT_FOUND or PET_NOT_FOUND
        """
        self._require_dispatcher()
        async with transaction(self.db):
            client = await UserService.get_recipient(self.db, data.client_id)
            if client is None:
                raise NotFoundException("Client not found", error_code="CLIENT_NOT_FOUND")

            if await UserService.get_pet(self.db, data.pet_id) is None:
                raise NotFoundException("Pet not found", error_code="PET_NOT_FOUND")

            row = await self._insert(
                pet_id=data.pet_id,
                client_id=data.client_id,
                appointment_date=data.appointment_date,
                appointment_time=data.appointment_time,
                service_type=data.service_type,
                notes=data.notes or "",
                status=AppointmentStatus.CONFIRMED.value,
                staff_initiated=True,
                created_by_staff_id=staff.id,
            )

        appointment = AppointmentResponse.model_validate(row)
        logger.info(
            "follow_up_appointment_created",
            appointment_id=str(appointment.id),
            staff_id=str(staff.id),
        )

        notification = await self._notify(
            NotificationEvent.APPOINTMENT_CONFIRMED_FOLLOWUP,
            appointment,
            client,
            {"staff_name": staff.full_name},
        )

        return FollowUpAppointmentResponse(
            message="Follow-up appointment created",
            appointment=appointment,
            notification=notification,
            created_by=staff.full_name,
        )

    async def mark_under_review(self, appointment_id: UUID) -> AppointmentActionResponse:
        """
        Move a fresh request into review.

        Only ``requested`` appointments qualify, which is stricter than the
        transition table alone.

        Raises:
            NotFoundException: APPOINTMENT_NOT_FOUND
            InvalidStateException: INVALID_STATE if the status is not ``requested``
        """
        self._require_dispatcher()
        async with transaction(self.db):
            current = await self._lock(appointment_id)
            current_status = normalize_status(current["status"])

            if current_status != AppointmentStatus.REQUESTED:
                raise InvalidStateException(
                    f'Appointment is already "{current_status.value}". '
                    'Only "requested" appointments can be marked as under review.',
                    error_code="INVALID_STATE",
                    details={"current_status": current_status.value},
                )

            row = await self._compare_and_set(
                current,
                status=AppointmentStatus.UNDER_REVIEW.value,
            )
            client = await UserService.get_recipient(self.db, row["client_id"])

        appointment = AppointmentResponse.model_validate(row)
        logger.info("appointment_under_review", appointment_id=str(appointment.id))

        notification = await self._notify(
            NotificationEvent.APPOINTMENT_UNDER_REVIEW,
            appointment,
            client,
        )

        return AppointmentActionResponse(
            message=STATUS_MESSAGES[AppointmentStatus.UNDER_REVIEW],
            appointment=appointment,
            notification=notification,
        )

    async def change_status(
        self,
        appointment_id: UUID,
        new_status: str,
        admin_notes: str | None = None,
    ) -> AppointmentActionResponse:
        """
        Apply a generic status transition.

        Args:
            appointment_id: Appointment ID
            new_status: Requested status (legacy names accepted)
            admin_notes: Optional staff notes, also used as rejection reason

        Returns:
            Updated appointment and notification outcome

        Raises:
            BadRequestException: INVALID_STATUS
            NotFoundException: APPOINTMENT_NOT_FOUND
            InvalidStateException: INVALID_STATE_TRANSITION
            ConflictException: STATUS_CONFLICT if another writer got there first
        """
        target = parse_status(new_status)

        self._require_dispatcher()
        async with transaction(self.db):
            current = await self._lock(appointment_id)
            target = ensure_transition(current["status"], target)

            row = await self._compare_and_set(
                current,
                status=target.value,
                admin_notes=admin_notes,
            )
            client = await UserService.get_recipient(self.db, row["client_id"])

        appointment = AppointmentResponse.model_validate(row)
        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment.id),
            old_status=normalize_status(current["status"]).value,
            new_status=target.value,
        )

        event = notification_event_for(target, appointment.staff_initiated)
        if event is None:
            notification = NotificationResult.not_sent()
        else:
            notification = await self._notify(event, appointment, client, {"reason": admin_notes})

        return AppointmentActionResponse(
            message=STATUS_MESSAGES[target],
            appointment=appointment,
            notification=notification,
        )

    async def get_appointment(self, requester: Principal, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: APPOINTMENT_NOT_FOUND
            ForbiddenException: If a client asks for someone else's appointment
        """
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found", error_code="APPOINTMENT_NOT_FOUND")

        if not requester.is_staff and row["client_id"] != requester.id:
            raise ForbiddenException("Access denied to this appointment")

        return AppointmentResponse.model_validate(dict(row))

    async def list_appointments(
        self,
        requester: Principal,
        filters: AppointmentFilters,
    ) -> AppointmentListResponse:
        """
        List appointments visible to the requester.

        Clients only see their own; staff see all. Filters are exact matches
        combined with AND.
        """
        conditions = []

        if not requester.is_staff:
            conditions.append(appointments.c.client_id == requester.id)

        if filters.status:
            status = parse_status(filters.status)
            conditions.append(appointments.c.status.in_(stored_values_for(status)))
            filters = filters.model_copy(update={"status": status.value})

        if filters.appointment_date:
            conditions.append(appointments.c.appointment_date == filters.appointment_date)

        stmt = select(appointments).order_by(
            appointments.c.appointment_date.asc(),
            appointments.c.appointment_time.asc(),
        )
        if conditions:
            stmt = stmt.where(and_(*conditions))

        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]

        return AppointmentListResponse(count=len(items), items=items, filters=filters)

    async def list_review_queue(self) -> AppointmentListResponse:
        """Appointments waiting for staff triage, earliest slot first."""
        values = [value for status in REVIEW_QUEUE_STATUSES for value in stored_values_for(status)]
        stmt = (
            select(appointments)
            .where(appointments.c.status.in_(values))
            .order_by(appointments.c.appointment_date.asc(), appointments.c.appointment_time.asc())
        )
        result = await self.db.execute(stmt)
        items = [AppointmentResponse.model_validate(dict(row)) for row in result.mappings().all()]
        return AppointmentListResponse(count=len(items), items=items, filters=AppointmentFilters())

    def _require_dispatcher(self) -> NotificationDispatcher:
        if self.dispatcher is None:
            raise RuntimeError("AppointmentService was built without a NotificationDispatcher")
        return self.dispatcher

    async def _insert(self, **values: Any) -> dict:
        stmt = insert(appointments).values(**values).returning(appointments)
        result = await self.db.execute(stmt)
        return dict(result.mappings().one())

    async def _lock(self, appointment_id: UUID) -> dict:
        """Read the current row under a row lock for the rest of the transaction."""
        stmt = select(appointments).where(appointments.c.id == appointment_id).with_for_update()
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Appointment not found", error_code="APPOINTMENT_NOT_FOUND")

        return dict(row)

    async def _compare_and_set(self, current: dict, **values: Any) -> dict:
        """Write only if the status is still the one that was validated."""
        stmt = (
            update(appointments)
            .where(
                appointments.c.id == current["id"],
                appointments.c.status == current["status"],
            )
            .values(**values, updated_at=datetime.now(UTC))
            .returning(appointments)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise ConflictException(
                "Appointment status changed concurrently, reload and retry",
                error_code="STATUS_CONFLICT",
                details={"observed_status": normalize_status(current["status"]).value},
            )

        return dict(row)

    async def _notify(
        self,
        event: NotificationEvent,
        appointment: AppointmentResponse,
        client: Recipient | None,
        metadata: dict[str, Any] | None = None,
    ) -> NotificationResult:
        if client is None:
            logger.warning("notification_recipient_missing", appointment_id=str(appointment.id))
            return NotificationResult(
                event=event.value,
                email_sent=False,
                email_error="Client contact not found",
            )
        return await self._require_dispatcher().notify(event, appointment, client, metadata)
