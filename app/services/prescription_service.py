"""Prescription issuing and posting of its charges to the appointment invoice."""

from datetime import UTC, datetime
from decimal import Decimal
from uuid import UUID

import structlog
from sqlalchemy import func, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.documents import DocumentRenderer, PrescriptionDocumentItem, PrescriptionSnapshot
from app.core.exceptions import (
    ForbiddenException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from app.database import transaction
from app.models.appointments import appointments
from app.models.invoices import invoice_items, invoices
from app.models.pets import pets
from app.models.prescriptions import prescription_items, prescriptions
from app.models.users import users
from app.schemas.appointments import AppointmentStatus, normalize_status
from app.schemas.prescriptions import (
    PrescriptionCreate,
    PrescriptionIssued,
    PrescriptionItemResponse,
    PrescriptionResponse,
)
from app.schemas.users import Principal

logger = structlog.get_logger(__name__)

# Prescriptions are written during or after the visit
PRESCRIBABLE_STATUSES = frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED})

PHARMACY_ITEM = "pharmacy"

# Largest value invoices.total_amount (NUMERIC(14, 2)) can hold
MAX_INVOICE_TOTAL = Decimal("999999999999.99")


class PrescriptionService:
    """Post prescriptions and their charges as one atomic unit."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def issue_prescription(
        self,
        staff: Principal,
        data: PrescriptionCreate,
    ) -> tuple[PrescriptionIssued, PrescriptionSnapshot | None]:
        """
        Create a prescription and charge its items to the appointment invoice.

        All writes (prescription, its items, the invoice and its items, the
        running total) commit together or not at all.

        Args:
            staff: Issuing staff member
            data: Appointment, pet, instructions and items

        Returns:
            Posting result and the snapshot used to render the document, or
            None when the snapshot could not be read after the commit

        Raises:
            NotFoundException: APPOINTMENT_NOT_FOUND
            ValidationException: If the pet is not the appointment's pet, or the
                posting would push the invoice total past MAX_INVOICE_TOTAL
            InvalidStateException: If the appointment is not confirmed or completed
        """
        async with transaction(self.db):
            appointment = await self._get_appointment(data.appointment_id)
            self._check_prescribable(appointment, data)

            prescription_id = await self._insert_prescription(staff, data)
            invoice_id, current_total = await self._find_or_create_invoice(
                data.appointment_id,
                appointment["client_id"],
            )
            self._check_invoice_total(current_total, data)
            total = await self._post_items(prescription_id, invoice_id, data)

        logger.info(
            "prescription_issued",
            prescription_id=str(prescription_id),
            invoice_id=str(invoice_id),
            appointment_id=str(data.appointment_id),
            items=len(data.items),
            invoice_total=str(total),
        )

        snapshot = await self._read_snapshot(prescription_id, staff, data, appointment)

        issued = PrescriptionIssued(
            prescription_id=prescription_id,
            invoice_id=invoice_id,
            invoice_total=total,
            items_posted=len(data.items),
        )
        return issued, snapshot

    async def get_prescription(
        self,
        requester: Principal,
        prescription_id: UUID,
    ) -> PrescriptionResponse:
        """
        Get a prescription with its items.

        Raises:
            NotFoundException: PRESCRIPTION_NOT_FOUND
            ForbiddenException: If a client asks for another client's prescription
        """
        stmt = (
            select(prescriptions, appointments.c.client_id)
            .join(appointments, appointments.c.id == prescriptions.c.appointment_id)
            .where(prescriptions.c.id == prescription_id)
        )
        result = await self.db.execute(stmt)
        row = result.mappings().first()

        if not row:
            raise NotFoundException("Prescription not found", error_code="PRESCRIPTION_NOT_FOUND")

        if not requester.is_staff and row["client_id"] != requester.id:
            raise ForbiddenException("Access denied to this prescription")

        items_result = await self.db.execute(
            select(prescription_items)
            .where(prescription_items.c.prescription_id == prescription_id)
            .order_by(prescription_items.c.position)
        )
        items = [PrescriptionItemResponse.model_validate(dict(item)) for item in items_result.mappings()]

        return PrescriptionResponse.model_validate({**row, "items": items})

    async def _get_appointment(self, appointment_id: UUID) -> dict:
        result = await self.db.execute(
            select(
                appointments.c.id,
                appointments.c.client_id,
                appointments.c.pet_id,
                appointments.c.status,
            ).where(appointments.c.id == appointment_id)
        )
        row = result.mappings().first()
        if not row:
            raise NotFoundException("Appointment not found", error_code="APPOINTMENT_NOT_FOUND")
        return dict(row)

    @staticmethod
    def _check_prescribable(appointment: dict, data: PrescriptionCreate) -> None:
        if appointment["pet_id"] != data.pet_id:
            raise ValidationException(
                "Pet does not match the appointment",
                details={"appointment_pet_id": str(appointment["pet_id"])},
            )

        status = normalize_status(appointment["status"])
        if status not in PRESCRIBABLE_STATUSES:
            raise InvalidStateException(
                f'Cannot issue a prescription for a "{status.value}" appointment',
                error_code="INVALID_STATE",
                details={"current_status": status.value},
            )

    async def _insert_prescription(self, staff: Principal, data: PrescriptionCreate) -> UUID:
        result = await self.db.execute(
            insert(prescriptions)
            .values(
                appointment_id=data.appointment_id,
                pet_id=data.pet_id,
                staff_id=staff.id,
                instructions=data.instructions,
                status="issued",
            )
            .returning(prescriptions.c.id)
        )
        return result.scalar_one()

    async def _find_or_create_invoice(
        self,
        appointment_id: UUID,
        client_id: UUID,
    ) -> tuple[UUID, Decimal]:
        """
        Return the appointment's invoice id and current total, creating a draft invoice if needed.

        The insert is a no-op when a concurrent posting already created the
        invoice; the following locked read then picks up that row, so both
        postings append to the same invoice.
        """
        insert_stmt = self._insert_ignoring_conflicts(
            appointment_id=appointment_id,
            client_id=client_id,
            total_amount=Decimal("0.00"),
            status="draft",
        )
        await self.db.execute(insert_stmt)

        result = await self.db.execute(
            select(invoices.c.id, invoices.c.total_amount)
            .where(invoices.c.appointment_id == appointment_id)
            .with_for_update()
        )
        invoice_id, total_amount = result.one()
        return invoice_id, total_amount

    @staticmethod
    def _check_invoice_total(current_total: Decimal, data: PrescriptionCreate) -> None:
        projected = current_total + sum((item.line_total for item in data.items), Decimal("0"))
        if projected > MAX_INVOICE_TOTAL:
            raise ValidationException(
                "Posting would exceed the maximum invoice total",
                details={
                    "invoice_total": str(current_total),
                    "projected_total": str(projected),
                    "max_total": str(MAX_INVOICE_TOTAL),
                },
            )

    def _insert_ignoring_conflicts(self, **values):
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(invoices)
        elif dialect == "sqlite":
            stmt = sqlite.insert(invoices)
        else:
            raise NotImplementedError(f"Unsupported database dialect: {dialect}")
        return stmt.values(**values).on_conflict_do_nothing(
            index_elements=[invoices.c.appointment_id]
        )

    async def _post_items(
        self,
        prescription_id: UUID,
        invoice_id: UUID,
        data: PrescriptionCreate,
    ) -> Decimal:
        """Write prescription and invoice lines in input order, bumping the total per line."""
        result = await self.db.execute(
            select(func.count()).select_from(invoice_items).where(invoice_items.c.invoice_id == invoice_id)
        )
        next_position = result.scalar_one()

        for index, item in enumerate(data.items):
            await self.db.execute(
                insert(prescription_items).values(
                    prescription_id=prescription_id,
                    position=index,
                    inventory_item_id=item.inventory_item_id,
                    quantity=item.quantity,
                    dosage=item.dosage,
                    duration=item.duration,
                )
            )
            await self.db.execute(
                insert(invoice_items).values(
                    invoice_id=invoice_id,
                    position=next_position + index,
                    item_type=PHARMACY_ITEM,
                    item_id=item.inventory_item_id,
                    description=item.name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                )
            )
            await self.db.execute(
                update(invoices)
                .where(invoices.c.id == invoice_id)
                .values(
                    total_amount=invoices.c.total_amount + item.line_total,
                    updated_at=datetime.now(UTC),
                )
            )

        result = await self.db.execute(
            select(invoices.c.total_amount).where(invoices.c.id == invoice_id)
        )
        return result.scalar_one()

    async def _read_snapshot(
        self,
        prescription_id: UUID,
        staff: Principal,
        data: PrescriptionCreate,
        appointment: dict,
    ) -> PrescriptionSnapshot | None:
        """Read the document snapshot after the commit; a failed read skips the document only."""
        try:
            return await self._build_snapshot(prescription_id, staff, data, appointment)
        except Exception as e:
            logger.error(
                "prescription_snapshot_failed",
                prescription_id=str(prescription_id),
                error=str(e),
            )
            return None

    async def _build_snapshot(
        self,
        prescription_id: UUID,
        staff: Principal,
        data: PrescriptionCreate,
        appointment: dict,
    ) -> PrescriptionSnapshot:
        owners = users.alias("owners")
        result = await self.db.execute(
            select(pets.c.name, pets.c.species, owners.c.full_name)
            .join(owners, owners.c.id == pets.c.owner_id)
            .where(pets.c.id == appointment["pet_id"])
        )
        pet_name, species, owner_name = result.one()

        return PrescriptionSnapshot(
            prescription_id=prescription_id,
            pet_name=pet_name,
            species=species,
            owner_name=owner_name,
            staff_name=staff.full_name,
            instructions=data.instructions,
            items=[
                PrescriptionDocumentItem(
                    name=item.name,
                    dosage=item.dosage,
                    duration=item.duration,
                    quantity=item.quantity,
                )
                for item in data.items
            ],
        )


async def attach_prescription_document(
    session_factory: async_sessionmaker[AsyncSession],
    renderer: DocumentRenderer,
    snapshot: PrescriptionSnapshot,
) -> str | None:
    """
    Render the prescription document and record its location.

    Runs after the posting committed. Failures are logged and never touch
    the committed prescription or invoice.
    """
    try:
        document_url = await renderer.store(snapshot)
        async with session_factory() as session:
            async with transaction(session):
                await session.execute(
                    update(prescriptions)
                    .where(prescriptions.c.id == snapshot.prescription_id)
                    .values(document_url=document_url)
                )
    except Exception as e:
        logger.error(
            "prescription_document_failed",
            prescription_id=str(snapshot.prescription_id),
            error=str(e),
        )
        return None

    logger.info(
        "prescription_document_attached",
        prescription_id=str(snapshot.prescription_id),
        document_url=document_url,
    )
    return document_url
