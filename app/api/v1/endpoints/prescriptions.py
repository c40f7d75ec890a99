"""Prescription endpoints."""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, status

from app.dependencies import CurrentUser, DatabaseSession, Renderer, SessionFactory, StaffUser
from app.schemas.prescriptions import PrescriptionCreate, PrescriptionIssued, PrescriptionResponse
from app.services.prescription_service import PrescriptionService, attach_prescription_document

router = APIRouter()


@router.post(
    "",
    response_model=PrescriptionIssued,
    status_code=status.HTTP_201_CREATED,
    summary="Issue a prescription",
)
async def issue_prescription(
    data: PrescriptionCreate,
    staff: StaffUser,
    db: DatabaseSession,
    session_factory: SessionFactory,
    renderer: Renderer,
    background_tasks: BackgroundTasks,
) -> PrescriptionIssued:
    """
    Issue a prescription and charge its items to the appointment invoice (staff only).

    The printable document is rendered after the response is sent; its
    location shows up on the prescription once stored.
    """
    service = PrescriptionService(db)
    issued, snapshot = await service.issue_prescription(staff, data)

    if snapshot is not None:
        background_tasks.add_task(attach_prescription_document, session_factory, renderer, snapshot)

    return issued


@router.get(
    "/{prescription_id}",
    response_model=PrescriptionResponse,
    status_code=status.HTTP_200_OK,
    summary="Get prescription by ID",
)
async def get_prescription(
    prescription_id: UUID,
    current_user: CurrentUser,
    db: DatabaseSession,
) -> PrescriptionResponse:
    """Get a prescription with its items."""
    service = PrescriptionService(db)
    return await service.get_prescription(current_user, prescription_id)
