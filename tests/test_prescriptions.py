"""Tests for prescription posting and invoice find-or-create."""

import random
from decimal import Decimal
from pathlib import Path
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest
from conftest import (
    TestSessionLocal,
    bearer,
    create_appointment,
    prescription_item,
)
from httpx import AsyncClient
from sqlalchemy import func, select

from app.core.documents import PrescriptionSnapshot, get_document_renderer
from app.core.exceptions import TransientNotificationError
from app.main import app
from app.models import invoice_items, invoices, prescription_items, prescriptions
from app.schemas.prescriptions import PrescriptionCreate
from app.schemas.users import Principal
from app.services.prescription_service import PrescriptionService, attach_prescription_document


@pytest.fixture
async def confirmed_appointment(db_session, pet: dict):
    return await create_appointment(db_session, pet, status="confirmed")


def prescription_payload(appointment_id, pet: dict, items: list[dict]) -> dict:
    return {
        "appointment_id": str(appointment_id),
        "pet_id": str(pet["id"]),
        "instructions": "Give with food.\nReturn if symptoms persist.",
        "items": items,
    }


async def count_rows(db_session, table) -> int:
    result = await db_session.execute(select(func.count()).select_from(table))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_issue_prescription_creates_invoice(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
    client_headers: dict,
) -> None:
    """Two items, 2 x 10.00 and 1 x 25.00, against a fresh appointment."""
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(
            confirmed_appointment,
            pet,
            [prescription_item(2, "10.00", "Amoxicillin"), prescription_item(1, "25.00", "Meloxicam")],
        ),
        headers=staff_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert Decimal(data["invoice_total"]) == Decimal("45.00")
    assert data["items_posted"] == 2

    assert await count_rows(db_session, invoices) == 1
    assert await count_rows(db_session, invoice_items) == 2
    assert await count_rows(db_session, prescription_items) == 2

    response = await client.get(
        f"/api/v1/invoices/{confirmed_appointment}",
        headers=client_headers,
    )
    assert response.status_code == 200
    invoice = response.json()
    assert invoice["invoice"]["id"] == data["invoice_id"]
    assert invoice["invoice"]["status"] == "draft"
    assert Decimal(invoice["invoice"]["total_amount"]) == Decimal("45.00")
    assert [item["description"] for item in invoice["items"]] == ["Amoxicillin", "Meloxicam"]
    assert [item["item_type"] for item in invoice["items"]] == ["pharmacy", "pharmacy"]
    assert [Decimal(item["line_total"]) for item in invoice["items"]] == [
        Decimal("20.00"),
        Decimal("25.00"),
    ]


@pytest.mark.asyncio
async def test_repeated_postings_share_one_invoice(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    invoice_ids = set()
    for price in ("5.00", "7.50", "12.25"):
        response = await client.post(
            "/api/v1/prescriptions",
            json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, price)]),
            headers=staff_headers,
        )
        assert response.status_code == 201
        invoice_ids.add(response.json()["invoice_id"])

    assert len(invoice_ids) == 1
    assert await count_rows(db_session, invoices) == 1

    result = await db_session.execute(
        select(invoice_items.c.position).order_by(invoice_items.c.position)
    )
    assert result.scalars().all() == [0, 1, 2]


@pytest.mark.asyncio
async def test_invoice_total_matches_items_over_random_postings(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    """After 1 to 5 postings the running total equals the sum of line totals."""
    rng = random.Random(20260120)

    for _ in range(rng.randint(1, 5)):
        items = [
            prescription_item(rng.randint(1, 10), f"{rng.randint(0, 9999) / 100:.2f}")
            for _ in range(rng.randint(1, 4))
        ]
        response = await client.post(
            "/api/v1/prescriptions",
            json=prescription_payload(confirmed_appointment, pet, items),
            headers=staff_headers,
        )
        assert response.status_code == 201

    result = await db_session.execute(select(invoice_items.c.quantity, invoice_items.c.unit_price))
    expected = sum((quantity * unit_price for quantity, unit_price in result.all()), Decimal("0"))

    result = await db_session.execute(select(invoices.c.total_amount))
    assert result.scalar_one() == expected.quantize(Decimal("0.01"))


@pytest.mark.asyncio
@pytest.mark.parametrize("status", ["requested", "under_review", "cancelled", "rejected"])
async def test_prescription_requires_confirmed_appointment(
    client: AsyncClient,
    db_session,
    pet: dict,
    staff_headers: dict,
    status: str,
) -> None:
    appointment_id = await create_appointment(db_session, pet, status=status)

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(appointment_id, pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 400
    assert response.json()["error"] == "INVALID_STATE"
    assert await count_rows(db_session, prescriptions) == 0


@pytest.mark.asyncio
async def test_prescription_for_completed_appointment(
    client: AsyncClient,
    db_session,
    pet: dict,
    staff_headers: dict,
) -> None:
    appointment_id = await create_appointment(db_session, pet, status="completed")

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(appointment_id, pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_prescription_pet_mismatch(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    payload = prescription_payload(confirmed_appointment, pet, [prescription_item(1, "10.00")])
    payload["pet_id"] = str(uuid4())

    response = await client.post("/api/v1/prescriptions", json=payload, headers=staff_headers)
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"
    assert await count_rows(db_session, invoices) == 0


@pytest.mark.asyncio
async def test_prescription_unknown_appointment(
    client: AsyncClient,
    pet: dict,
    staff_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(uuid4(), pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 404
    assert response.json()["error"] == "APPOINTMENT_NOT_FOUND"


@pytest.mark.asyncio
async def test_prescription_is_staff_only(
    client: AsyncClient,
    pet: dict,
    confirmed_appointment,
    client_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, "10.00")]),
        headers=client_headers,
    )
    assert response.status_code == 403
    assert response.json()["error"] == "STAFF_ONLY"


@pytest.mark.asyncio
async def test_prescription_rejects_invalid_items(
    client: AsyncClient,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    for items in ([], [prescription_item(0, "10.00")], [prescription_item(1, "-1.00")]):
        response = await client.post(
            "/api/v1/prescriptions",
            json=prescription_payload(confirmed_appointment, pet, items),
            headers=staff_headers,
        )
        assert response.status_code == 422


@pytest.mark.asyncio
async def test_failed_posting_rolls_back_everything(
    db_session,
    pet: dict,
    staff_user: dict,
    confirmed_appointment,
    monkeypatch,
) -> None:
    """A failure after items were written leaves no partial rows behind."""

    post_items = PrescriptionService._post_items

    async def post_then_fail(self, *args, **kwargs):
        await post_items(self, *args, **kwargs)
        raise RuntimeError("connection lost")

    monkeypatch.setattr(PrescriptionService, "_post_items", post_then_fail)
    data = PrescriptionCreate.model_validate(
        prescription_payload(
            confirmed_appointment,
            pet,
            [prescription_item(2, "10.00"), prescription_item(1, "25.00")],
        )
    )

    with pytest.raises(RuntimeError):
        await PrescriptionService(db_session).issue_prescription(
            Principal.model_validate(staff_user), data
        )

    for table in (prescriptions, prescription_items, invoices, invoice_items):
        assert await count_rows(db_session, table) == 0


@pytest.mark.asyncio
async def test_posting_past_invoice_limit_rejected(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(10_000, "99999999.99")]),
        headers=staff_headers,
    )
    assert response.status_code == 201
    assert Decimal(response.json()["invoice_total"]) == Decimal("999999999900.00")

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, "100.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "VALIDATION_ERROR"
    assert data["details"]["projected_total"] == "1000000000000.00"

    assert await count_rows(db_session, prescriptions) == 1
    assert await count_rows(db_session, invoice_items) == 1
    result = await db_session.execute(select(invoices.c.total_amount))
    assert result.scalar_one() == Decimal("999999999900.00")


@pytest.mark.asyncio
async def test_single_posting_past_invoice_limit_writes_nothing(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    items = [prescription_item(10_000, "99999999.99"), prescription_item(10_000, "99999999.99")]

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, items),
        headers=staff_headers,
    )
    assert response.status_code == 422
    assert response.json()["error"] == "VALIDATION_ERROR"

    for table in (prescriptions, prescription_items, invoices, invoice_items):
        assert await count_rows(db_session, table) == 0


@pytest.mark.asyncio
async def test_snapshot_failure_keeps_posting(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
    monkeypatch,
) -> None:
    """The document snapshot is read after the commit; losing it only skips the document."""

    async def broken_snapshot(*args, **kwargs):
        raise RuntimeError("pet lookup failed")

    monkeypatch.setattr(PrescriptionService, "_build_snapshot", broken_snapshot)

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(2, "10.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 201
    assert Decimal(response.json()["invoice_total"]) == Decimal("20.00")
    prescription_id = UUID(response.json()["prescription_id"])

    result = await db_session.execute(
        select(prescriptions.c.document_url).where(prescriptions.c.id == prescription_id)
    )
    assert result.scalar_one() is None
    assert await count_rows(db_session, invoice_items) == 1


@pytest.mark.asyncio
async def test_document_attached_after_commit(
    client: AsyncClient,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
    client_headers: dict,
    document_renderer,
) -> None:
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    prescription_id = response.json()["prescription_id"]

    response = await client.get(f"/api/v1/prescriptions/{prescription_id}", headers=client_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "issued"
    assert len(data["items"]) == 1
    assert data["document_url"].startswith(f"/uploads/prescriptions/prescription_{prescription_id}_")

    stored = Path(document_renderer.storage_dir) / data["document_url"].rsplit("/", 1)[1]
    html = stored.read_text(encoding="utf-8")
    assert "Rex" in html
    assert "Dr. Vera Vet" in html
    assert "Test Clinic" in html


@pytest.mark.asyncio
async def test_document_failure_keeps_posting(
    client: AsyncClient,
    db_session,
    pet: dict,
    confirmed_appointment,
    staff_headers: dict,
) -> None:
    failing_renderer = AsyncMock()
    failing_renderer.store.side_effect = TransientNotificationError("disk full")
    app.dependency_overrides[get_document_renderer] = lambda: failing_renderer

    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    assert response.status_code == 201
    prescription_id = UUID(response.json()["prescription_id"])

    result = await db_session.execute(
        select(prescriptions.c.document_url).where(prescriptions.c.id == prescription_id)
    )
    assert result.scalar_one() is None
    assert await count_rows(db_session, invoices) == 1


@pytest.mark.asyncio
async def test_attach_document_returns_none_on_failure() -> None:
    failing_renderer = AsyncMock()
    failing_renderer.store.side_effect = TransientNotificationError("disk full")
    snapshot = PrescriptionSnapshot(
        prescription_id=uuid4(),
        pet_name="Rex",
        species="dog",
        owner_name="Ana Owner",
        staff_name="Dr. Vera Vet",
        instructions="",
        items=[],
    )

    assert await attach_prescription_document(TestSessionLocal, failing_renderer, snapshot) is None


@pytest.mark.asyncio
async def test_get_foreign_prescription_forbidden(
    client: AsyncClient,
    pet: dict,
    confirmed_appointment,
    other_client: dict,
    staff_headers: dict,
) -> None:
    response = await client.post(
        "/api/v1/prescriptions",
        json=prescription_payload(confirmed_appointment, pet, [prescription_item(1, "10.00")]),
        headers=staff_headers,
    )
    prescription_id = response.json()["prescription_id"]

    response = await client.get(
        f"/api/v1/prescriptions/{prescription_id}",
        headers=bearer(other_client),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_get_prescription_not_found(client: AsyncClient, staff_headers: dict) -> None:
    response = await client.get(f"/api/v1/prescriptions/{uuid4()}", headers=staff_headers)
    assert response.status_code == 404
    assert response.json()["error"] == "PRESCRIPTION_NOT_FOUND"
