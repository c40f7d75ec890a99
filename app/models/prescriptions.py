"""Prescription tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    Uuid,
    func,
)

from app.models.metadata import metadata

prescriptions = Table(
    "prescriptions",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid(as_uuid=True),
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("pet_id", Uuid(as_uuid=True), ForeignKey("pets.id", ondelete="RESTRICT"), nullable=False),
    Column("staff_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
    Column("instructions", Text, nullable=False, server_default=""),
    Column("status", String(20), nullable=False, server_default="issued"),
    # Filled in after commit by the document renderer
    Column("document_url", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("status IN ('issued')", name="status"),
    Index("idx_prescriptions_appointment_id", "appointment_id"),
)

prescription_items = Table(
    "prescription_items",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "prescription_id",
        Uuid(as_uuid=True),
        ForeignKey("prescriptions.id", ondelete="CASCADE"),
        nullable=False,
    ),
    # Input order within the prescription
    Column("position", Integer, nullable=False),
    # Catalog reference only; the inventory service owns the item itself
    Column("inventory_item_id", Uuid(as_uuid=True), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("dosage", Text, nullable=False),
    Column("duration", Text, nullable=False),
    CheckConstraint("quantity > 0", name="quantity_positive"),
    Index("idx_prescription_items_prescription_id", "prescription_id"),
)
