"""Appointments table model using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Table,
    Text,
    Time,
    Uuid,
    func,
    text,
)

from app.models.metadata import metadata

# Legacy values may still be stored in rows written before the review flow existed
STORED_STATUSES = (
    "requested",
    "under_review",
    "confirmed",
    "completed",
    "rejected",
    "cancelled",
    "pending",
    "approved",
)

appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    # Ownership / references
    Column(
        "pet_id",
        Uuid(as_uuid=True),
        ForeignKey("pets.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column(
        "client_id",
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    ),
    # Appointment details
    Column("appointment_date", Date, nullable=False),
    Column("appointment_time", Time, nullable=False),
    Column("service_type", Text, nullable=False),
    Column("notes", Text, nullable=False, server_default=""),
    Column("admin_notes", Text, nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default="requested"),
    Column("staff_initiated", Boolean, nullable=False, server_default=text("false")),
    Column(
        "created_by_staff_id",
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    ),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN (" + ", ".join(f"'{status}'" for status in STORED_STATUSES) + ")",
        name="status",
    ),
    Index("idx_appointments_client_id", "client_id"),
    Index("idx_appointments_status", "status"),
    Index("idx_appointments_date", "appointment_date"),
)
