"""Invoice tables using SQLAlchemy Core."""

from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
    Text,
    Uuid,
    func,
    text,
)

from app.models.metadata import metadata

invoices = Table(
    "invoices",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    # At most one invoice per appointment
    Column(
        "appointment_id",
        Uuid(as_uuid=True),
        ForeignKey("appointments.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    ),
    Column("client_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
    Column("total_amount", Numeric(14, 2), nullable=False, server_default=text("0")),
    Column("status", String(20), nullable=False, server_default="draft"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("total_amount >= 0", name="total_non_negative"),
    CheckConstraint("status IN ('draft')", name="status"),
)

invoice_items = Table(
    "invoice_items",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True, default=uuid4),
    Column(
        "invoice_id",
        Uuid(as_uuid=True),
        ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("position", Integer, nullable=False),
    Column("item_type", String(20), nullable=False),
    Column("item_id", Uuid(as_uuid=True), nullable=False),
    # Snapshot at posting time; later catalog price changes do not apply
    Column("description", Text, nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("unit_price", Numeric(10, 2), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("item_type IN ('pharmacy', 'service')", name="item_type"),
    CheckConstraint("quantity > 0", name="quantity_positive"),
    CheckConstraint("unit_price >= 0", name="unit_price_non_negative"),
    Index("idx_invoice_items_invoice_id", "invoice_id"),
)
