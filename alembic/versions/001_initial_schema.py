"""Initial schema - users, pets, appointments, prescriptions and invoices.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

APPOINTMENT_STATUSES = (
    "requested",
    "under_review",
    "confirmed",
    "completed",
    "rejected",
    "cancelled",
    "pending",
    "approved",
)


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id",
        postgresql.UUID(as_uuid=True),
        primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.TIMESTAMP(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    """Upgrade database schema."""
    # Enable pgcrypto extension
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.create_table(
        "users",
        _uuid_pk(),
        sa.Column("email", sa.Text(), nullable=False),
        sa.Column("full_name", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'client'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("role IN ('client', 'vet', 'admin')", name="ck_users_role"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "pets",
        _uuid_pk(),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE", name="fk_pets_owner_id_users"),
            nullable=False,
        ),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("species", sa.Text(), nullable=False),
        sa.Column("breed", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("idx_pets_owner_id", "pets", ["owner_id"])

    op.create_table(
        "appointments",
        _uuid_pk(),
        sa.Column(
            "pet_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pets.id", ondelete="RESTRICT", name="fk_appointments_pet_id_pets"),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_appointments_client_id_users"),
            nullable=False,
        ),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("appointment_time", sa.Time(), nullable=False),
        sa.Column("service_type", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="requested"),
        sa.Column("staff_initiated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "created_by_staff_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "users.id",
                ondelete="SET NULL",
                name="fk_appointments_created_by_staff_id_users",
            ),
            nullable=True,
        ),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in APPOINTMENT_STATUSES) + ")",
            name="ck_appointments_status",
        ),
    )
    op.create_index("idx_appointments_client_id", "appointments", ["client_id"])
    op.create_index("idx_appointments_status", "appointments", ["status"])
    op.create_index("idx_appointments_date", "appointments", ["appointment_date"])

    op.create_table(
        "prescriptions",
        _uuid_pk(),
        sa.Column(
            "appointment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "appointments.id",
                ondelete="RESTRICT",
                name="fk_prescriptions_appointment_id_appointments",
            ),
            nullable=False,
        ),
        sa.Column(
            "pet_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("pets.id", ondelete="RESTRICT", name="fk_prescriptions_pet_id_pets"),
            nullable=False,
        ),
        sa.Column(
            "staff_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_prescriptions_staff_id_users"),
            nullable=False,
        ),
        sa.Column("instructions", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(20), nullable=False, server_default="issued"),
        sa.Column("document_url", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("status IN ('issued')", name="ck_prescriptions_status"),
    )
    op.create_index("idx_prescriptions_appointment_id", "prescriptions", ["appointment_id"])

    op.create_table(
        "prescription_items",
        _uuid_pk(),
        sa.Column(
            "prescription_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "prescriptions.id",
                ondelete="CASCADE",
                name="fk_prescription_items_prescription_id_prescriptions",
            ),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("inventory_item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("dosage", sa.Text(), nullable=False),
        sa.Column("duration", sa.Text(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_prescription_items_quantity_positive"),
    )
    op.create_index(
        "idx_prescription_items_prescription_id",
        "prescription_items",
        ["prescription_id"],
    )

    op.create_table(
        "invoices",
        _uuid_pk(),
        sa.Column(
            "appointment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "appointments.id",
                ondelete="RESTRICT",
                name="fk_invoices_appointment_id_appointments",
            ),
            nullable=False,
        ),
        sa.Column(
            "client_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_invoices_client_id_users"),
            nullable=False,
        ),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint("total_amount >= 0", name="ck_invoices_total_non_negative"),
        sa.CheckConstraint("status IN ('draft')", name="ck_invoices_status"),
        # Find-or-create relies on this constraint
        sa.UniqueConstraint("appointment_id", name="uq_invoices_appointment_id"),
    )

    op.create_table(
        "invoice_items",
        _uuid_pk(),
        sa.Column(
            "invoice_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey(
                "invoices.id",
                ondelete="CASCADE",
                name="fk_invoice_items_invoice_id_invoices",
            ),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("item_type", sa.String(20), nullable=False),
        sa.Column("item_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        _timestamp("created_at"),
        sa.CheckConstraint("item_type IN ('pharmacy', 'service')", name="ck_invoice_items_item_type"),
        sa.CheckConstraint("quantity > 0", name="ck_invoice_items_quantity_positive"),
        sa.CheckConstraint("unit_price >= 0", name="ck_invoice_items_unit_price_non_negative"),
    )
    op.create_index("idx_invoice_items_invoice_id", "invoice_items", ["invoice_id"])


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index("idx_invoice_items_invoice_id", table_name="invoice_items")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_index("idx_prescription_items_prescription_id", table_name="prescription_items")
    op.drop_table("prescription_items")
    op.drop_index("idx_prescriptions_appointment_id", table_name="prescriptions")
    op.drop_table("prescriptions")
    op.drop_index("idx_appointments_date", table_name="appointments")
    op.drop_index("idx_appointments_status", table_name="appointments")
    op.drop_index("idx_appointments_client_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("idx_pets_owner_id", table_name="pets")
    op.drop_table("pets")
    op.drop_table("users")
