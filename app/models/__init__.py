"""Database models."""

from app.models.appointments import appointments
from app.models.invoices import invoice_items, invoices
from app.models.metadata import metadata
from app.models.pets import pets
from app.models.prescriptions import prescription_items, prescriptions
from app.models.users import users

__all__ = [
    "appointments",
    "invoice_items",
    "invoices",
    "metadata",
    "pets",
    "prescription_items",
    "prescriptions",
    "users",
]
