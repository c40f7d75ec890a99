"""User schemas for the acting principal and notification recipients."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class UserRole(str, Enum):
    """User role enumeration."""

    CLIENT = "client"
    VET = "vet"
    ADMIN = "admin"


STAFF_ROLES = frozenset({UserRole.VET, UserRole.ADMIN})


class Principal(BaseModel):
    """Authenticated user acting on a request."""

    id: UUID
    email: str
    full_name: str
    role: UserRole
    is_active: bool = True

    model_config = {"from_attributes": True}

    @property
    def is_staff(self) -> bool:
        """Check if the principal is clinic personnel."""
        return self.role in STAFF_ROLES


class Recipient(BaseModel):
    """Contact details a notification is addressed to."""

    email: str
    full_name: str
