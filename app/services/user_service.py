"""Lookups against the identity and pet records owned by other services."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pets import pets
from app.models.users import users
from app.schemas.users import Recipient


class UserService:
    """Read-only access to users and pets."""

    @staticmethod
    async def get_user_by_id(db: AsyncSession, user_id: UUID) -> dict | None:
        """Get a user row by id."""
        result = await db.execute(select(users).where(users.c.id == user_id))
        row = result.mappings().first()
        return dict(row) if row else None

    @staticmethod
    async def get_recipient(db: AsyncSession, user_id: UUID) -> Recipient | None:
        """Get the email contact for a user."""
        result = await db.execute(
            select(users.c.email, users.c.full_name).where(users.c.id == user_id)
        )
        row = result.mappings().first()
        return Recipient(**row) if row else None

    @staticmethod
    async def get_pet(db: AsyncSession, pet_id: UUID) -> dict | None:
        """Get a pet row by id."""
        result = await db.execute(select(pets).where(pets.c.id == pet_id))
        row = result.mappings().first()
        return dict(row) if row else None

    @staticmethod
    async def owns_pet(db: AsyncSession, owner_id: UUID, pet_id: UUID) -> bool:
        """Check if ``owner_id`` is the registered owner of ``pet_id``."""
        result = await db.execute(
            select(pets.c.id).where(pets.c.id == pet_id, pets.c.owner_id == owner_id)
        )
        return result.first() is not None
