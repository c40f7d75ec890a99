"""Script to initialize the database and optionally seed demo accounts.

Usage:
    python scripts/init_db.py            # create tables
    python scripts/init_db.py --seed     # create tables, add a vet, a client and a pet
"""

import argparse
import asyncio
import sys
from pathlib import Path

from sqlalchemy import insert, select, text

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.core.security import create_access_token  # noqa: E402
from app.database import engine  # noqa: E402
from app.models import metadata, pets, users  # noqa: E402

DEMO_STAFF_EMAIL = "vet@clinic.example"
DEMO_CLIENT_EMAIL = "client@clinic.example"


async def init_db() -> None:
    """Initialize the database by creating all tables."""
    async with engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            await conn.execute(text('CREATE EXTENSION IF NOT EXISTS "pgcrypto"'))

        await conn.run_sync(metadata.create_all)

    print("✓ Database initialized successfully!")


async def seed() -> None:
    """Insert a demo vet, client and pet, then print bearer tokens for both users."""
    async with engine.begin() as conn:
        existing = await conn.execute(select(users.c.id).where(users.c.email == DEMO_STAFF_EMAIL))
        if existing.first() is not None:
            print("Demo accounts already exist, skipping seed.")
            return

        vet_id = (
            await conn.execute(
                insert(users)
                .values(email=DEMO_STAFF_EMAIL, full_name="Dr. Demo Vet", role="vet")
                .returning(users.c.id)
            )
        ).scalar_one()
        client_id = (
            await conn.execute(
                insert(users)
                .values(email=DEMO_CLIENT_EMAIL, full_name="Demo Client", role="client")
                .returning(users.c.id)
            )
        ).scalar_one()
        pet_id = (
            await conn.execute(
                insert(pets)
                .values(owner_id=client_id, name="Rex", species="dog", breed="Beagle")
                .returning(pets.c.id)
            )
        ).scalar_one()

    print(f"✓ Seeded vet {vet_id}, client {client_id}, pet {pet_id}")
    print(f"  Vet token:    {create_access_token({'sub': str(vet_id)})}")
    print(f"  Client token: {create_access_token({'sub': str(client_id)})}")


async def main(with_seed: bool) -> None:
    await init_db()
    if with_seed:
        await seed()
    await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create tables for the clinic database")
    parser.add_argument("--seed", action="store_true", help="Add demo accounts and print tokens")
    args = parser.parse_args()
    asyncio.run(main(args.seed))
