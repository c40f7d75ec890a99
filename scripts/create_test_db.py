#!/usr/bin/env python3
"""
Script to verify the test database setup before running the suite.

Tests default to an in-file SQLite database. Pointing TEST_DATABASE_URL at
PostgreSQL enables the row-locking race tests, and must never reuse the
application database since every test drops all tables.
"""

import os
import sys

from dotenv import load_dotenv

SQLITE_DEFAULT = "sqlite+aiosqlite:///./test.db"


def main() -> int:
    """Check test database configuration."""
    load_dotenv()

    app_db = os.getenv("DATABASE_URL")
    test_db = os.getenv("TEST_DATABASE_URL")

    print("Test database configuration")
    print(f"   Application DB: {app_db}")
    print(f"   Test DB:        {test_db or SQLITE_DEFAULT + ' (default)'}")
    print()

    if test_db and app_db and test_db == app_db:
        print("❌ TEST_DATABASE_URL equals DATABASE_URL.")
        print("   Tests drop every table; use a separate database.")
        return 1

    if not test_db:
        print("ℹ️  Using SQLite. Concurrency tests that need row locks will be skipped.")
    elif not test_db.startswith("postgresql"):
        print("⚠️  Non-PostgreSQL test database: concurrency tests will be skipped.")
    elif "test" not in test_db.lower():
        print("⚠️  Test database URL doesn't contain 'test'; double check the target.")

    print("✅ Test database configuration looks good. Run: pytest")
    return 0


if __name__ == "__main__":
    sys.exit(main())
