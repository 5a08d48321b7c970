#!/usr/bin/env python3
"""
Database setup script for the XaoSao API.
Checks the connection and creates any missing tables. Use alembic for
schema changes on an existing database.
"""

import asyncio
import os
import sys

# Add the project root to the Python path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

from sqlalchemy import text  # noqa: E402

from app.config import settings  # noqa: E402
from app.database import create_tables, engine  # noqa: E402


async def setup_database():
    """Setup database tables"""
    print("Setting up database...")
    print(f"Database URL: {settings.database_url}")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        print("✅ Database connection successful")

        await create_tables()
        print("✅ Database tables created successfully")

    except Exception as e:
        print(f"❌ Database setup failed: {e}")
        print("\nMake sure PostgreSQL is running and APP_DATABASE_URL is set")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(setup_database())
