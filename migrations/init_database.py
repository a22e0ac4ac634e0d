#!/usr/bin/env python3
"""
Initialize the wizard response store schema.

Creates the wizard_sessions, wizard_step_responses and wizard_reports
tables if they don't exist, using the DB_* environment settings.
"""

import asyncio
import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from config.database import get_database_settings
from database.async_engine import close_database, init_database
from services.logging_config import configure_logging_from_settings


async def run() -> None:
    settings = get_database_settings()
    target = settings.sqlite_path if settings.is_sqlite else f"{settings.host}:{settings.port}/{settings.name}"
    print("Initializing database...")
    print(f"Database: {target}")

    try:
        await init_database(settings)
    finally:
        await close_database()

    print("Database initialized successfully!")
    print("\nTables:")
    print("  - wizard_sessions")
    print("  - wizard_step_responses")
    print("  - wizard_reports")


def main():
    configure_logging_from_settings()
    asyncio.run(run())


if __name__ == "__main__":
    main()
