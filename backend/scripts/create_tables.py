"""
Apply the schema in `db.SCHEMA` to the database at `DB_URL`.

Run from the `backend/` directory so the flat modules resolve:

    cd backend && python -m scripts.create_tables

or, after `pip install -e .`, from anywhere with `python backend/scripts/create_tables.py`.
"""

import asyncio
import logging

from db import Database
from settings import settings


async def main():
    print('Connecting to', settings.db_url)
    db = Database.from_settings()
    await db.open()
    try:
        await db.create_schema()
    finally:
        await db.close()
    print('DDL applied')


if __name__ == '__main__':
    logging.basicConfig(level=settings.log_level.upper())
    asyncio.run(main())
