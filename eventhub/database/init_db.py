"""
Apply schema.sql to the database named by DATABASE_URL.

Safe to run repeatedly: every statement uses IF NOT EXISTS.

Usage:
    python -m eventhub.database.init_db
"""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from eventhub.database.db_connection import Database

SCHEMA_PATH = Path(__file__).with_name("schema.sql")
REQUIRED_TABLES = ["users", "events", "event_attendees"]


def apply_schema(db: Database) -> None:
    """Create all tables and indexes, then check the critical tables exist."""
    sql = SCHEMA_PATH.read_text(encoding="utf-8")

    with db.connection() as conn:
        with conn.cursor() as cur:
            cur.execute(sql)

            missing = []
            for table in REQUIRED_TABLES:
                cur.execute("SELECT to_regclass(%s);", (table,))
                if cur.fetchone()[0] is None:
                    missing.append(table)

    if missing:
        raise RuntimeError(f"Schema incomplete, missing tables: {', '.join(missing)}")

    logging.info(f"Schema applied: {', '.join(REQUIRED_TABLES)}")


def main() -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(asctime)s - %(message)s")

    db = Database(os.getenv("DATABASE_URL"))
    try:
        apply_schema(db)
    except Exception:
        logging.exception("Database initialisation FAILED")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
