"""Apply SQL schema for the PostgreSQL relay store."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from ratbridge.backend.config import load_settings

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def apply_schema(conn: Any, schema_path: Path = SCHEMA_PATH) -> None:
    """Run the schema script on an open connection and commit.

    Every statement is idempotent, so running it against an existing database
    is safe.
    """
    schema_sql = schema_path.read_text(encoding="utf-8")
    with conn.cursor() as cur:
        cur.execute(schema_sql)
    conn.commit()


def main() -> None:
    settings = load_settings()
    if not settings.database_url:
        raise RuntimeError("RATBRIDGE_DATABASE_URL is required for migration")

    import psycopg

    with psycopg.connect(settings.database_url) as conn:
        apply_schema(conn)
    logger.info("Relay schema applied")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
