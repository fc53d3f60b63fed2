"""Create the lobby document tables in PostgreSQL."""

from __future__ import annotations

import logging
from pathlib import Path

from tasktower.backend.config import load_settings


logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("db_schema.sql")


def read_schema() -> str:
    return SCHEMA_PATH.read_text(encoding="utf-8")


def apply_schema(database_url: str) -> None:
    import psycopg

    with psycopg.connect(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(read_schema())
        conn.commit()
    logger.info("Lobby document schema applied")


def main() -> None:
    settings = load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    if not settings.database_url:
        raise RuntimeError("TASKTOWER_DATABASE_URL is required for migration")
    apply_schema(settings.database_url)


if __name__ == "__main__":
    main()
