from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Engine

logger = logging.getLogger(__name__)

# Columns added to "match" after the first schema, for databases created before them.
# (name, sqlite_type, postgres_type, default)
REQUIRED_MATCH_COLUMNS: List[Tuple[str, str, str, Optional[str]]] = [
    ("version", "INTEGER", "INTEGER", "1"),
    ("side1_is_bye", "INTEGER", "BOOLEAN", "0"),
    ("side2_is_bye", "INTEGER", "BOOLEAN", "0"),
    ("completion_reason", "TEXT", "TEXT", None),
    ("winner_ids", "TEXT", "JSON", None),
    ("is_manual_entry", "INTEGER", "BOOLEAN", "0"),
]

# Columns we must ensure exist in the "tournament" table.
REQUIRED_TOURNAMENT_COLUMNS: List[Tuple[str, str, str, Optional[str]]] = [
    ("location", "TEXT", "TEXT", None),
    ("notes", "TEXT", "TEXT", None),
]


def _is_sqlite(engine: Engine) -> bool:
    return engine.dialect.name.lower() == "sqlite"


def _get_existing_columns_sqlite(engine: Engine, table_name: str) -> Dict[str, str]:
    cols: Dict[str, str] = {}
    with engine.connect() as conn:
        res = conn.execute(text(f'PRAGMA table_info("{table_name}");')).fetchall()
        # PRAGMA table_info returns rows: (cid, name, type, notnull, dflt_value, pk)
        for row in res:
            cols[str(row[1])] = str(row[2])
    return cols


def _get_existing_columns_postgres(engine: Engine, table_name: str) -> Dict[str, str]:
    cols: Dict[str, str] = {}
    sql = """
    SELECT column_name, data_type
    FROM information_schema.columns
    WHERE table_schema = 'public' AND table_name = :table_name;
    """
    with engine.connect() as conn:
        res = conn.execute(text(sql), {"table_name": table_name}).fetchall()
        for row in res:
            cols[str(row[0])] = str(row[1])
    return cols


def _table_exists(engine: Engine, table: str) -> bool:
    if _is_sqlite(engine):
        sql = "SELECT name FROM sqlite_master WHERE type='table' AND name=:table_name"
    else:
        sql = """
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_schema = 'public' AND table_name = :table_name
        )
        """
    with engine.connect() as conn:
        result = conn.execute(text(sql), {"table_name": table}).fetchone()
    if _is_sqlite(engine):
        return result is not None
    return bool(result and result[0])


def _ensure_columns(engine: Engine, table: str, columns: List[Tuple[str, str, str, Optional[str]]]) -> List[str]:
    """Add any missing columns. Returns the names that were added."""
    if not _table_exists(engine, table):
        # Table doesn't exist yet, skip (create_all should create it)
        return []

    sqlite = _is_sqlite(engine)
    existing = _get_existing_columns_sqlite(engine, table) if sqlite else _get_existing_columns_postgres(engine, table)
    added: List[str] = []
    with engine.begin() as conn:
        for name, sqlite_type, pg_type, default in columns:
            if name in existing:
                continue
            default_sql = f" DEFAULT {default}" if default is not None else ""
            if default is not None and not sqlite and pg_type == "BOOLEAN":
                default_sql = " DEFAULT TRUE" if default == "1" else " DEFAULT FALSE"
            if sqlite:
                # SQLite supports ADD COLUMN without IF NOT EXISTS
                conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN {name} {sqlite_type}{default_sql};'))
            else:
                conn.execute(text(f'ALTER TABLE "{table}" ADD COLUMN IF NOT EXISTS {name} {pg_type}{default_sql};'))
            added.append(name)
    return added


def ensure_match_columns(engine: Engine) -> List[str]:
    """
    Idempotently adds progression columns to the 'match' table if missing.
    Safe to run at every startup.
    """
    try:
        from app.models.match import Match

        added = _ensure_columns(engine, Match.__table__.name, REQUIRED_MATCH_COLUMNS)
        if added:
            logger.info("Added match columns: %s", ", ".join(added))
        return added
    except Exception as e:
        # Log error but don't crash the server
        logger.warning(f"Failed to ensure match columns (this is OK if table doesn't exist yet): {e}")
        return []


def ensure_tournament_columns(engine: Engine) -> List[str]:
    """
    Idempotently adds required columns to the 'tournament' table if missing.
    Safe to run at every startup.
    """
    try:
        from app.models.tournament import Tournament

        return _ensure_columns(engine, Tournament.__table__.name, REQUIRED_TOURNAMENT_COLUMNS)
    except Exception as e:
        logger.warning(f"Failed to ensure tournament columns (this is OK if table doesn't exist yet): {e}")
        return []
