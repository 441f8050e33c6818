"""
SQLite bootstrap and health probe for the session store.

The schema lives in schema.sql and is applied idempotently at startup; there
are no migrations. Sessions and analytics snapshots share one database file.
"""

from pathlib import Path
from typing import Any, Dict, Optional

import aiosqlite
import structlog

from assessment.core.config import settings

log = structlog.get_logger(__name__)

SCHEMA_FILE = Path(__file__).parent / "schema.sql"


async def init_database(db_path: Optional[Path] = None) -> Path:
    """
    Create the database file (and its directory) and apply schema.sql.

    Args:
        db_path: Database file; settings.database_path when omitted

    Returns:
        The initialised database path

    Raises:
        FileNotFoundError: If schema.sql is missing from the package
    """
    db_path = Path(db_path or settings.database_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if not SCHEMA_FILE.exists():
        log.error("schema_file_not_found", path=str(SCHEMA_FILE))
        raise FileNotFoundError(f"Schema file not found: {SCHEMA_FILE}")

    async with aiosqlite.connect(db_path) as db:
        # WAL lets session reads proceed while another session's turn writes
        await db.execute("PRAGMA journal_mode = WAL")
        await db.executescript(SCHEMA_FILE.read_text())
        await db.commit()

    log.info("database_initialized", path=str(db_path))
    return db_path


async def check_database_health(db_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Probe the database for the health endpoints.

    Never raises; an unreachable or corrupt database reports ``unhealthy``.
    """
    db_path = db_path or settings.database_path
    try:
        async with aiosqlite.connect(db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*), "
                "COALESCE(SUM(CASE WHEN phase = 'complete' THEN 1 ELSE 0 END), 0) "
                "FROM sessions"
            )
            session_count, completed_count = await cursor.fetchone()

            cursor = await db.execute("PRAGMA integrity_check")
            (integrity,) = await cursor.fetchone()
    except Exception as e:
        log.error("database_health_check_failed", path=str(db_path), error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy" if integrity == "ok" else "unhealthy",
        "session_count": session_count,
        "completed_sessions": completed_count,
        "integrity": integrity,
        "path": str(db_path),
    }
