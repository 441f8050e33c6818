"""Snapshot repository for anonymised stage snapshots."""

import json
import uuid
from typing import Any, Dict, List

import aiosqlite
import structlog

log = structlog.get_logger(__name__)


class SnapshotRepository:
    """Repository for assessment_snapshots rows."""

    def __init__(self, db_path: str):
        self.db_path = str(db_path)

    async def save(
        self, session_id: str, agent_type: str, snapshot_data: Dict[str, Any]
    ) -> str:
        """Insert a snapshot and return its id."""
        snapshot_id = str(uuid.uuid4())
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO assessment_snapshots "
                "(id, session_id, agent_type, snapshot_data, created_at) "
                "VALUES (?, ?, ?, ?, datetime('now'))",
                (snapshot_id, session_id, agent_type, json.dumps(snapshot_data)),
            )
            await db.commit()
        return snapshot_id

    async def list_for_session(self, session_id: str) -> List[Dict[str, Any]]:
        """Snapshots of a session, oldest first."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT id, agent_type, snapshot_data, created_at "
                "FROM assessment_snapshots WHERE session_id = ? "
                "ORDER BY created_at, rowid",
                (session_id,),
            )
            rows = await cursor.fetchall()

        return [
            {
                "id": row["id"],
                "agent_type": row["agent_type"],
                "snapshot_data": json.loads(row["snapshot_data"]),
                "created_at": row["created_at"],
            }
            for row in rows
        ]
