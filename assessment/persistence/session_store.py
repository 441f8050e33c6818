"""
Session state store.

Keyed get/set/delete of the accumulated AssessmentSession. Two backends:

- InMemorySessionStore: process-local dict (tests, single-process dev)
- SqliteSessionStore: one row per session with the record as JSON

The store does not serialise writers; callers hold the per-session lock from
SessionLockRegistry around each get/set pair. No TTL is applied here;
``list_ids`` + ``delete`` let an external sweeper implement eviction.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional

import aiosqlite
import structlog

from assessment.domain.models.session import AssessmentSession

log = structlog.get_logger(__name__)


class SessionStore(ABC):
    """Abstract keyed session store."""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[AssessmentSession]:
        """Return the session, or None if absent."""
        pass

    @abstractmethod
    async def set(self, session_id: str, session: AssessmentSession) -> None:
        """Insert or replace the session."""
        pass

    @abstractmethod
    async def delete(self, session_id: str) -> bool:
        """Remove the session. Returns True if it existed."""
        pass

    @abstractmethod
    async def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        """Stored session ids in creation order, optionally for one owner only."""
        pass


class InMemorySessionStore(SessionStore):
    """Dict-backed store. Stores deep copies so callers cannot mutate state in place."""

    def __init__(self):
        self._sessions: Dict[str, AssessmentSession] = {}

    async def get(self, session_id: str) -> Optional[AssessmentSession]:
        session = self._sessions.get(session_id)
        return session.model_copy(deep=True) if session else None

    async def set(self, session_id: str, session: AssessmentSession) -> None:
        self._sessions[session_id] = session.model_copy(deep=True)

    async def delete(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        return [
            session_id
            for session_id, session in self._sessions.items()
            if user_id is None or session.user_id == user_id
        ]


class SqliteSessionStore(SessionStore):
    """SQLite-backed store; schema from persistence/schema.sql."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)

    async def get(self, session_id: str) -> Optional[AssessmentSession]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT state FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()

        if not row:
            return None
        return AssessmentSession.from_json(row["state"])

    async def set(self, session_id: str, session: AssessmentSession) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO sessions (id, user_id, current_agent, phase, state, "
                "created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, datetime('now'), datetime('now')) "
                "ON CONFLICT(id) DO UPDATE SET "
                "current_agent = excluded.current_agent, "
                "phase = excluded.phase, "
                "state = excluded.state, "
                "updated_at = datetime('now')",
                (
                    session_id,
                    session.user_id,
                    session.current_agent.value,
                    session.phase.value,
                    session.to_json(),
                ),
            )
            await db.commit()

        log.debug(
            "session_saved",
            session_id=session_id,
            current_agent=session.current_agent.value,
            phase=session.phase.value,
        )

    async def delete(self, session_id: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            await db.commit()
            return cursor.rowcount > 0

    async def list_ids(self, user_id: Optional[str] = None) -> List[str]:
        async with aiosqlite.connect(self.db_path) as db:
            if user_id is None:
                cursor = await db.execute("SELECT id FROM sessions ORDER BY created_at, rowid")
            else:
                cursor = await db.execute(
                    "SELECT id FROM sessions WHERE user_id = ? ORDER BY created_at, rowid",
                    (user_id,),
                )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]
