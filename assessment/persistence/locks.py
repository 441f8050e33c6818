"""
Per-session lock registry.

Guarantees at most one in-flight turn per session id while turns on
different sessions proceed independently. A turn that arrives while another
is in flight waits (serialised, never dropped); waiting longer than the
configured timeout raises SessionBusyError.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

import structlog

from assessment.core.config import settings
from assessment.core.exceptions import SessionBusyError

log = structlog.get_logger(__name__)


class _Entry:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class SessionLockRegistry:
    """Keyed asyncio locks, dropped once no turn holds or awaits them."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = settings.session_lock_timeout_seconds if timeout is None else timeout
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for a session for the duration of the block.

        Raises:
            SessionBusyError: If the lock is not acquired within the timeout
        """
        entry = self._entries.get(session_id)
        if entry is None:
            entry = self._entries[session_id] = _Entry()
        entry.holders += 1

        try:
            if entry.lock.locked():
                log.warning(
                    "state_corruption_risk_serialized",
                    session_id=session_id,
                    waiting=entry.holders - 1,
                )
            try:
                await asyncio.wait_for(entry.lock.acquire(), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                raise SessionBusyError(
                    "Another turn for this session is still in progress",
                    session_id=session_id,
                ) from e

            try:
                yield
            finally:
                entry.lock.release()
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._entries.pop(session_id, None)
