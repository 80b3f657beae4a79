"""Per-session serialization of turns."""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..core.errors import SessionBusyError
from ..core.logging_utils import log_event


@dataclass
class _GateEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class SessionTurnGate:
    """
    Run at most one turn per session at a time.

    By default a second turn for the same session waits for the first
    (``asyncio.Lock`` wakes waiters in FIFO order). With ``reject_when_busy``
    it fails fast with SessionBusyError instead. Entries are dropped as soon
    as no turn holds or waits on them.
    """

    def __init__(self, reject_when_busy: bool = False) -> None:
        self.reject_when_busy = reject_when_busy
        self._entries: dict[str, _GateEntry] = {}

    def is_busy(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        entry = self._entries.get(session_id)
        if entry is None:
            entry = _GateEntry()
            self._entries[session_id] = entry

        if self.reject_when_busy and entry.lock.locked():
            log_event(
                component="session_gate",
                event="turn_rejected_busy",
                level="WARNING",
                session_id=session_id,
            )
            raise SessionBusyError(f"session {session_id} already has a turn in progress")

        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0 and self._entries.get(session_id) is entry:
                del self._entries[session_id]
