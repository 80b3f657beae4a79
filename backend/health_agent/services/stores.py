"""Session and acknowledgment stores."""
from __future__ import annotations

import abc
import threading
from dataclasses import replace
from datetime import datetime, timedelta

from ..core.errors import SessionCorruptedError, SessionNotFoundError
from ..core.models import ConversationMessage, Session
from ..core.types import DisclaimerType


class BaseSessionStore(abc.ABC):
    """Owner of session state. Callers only ever see immutable snapshots."""

    @abc.abstractmethod
    def get(self, session_id: str) -> Session:
        """Return the session or raise SessionNotFoundError / SessionCorruptedError."""

    @abc.abstractmethod
    def create(
        self,
        session_id: str,
        *,
        now: datetime,
        language: str = "en",
        user_id: str | None = None,
        disclaimer_acknowledged: bool = False,
    ) -> Session:
        """Create (or replace) a session with an empty message history."""

    @abc.abstractmethod
    def append(self, session_id: str, message: ConversationMessage) -> int:
        """Append one message and return its index in the conversation."""

    @abc.abstractmethod
    def expire(self, session_id: str) -> None:
        """Mark a session expired. Expired sessions never accept new turns."""

    @abc.abstractmethod
    def touch(self, session_id: str, now: datetime) -> Session:
        """Record activity without appending a message. Extends the expiry window."""

    @abc.abstractmethod
    def mark_acknowledged(self, session_id: str) -> Session:
        """Set the disclaimer-acknowledgment flag on a session."""

    @abc.abstractmethod
    def evict_stale(self, now: datetime, grace: timedelta) -> list[str]:
        """Forget sessions whose expiry passed more than ``grace`` ago; return their ids."""


class InMemorySessionStore(BaseSessionStore):
    def __init__(self, expiry_window: timedelta = timedelta(minutes=30)) -> None:
        if expiry_window <= timedelta(0):
            raise ValueError("expiry_window must be positive")
        self.expiry_window = expiry_window
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    @staticmethod
    def _check_integrity(session: Session) -> None:
        previous: datetime | None = None
        seen_ids: set[str] = set()
        for message in session.messages:
            if message.message_id in seen_ids:
                raise SessionCorruptedError(f"duplicate message id {message.message_id}")
            seen_ids.add(message.message_id)
            if previous is not None and message.timestamp < previous:
                raise SessionCorruptedError("messages are out of order")
            previous = message.timestamp
        if session.last_activity_at < session.created_at:
            raise SessionCorruptedError("last activity precedes creation")

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"session {session_id} does not exist")
        self._check_integrity(session)
        return session

    def create(
        self,
        session_id: str,
        *,
        now: datetime,
        language: str = "en",
        user_id: str | None = None,
        disclaimer_acknowledged: bool = False,
    ) -> Session:
        session = Session(
            session_id=session_id,
            user_id=user_id,
            created_at=now,
            last_activity_at=now,
            expires_at=now + self.expiry_window,
            language=language,
            disclaimer_acknowledged=disclaimer_acknowledged,
        )
        with self._lock:
            self._sessions[session_id] = session
        return session

    def append(self, session_id: str, message: ConversationMessage) -> int:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"session {session_id} does not exist")
            activity_at = max(session.last_activity_at, message.timestamp)
            updated = replace(
                session,
                messages=(*session.messages, message),
                last_activity_at=activity_at,
                expires_at=activity_at + self.expiry_window,
                language=message.language,
            )
            self._sessions[session_id] = updated
            return len(updated.messages) - 1

    def expire(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            self._sessions[session_id] = replace(session, expired=True)

    def touch(self, session_id: str, now: datetime) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"session {session_id} does not exist")
            activity_at = max(session.last_activity_at, now)
            updated = replace(
                session,
                last_activity_at=activity_at,
                expires_at=activity_at + self.expiry_window,
            )
            self._sessions[session_id] = updated
            return updated

    def mark_acknowledged(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(f"session {session_id} does not exist")
            updated = replace(session, disclaimer_acknowledged=True)
            self._sessions[session_id] = updated
            return updated

    def evict_stale(self, now: datetime, grace: timedelta) -> list[str]:
        cutoff = now - grace
        with self._lock:
            stale = [
                session_id
                for session_id, session in self._sessions.items()
                if session.expires_at <= cutoff
            ]
            for session_id in stale:
                del self._sessions[session_id]
        return stale


class BaseAcknowledgmentStore(abc.ABC):
    """Keyed by (user-or-session id, disclaimer type)."""

    @abc.abstractmethod
    def record(self, subject_id: str, disclaimer_type: DisclaimerType) -> None:
        pass

    @abc.abstractmethod
    def has(self, subject_id: str, disclaimer_type: DisclaimerType) -> bool:
        pass


class InMemoryAcknowledgmentStore(BaseAcknowledgmentStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._acknowledged: set[tuple[str, DisclaimerType]] = set()

    def record(self, subject_id: str, disclaimer_type: DisclaimerType) -> None:
        with self._lock:
            self._acknowledged.add((subject_id, disclaimer_type))

    def has(self, subject_id: str, disclaimer_type: DisclaimerType) -> bool:
        with self._lock:
            return (subject_id, disclaimer_type) in self._acknowledged
