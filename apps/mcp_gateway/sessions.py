from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

__all__ = ["Session", "SessionStore"]


@dataclass(frozen=True, slots=True)
class Session:
    id: str
    created_at: datetime


class SessionStore:
    """Append-only mapping of session id to the handshake that created it.

    Sessions are never updated or removed; expiry is left to a real
    deployment.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: dict[str, Session] = {}

    def create(self) -> str:
        session = Session(id=str(uuid4()), created_at=datetime.now(UTC))
        with self._lock:
            self._sessions[session.id] = session
        return session.id

    def exists(self, session_id: str | None) -> bool:
        """Return ``True`` for known ids and for calls without an id."""

        if not session_id:
            return True
        with self._lock:
            return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            return self._sessions.get(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
