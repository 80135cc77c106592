from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from actor_dashboard.utils.ids import new_session_token


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    token: str
    credential: str
    user_id: str
    created_at: datetime


class SessionStore:
    """
    Maps an opaque bearer token to the caller's API key and user id.

    Sessions never expire and are not persisted; they live until the process restarts.
    Token generation and the clock are injectable so tests can be deterministic.
    """

    def __init__(
        self,
        token_factory: Callable[[], str] = new_session_token,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._token_factory = token_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: Dict[str, Session] = {}

    def create(self, credential: str, user_id: str) -> Session:
        with self._lock:
            token = self._token_factory()
            while token in self._sessions:
                token = self._token_factory()
            session = Session(token=token, credential=credential, user_id=user_id, created_at=self._clock())
            self._sessions[token] = session
            return session

    def get(self, token: str | None) -> Optional[Session]:
        if not token:
            return None
        with self._lock:
            return self._sessions.get(token)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
