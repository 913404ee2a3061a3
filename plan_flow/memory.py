"""Simple in-memory store for PlanFlow sessions."""

from __future__ import annotations

import uuid
from typing import Dict

from .llm import PlanBackend
from .schemas import Language
from .session import PlanSession


class SessionMemory:
    """Keep live planning sessions by id for the lifetime of the process."""

    def __init__(self) -> None:
        self._store: Dict[str, PlanSession] = {}

    def create(self, backend: PlanBackend, language: Language = Language.AUTO) -> PlanSession:
        """Open a new session bound to *backend*."""

        session = PlanSession(uuid.uuid4().hex, backend, language=language)
        self._store[session.session_id] = session
        return session

    def get(self, session_id: str) -> PlanSession | None:
        return self._store.get(session_id)

    def discard(self, session_id: str) -> PlanSession | None:
        """Forget a session, resetting it so in-flight results are dropped."""

        session = self._store.pop(session_id, None)
        if session is not None:
            session.reset()
        return session

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._store


session_memory = SessionMemory()
