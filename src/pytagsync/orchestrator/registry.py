"""Per-session ownership of identifier mappers and state managers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from pytagsync.mapping import IdMapper
from pytagsync.orchestrator.state import WorkflowStateManager

logger = logging.getLogger(__name__)

__all__ = ["Session", "SessionRegistry"]


@dataclass
class Session:
    session_id: str
    mapper: IdMapper
    state: WorkflowStateManager


class SessionRegistry:
    """
    Explicitly owned session table.

    Runs sharing a session id share one mapper and one state manager, so a
    follow-up run can resolve references to entities created earlier.
    Sessions live until evict() or clear().
    """

    def __init__(self):
        self._sessions: dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            session = Session(session_id, IdMapper(), WorkflowStateManager(session_id))
            self._sessions[session_id] = session
            logger.debug(f"Session {session_id} created")
        return session

    def evict(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def clear(self) -> None:
        self._sessions.clear()
