"""Process-local index of live headcount sessions."""

from collections.abc import Iterator
from typing import TYPE_CHECKING
from uuid import UUID

from headcount_bot.domain.errors import DuplicateSession

if TYPE_CHECKING:
    from headcount_bot.services.sessions import SessionInstance


class SessionRegistry:
    """Live sessions keyed by id, at most one instance per id."""

    def __init__(self) -> None:
        self._sessions: dict[UUID, "SessionInstance"] = {}

    def register(self, session: "SessionInstance") -> None:
        if session.id in self._sessions:
            raise DuplicateSession()
        self._sessions[session.id] = session

    def unregister(self, session_id: UUID) -> None:
        self._sessions.pop(session_id, None)

    def get(self, session_id: UUID) -> "SessionInstance | None":
        return self._sessions.get(session_id)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __iter__(self) -> Iterator["SessionInstance"]:
        return iter(list(self._sessions.values()))

    def __len__(self) -> int:
        return len(self._sessions)
