"""Domain models for headcount sessions."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from uuid import UUID

from headcount_bot.domain.options import OptionKind


class SessionStatus(StrEnum):
    """Lifecycle status of a headcount."""

    NOTHING = "NOTHING"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"
    ABORTED = "ABORTED"
    CONVERTED = "CONVERTED"

    @property
    def is_terminal(self) -> bool:
        return self in {SessionStatus.ABORTED, SessionStatus.CONVERTED}


RECOVERABLE_STATUSES = (SessionStatus.IN_PROGRESS, SessionStatus.FINISHED)


class ControlAction(StrEnum):
    """Operator actions available on the control panel."""

    END = "END"
    ABORT = "ABORT"
    CONVERT = "CONVERT"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChannelRef:
    """A Telegram chat, optionally narrowed to a forum topic."""

    chat_id: int
    thread_id: int | None = None


@dataclass(frozen=True)
class SessionScope:
    """Section and dungeon a headcount is about, plus its routing data."""

    section_id: str
    section_name: str
    dungeon_code: str
    dungeon_name: str
    announcement_channel: ChannelRef
    control_channel: ChannelRef
    eligibility_chat_id: int
    reaction_window_seconds: float


@dataclass(frozen=True)
class ResolvedEnvironment:
    """Live handles a running headcount needs."""

    target_channel: ChannelRef
    control_channel: ChannelRef
    eligibility_role: int
    parent_id: int


@dataclass(frozen=True)
class ArtifactHandle:
    """A rendered message."""

    chat_id: int
    message_id: int


@dataclass(frozen=True)
class ParticipantClaim:
    """A participant's claim on one option."""

    participant_id: int
    qualifiers: tuple[str, ...] = ()
    correction_count: int = 0


@dataclass(frozen=True)
class ClaimRecord:
    """Flattened claim as stored in a snapshot."""

    option_key: str
    participant_id: int
    qualifiers: tuple[str, ...]
    correction_count: int


@dataclass(frozen=True)
class OptionSnapshot:
    """Stored form of an option entry."""

    key: str
    kind: OptionKind
    name: str
    emoji: str | None
    qualifier_ids: tuple[str, ...]


@dataclass(frozen=True)
class SessionSnapshot:
    """Persisted form of a headcount session."""

    id: UUID
    scope: SessionScope
    initiator_id: int
    initiator_name: str
    status: SessionStatus
    created_at: datetime
    last_transition_at: datetime
    expires_at: datetime
    announcement: ArtifactHandle | None
    control_panel: ArtifactHandle | None
    options: tuple[OptionSnapshot, ...]
    claims: tuple[ClaimRecord, ...]


@dataclass(frozen=True)
class ClaimAppended:
    """Snapshot delta: one claim was recorded."""

    claim: ClaimRecord


@dataclass(frozen=True)
class StatusChanged:
    """Snapshot delta: the session moved to a new status."""

    status: SessionStatus
    at: datetime


SnapshotDelta = ClaimAppended | StatusChanged


@dataclass(frozen=True)
class OptionView:
    """Point-in-time view of one option."""

    key: str
    kind: OptionKind
    name: str
    emoji: str | None
    claims: tuple[ParticipantClaim, ...]
    qualifier_breakdown: tuple[tuple[str, int], ...]

    @property
    def count(self) -> int:
        return len(self.claims)


@dataclass(frozen=True)
class SessionView:
    """Point-in-time view of a headcount for rendering."""

    session_id: UUID
    status: SessionStatus
    scope: SessionScope
    initiator_id: int
    initiator_name: str
    created_at: datetime
    expires_at: datetime
    options: tuple[OptionView, ...]

    @property
    def interested_count(self) -> int:
        for option in self.options:
            if option.kind is OptionKind.PURE_INTEREST:
                return option.count
        return 0

    def option(self, key: str) -> OptionView | None:
        for option in self.options:
            if option.key == key:
                return option
        return None
