"""Shared test fixtures."""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field, replace
from uuid import UUID

import pytest

from headcount_bot.adapters.telegram_client import TelegramClient
from headcount_bot.config import SectionConfig, Settings
from headcount_bot.containers import AppContainer
from headcount_bot.domain.errors import (
    ArtifactMissing,
    EnvironmentUnavailable,
    PersistenceFailure,
)
from headcount_bot.domain.options import BuiltInOptionSet, OptionSet, resolve_option_set
from headcount_bot.domain.sessions import (
    ArtifactHandle,
    ChannelRef,
    ClaimAppended,
    ClaimRecord,
    ResolvedEnvironment,
    SessionScope,
    SessionSnapshot,
    SessionStatus,
    SessionView,
    SnapshotDelta,
)
from headcount_bot.services.confirmation import ConfirmationPrompt
from headcount_bot.services.headcounts import HeadcountService
from headcount_bot.services.registry import SessionRegistry
from headcount_bot.services.sessions import (
    SessionDependencies,
    SessionInstance,
    SessionTimings,
)

SECTION_CHAT_ID = -1001
VERIFIED_CHAT_ID = -2002
STAFF_ID = 500
CO_LEADER_ID = 600
MEMBER_ID = 700

ENVIRONMENT = ResolvedEnvironment(
    target_channel=ChannelRef(chat_id=SECTION_CHAT_ID, thread_id=11),
    control_channel=ChannelRef(chat_id=SECTION_CHAT_ID, thread_id=12),
    eligibility_role=VERIFIED_CHAT_ID,
    parent_id=SECTION_CHAT_ID,
)


def make_scope(window_seconds: float = 60.0, dungeon: str = "SHATTERS") -> SessionScope:
    options = make_options(dungeon)
    return SessionScope(
        section_id="main",
        section_name="Main Section",
        dungeon_code=options.code_name,
        dungeon_name=options.dungeon_name,
        announcement_channel=ENVIRONMENT.target_channel,
        control_channel=ENVIRONMENT.control_channel,
        eligibility_chat_id=VERIFIED_CHAT_ID,
        reaction_window_seconds=window_seconds,
    )


def make_options(dungeon: str = "SHATTERS") -> OptionSet:
    return resolve_option_set(BuiltInOptionSet(dungeon))


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until the predicate holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.001)
    raise AssertionError("Condition was not met in time")


@dataclass
class FakeTelegramClient(TelegramClient):
    """Fake Telegram client that records messages."""

    messages: list[tuple[int, str]] = field(default_factory=list)
    markups: list[dict | None] = field(default_factory=list)
    threads: list[int | None] = field(default_factory=list)
    edits: list[tuple[int, int, str]] = field(default_factory=list)
    callbacks: list[tuple[str, str | None]] = field(default_factory=list)
    chats: dict[int, dict] = field(default_factory=dict)
    members: dict[tuple[int, int], dict] = field(default_factory=dict)
    missing_messages: set[int] = field(default_factory=set)
    commands: list[dict[str, str]] | None = None
    menu_button: dict[str, object] | None = None
    next_message_id: int = 1000

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: dict | None = None,
        message_thread_id: int | None = None,
    ) -> int:
        self.messages.append((chat_id, text))
        self.markups.append(reply_markup)
        self.threads.append(message_thread_id)
        self.next_message_id += 1
        return self.next_message_id

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        if message_id in self.missing_messages:
            raise ArtifactMissing()
        self.edits.append((chat_id, message_id, text))

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None, show_alert: bool = False
    ) -> None:
        self.callbacks.append((callback_query_id, text))

    async def get_chat(self, chat_id: int) -> dict | None:
        return self.chats.get(chat_id)

    async def get_chat_member(self, chat_id: int, user_id: int) -> dict | None:
        return self.members.get((chat_id, user_id))

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        self.commands = commands

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        self.menu_button = menu_button


@dataclass
class FakeResolver:
    """Resolver returning a fixed environment."""

    environment: ResolvedEnvironment = ENVIRONMENT
    unavailable: bool = False
    calls: int = 0

    async def resolve(self, scope: SessionScope) -> ResolvedEnvironment:
        self.calls += 1
        if self.unavailable:
            raise EnvironmentUnavailable()
        return self.environment


@dataclass
class FakeAuthorizer:
    """Authorizer with a fixed set of staff ids."""

    staff: set[int] = field(default_factory=lambda: {STAFF_ID, CO_LEADER_ID})

    async def is_authorized(
        self, operator_id: int, environment: ResolvedEnvironment
    ) -> bool:
        return operator_id in self.staff


@dataclass
class InMemorySnapshotRepository:
    """In-memory snapshot repository for tests."""

    snapshots: dict[UUID, SessionSnapshot] = field(default_factory=dict)
    fail: bool = False
    updates: list[SnapshotDelta] = field(default_factory=list)
    removed: list[UUID] = field(default_factory=list)

    def append(self, snapshot: SessionSnapshot) -> None:
        self._check()
        self.snapshots[snapshot.id] = snapshot

    def update(self, session_id: UUID, delta: SnapshotDelta) -> None:
        self._check()
        self.updates.append(delta)
        current = self.snapshots[session_id]
        if isinstance(delta, ClaimAppended):
            self.snapshots[session_id] = replace(
                current, claims=(*current.claims, delta.claim)
            )
        else:
            self.snapshots[session_id] = replace(
                current, status=delta.status, last_transition_at=delta.at
            )

    def remove(self, session_id: UUID) -> None:
        self._check()
        self.removed.append(session_id)
        self.snapshots.pop(session_id, None)

    def list_by_status(
        self, statuses: Sequence[SessionStatus]
    ) -> list[SessionSnapshot]:
        self._check()
        return [x for x in self.snapshots.values() if x.status in statuses]

    def get(self, session_id: UUID) -> SessionSnapshot | None:
        self._check()
        return self.snapshots.get(session_id)

    def claims(self, session_id: UUID) -> tuple[ClaimRecord, ...]:
        return self.snapshots[session_id].claims

    def _check(self) -> None:
        if self.fail:
            raise PersistenceFailure()


@dataclass
class FakeRenderer:
    """Renderer that records every view it is asked to draw."""

    announcements: list[SessionView] = field(default_factory=list)
    control_panels: list[SessionView] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    missing: bool = False
    next_message_id: int = 1

    async def render_announcement(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        handle = self._handle(environment.target_channel, previous)
        self.announcements.append(view)
        return handle

    async def render_control_panel(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        handle = self._handle(environment.control_channel, previous)
        self.control_panels.append(view)
        return handle

    async def send_control_notice(
        self, environment: ResolvedEnvironment, text: str
    ) -> None:
        self.notices.append(text)

    @property
    def last_status(self) -> SessionStatus | None:
        return self.announcements[-1].status if self.announcements else None

    def _handle(
        self, channel: ChannelRef, previous: ArtifactHandle | None
    ) -> ArtifactHandle:
        if previous is not None:
            if self.missing:
                raise ArtifactMissing()
            return previous
        self.next_message_id += 1
        return ArtifactHandle(chat_id=channel.chat_id, message_id=self.next_message_id)


@dataclass
class FakeHandoff:
    """Records converted headcounts."""

    calls: list[tuple[SessionScope, list[ClaimRecord]]] = field(default_factory=list)

    async def hand_off(self, scope: SessionScope, claims: list[ClaimRecord]) -> None:
        self.calls.append((scope, claims))

    async def close(self) -> None:
        return None


@dataclass
class FakeEligibility:
    """Treats everyone as verified except the listed participants."""

    ineligible: set[int] = field(default_factory=set)

    async def is_eligible(
        self, participant_id: int, environment: ResolvedEnvironment
    ) -> bool:
        return participant_id not in self.ineligible


@dataclass
class FakePromptSender:
    """Records prompts and notifications sent to participants."""

    prompts: list[tuple[UUID, int, ConfirmationPrompt]] = field(default_factory=list)
    notifications: list[tuple[int, str]] = field(default_factory=list)

    async def send_prompt(
        self, session_id: UUID, participant_id: int, prompt: ConfirmationPrompt
    ) -> None:
        self.prompts.append((session_id, participant_id, prompt))

    async def notify(self, participant_id: int, text: str) -> None:
        self.notifications.append((participant_id, text))


class ScriptedChannel:
    """Prompt channel answering from a fixed script.

    ``None`` dismisses the prompt; ``HANG`` never answers.
    """

    HANG = object()

    def __init__(self, *answers: object) -> None:
        self.answers = list(answers)
        self.prompts: list[ConfirmationPrompt] = []

    async def ask(self, prompt: ConfirmationPrompt) -> Sequence[str] | None:
        self.prompts.append(prompt)
        answer = self.answers.pop(0) if self.answers else ScriptedChannel.HANG
        if answer is ScriptedChannel.HANG:
            await asyncio.Event().wait()
        return answer  # type: ignore[return-value]


@pytest.fixture
def section() -> SectionConfig:
    return SectionConfig(
        id="main",
        name="Main Section",
        chat_id=SECTION_CHAT_ID,
        announcement_thread_id=11,
        control_thread_id=12,
        eligibility_chat_id=VERIFIED_CHAT_ID,
    )


@pytest.fixture
def settings(section: SectionConfig) -> Settings:
    return Settings(
        telegram_bot_token="test-token",
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        admin_token="admin-token",
        sections=[section],
    )


@pytest.fixture
def telegram_client() -> FakeTelegramClient:
    return FakeTelegramClient()


@pytest.fixture
def repository() -> InMemorySnapshotRepository:
    return InMemorySnapshotRepository()


@pytest.fixture
def renderer() -> FakeRenderer:
    return FakeRenderer()


@pytest.fixture
def handoff() -> FakeHandoff:
    return FakeHandoff()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def prompt_sender() -> FakePromptSender:
    return FakePromptSender()


@pytest.fixture
def eligibility() -> FakeEligibility:
    return FakeEligibility()


@pytest.fixture
def registry() -> SessionRegistry:
    return SessionRegistry()


@pytest.fixture
def dependencies(
    resolver: FakeResolver,
    repository: InMemorySnapshotRepository,
    renderer: FakeRenderer,
    handoff: FakeHandoff,
    registry: SessionRegistry,
) -> SessionDependencies:
    return SessionDependencies(
        resolver=resolver,
        authorizer=FakeAuthorizer(),
        repository=repository,
        renderer=renderer,
        handoff=handoff,
        registry=registry,
        timings=SessionTimings(
            refresh_interval_seconds=60.0, staff_response_window_seconds=60.0
        ),
    )


@pytest.fixture
def make_session(
    dependencies: SessionDependencies,
) -> Callable[..., SessionInstance]:
    def factory(
        window_seconds: float = 60.0, dungeon: str = "SHATTERS"
    ) -> SessionInstance:
        return SessionInstance.create(
            dependencies,
            scope=make_scope(window_seconds, dungeon),
            initiator_id=STAFF_ID,
            initiator_name="leader",
            options=make_options(dungeon),
        )

    return factory


@pytest.fixture
def headcount_service(
    dependencies: SessionDependencies,
    prompt_sender: FakePromptSender,
    eligibility: FakeEligibility,
) -> HeadcountService:
    return HeadcountService(
        dependencies=dependencies,
        prompt_sender=prompt_sender,
        eligibility=eligibility,
    )


@pytest.fixture
def container(
    settings: Settings,
    telegram_client: FakeTelegramClient,
    repository: InMemorySnapshotRepository,
    registry: SessionRegistry,
    headcount_service: HeadcountService,
) -> AppContainer:
    async def close_resources() -> None:
        await headcount_service.close()

    return AppContainer(
        settings=settings,
        telegram_client=telegram_client,
        snapshot_repository=repository,
        registry=registry,
        headcount_service=headcount_service,
        close_resources=close_resources,
    )
