"""Headcount session state machine."""

import asyncio
import logging
from collections import Counter
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol
from uuid import UUID, uuid4

from headcount_bot.domain.errors import (
    ActionNotConfirmed,
    ArtifactMissing,
    ClaimsClosed,
    DuplicateClaim,
    InvalidForState,
    NotAuthorized,
    ParticipantBusy,
    PersistenceFailure,
    UnknownOption,
)
from headcount_bot.domain.options import OptionEntry, OptionSet
from headcount_bot.domain.sessions import (
    ArtifactHandle,
    ClaimAppended,
    ClaimRecord,
    ControlAction,
    OptionSnapshot,
    OptionView,
    ParticipantClaim,
    ResolvedEnvironment,
    SessionScope,
    SessionSnapshot,
    SessionStatus,
    SessionView,
    SnapshotDelta,
    StatusChanged,
)
from headcount_bot.services.confirmation import (
    ConfirmationFlow,
    ConfirmationGuard,
    ConfirmationOutcome,
    Confirmed,
    PromptChannel,
    confirm_leader_override,
)
from headcount_bot.services.ledger import ReactionLedger
from headcount_bot.services.registry import SessionRegistry

logger = logging.getLogger(__name__)


class EnvironmentResolver(Protocol):
    """Resolves the live channels and role a session needs."""

    async def resolve(self, scope: SessionScope) -> ResolvedEnvironment:
        """Return the resolved handles or raise EnvironmentUnavailable."""


class ControlAuthorizer(Protocol):
    """Decides whether an operator may drive a session."""

    async def is_authorized(
        self, operator_id: int, environment: ResolvedEnvironment
    ) -> bool:
        """Return True if the operator may use the control panel."""


class SnapshotRepository(Protocol):
    """Persistence interface for session snapshots."""

    def append(self, snapshot: SessionSnapshot) -> None:
        """Store a full snapshot, replacing any previous copy."""

    def update(self, session_id: UUID, delta: SnapshotDelta) -> None:
        """Apply a single change to a stored snapshot."""

    def remove(self, session_id: UUID) -> None:
        """Delete a stored snapshot."""

    def list_by_status(
        self, statuses: Sequence[SessionStatus]
    ) -> list[SessionSnapshot]:
        """Return stored snapshots with one of the given statuses."""

    def get(self, session_id: UUID) -> SessionSnapshot | None:
        """Return a stored snapshot by id, if present."""


class SessionRenderer(Protocol):
    """Presentation sink for session views."""

    async def render_announcement(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        """Post or refresh the public announcement."""

    async def render_control_panel(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        """Post or refresh the operator control panel."""

    async def send_control_notice(
        self, environment: ResolvedEnvironment, text: str
    ) -> None:
        """Post a one-off notice on the control surface."""


class LiveRunHandoff(Protocol):
    """Receives a converted headcount."""

    async def hand_off(self, scope: SessionScope, claims: list[ClaimRecord]) -> None:
        """Start a live run from the finalized claims."""


@dataclass(frozen=True)
class SessionTimings:
    """Timer settings shared by all sessions."""

    refresh_interval_seconds: float = 5.0
    staff_response_window_seconds: float = 600.0


@dataclass(frozen=True)
class SessionDependencies:
    """Collaborators every session instance is wired with."""

    resolver: EnvironmentResolver
    authorizer: ControlAuthorizer
    repository: SnapshotRepository
    renderer: SessionRenderer
    handoff: LiveRunHandoff
    registry: SessionRegistry
    timings: SessionTimings = SessionTimings()


_TRANSITIONS: dict[ControlAction, tuple[frozenset[SessionStatus], SessionStatus]] = {
    ControlAction.END: (frozenset({SessionStatus.IN_PROGRESS}), SessionStatus.FINISHED),
    ControlAction.ABORT: (
        frozenset({SessionStatus.IN_PROGRESS, SessionStatus.FINISHED}),
        SessionStatus.ABORTED,
    ),
    ControlAction.CONVERT: (frozenset({SessionStatus.FINISHED}), SessionStatus.CONVERTED),
    ControlAction.DELETE: (frozenset({SessionStatus.FINISHED}), SessionStatus.ABORTED),
}

# Actions that staff other than the initiator must confirm first.
_OVERRIDE_VERBS = {
    ControlAction.END: "end",
    ControlAction.ABORT: "abort",
    ControlAction.DELETE: "delete",
}


class SessionInstance:
    """One live headcount.

    All ledger mutations and status transitions go through a per-session lock.
    Confirmation dialogs run outside the lock so participants never wait on
    each other.
    """

    def __init__(  # noqa: PLR0913
        self,
        dependencies: SessionDependencies,
        *,
        session_id: UUID,
        scope: SessionScope,
        initiator_id: int,
        initiator_name: str,
        options: OptionSet,
        status: SessionStatus = SessionStatus.NOTHING,
        created_at: datetime | None = None,
        last_transition_at: datetime | None = None,
        expires_at: datetime | None = None,
        announcement: ArtifactHandle | None = None,
        control_panel: ArtifactHandle | None = None,
        environment: ResolvedEnvironment | None = None,
    ) -> None:
        self._deps = dependencies
        self.id = session_id
        self.scope = scope
        self.initiator_id = initiator_id
        self.initiator_name = initiator_name
        self.options = options
        self.ledger = ReactionLedger(options.keys())
        self.status = status
        self.created_at = created_at or _utcnow()
        self.last_transition_at = last_transition_at or self.created_at
        self.expires_at = expires_at or self.created_at + timedelta(
            seconds=scope.reaction_window_seconds
        )
        self.announcement = announcement
        self.control_panel = control_panel
        self.environment = environment
        self._lock = asyncio.Lock()
        self._guard = ConfirmationGuard()
        self._timers: list[asyncio.Task[None]] = []
        self._background: set[asyncio.Task[None]] = set()
        self._persisted = False
        self._keys_alerted = False
        self._tag = f"[{initiator_name}, {scope.dungeon_name}]"

    @classmethod
    def create(
        cls,
        dependencies: SessionDependencies,
        scope: SessionScope,
        initiator_id: int,
        initiator_name: str,
        options: OptionSet,
    ) -> "SessionInstance":
        """Create a session that has not been started yet."""
        return cls(
            dependencies,
            session_id=uuid4(),
            scope=scope,
            initiator_id=initiator_id,
            initiator_name=initiator_name,
            options=options,
        )

    @classmethod
    def from_snapshot(
        cls,
        dependencies: SessionDependencies,
        snapshot: SessionSnapshot,
        options: OptionSet,
        environment: ResolvedEnvironment,
    ) -> "SessionInstance":
        """Rebuild a session from storage, replaying claims in stored order."""
        session = cls(
            dependencies,
            session_id=snapshot.id,
            scope=snapshot.scope,
            initiator_id=snapshot.initiator_id,
            initiator_name=snapshot.initiator_name,
            options=options,
            status=snapshot.status,
            created_at=snapshot.created_at,
            last_transition_at=snapshot.last_transition_at,
            expires_at=snapshot.expires_at,
            announcement=snapshot.announcement,
            control_panel=snapshot.control_panel,
            environment=environment,
        )
        for record in snapshot.claims:
            session.ledger.add(
                record.option_key,
                ParticipantClaim(
                    participant_id=record.participant_id,
                    qualifiers=record.qualifiers,
                    correction_count=record.correction_count,
                ),
            )
        session._persisted = True
        session._keys_alerted = session._all_keys_claimed()
        return session

    @property
    def is_running(self) -> bool:
        return self.status is SessionStatus.IN_PROGRESS

    async def start(self, environment: ResolvedEnvironment | None = None) -> None:
        """Resolve the environment, post the views, persist and arm timers."""
        async with self._lock:
            if self.status is not SessionStatus.NOTHING:
                raise InvalidForState()
            self.environment = environment or await self._deps.resolver.resolve(
                self.scope
            )
            now = _utcnow()
            self.created_at = now
            self.expires_at = now + timedelta(seconds=self.scope.reaction_window_seconds)
            self._set_status(SessionStatus.IN_PROGRESS, now)
            try:
                await self._render_views()
            except Exception:
                self.status = SessionStatus.NOTHING
                raise
            await self._append_snapshot()
            self._deps.registry.register(self)
            self._arm_in_progress(self.scope.reaction_window_seconds)
        logger.info("%s Headcount %s started", self._tag, self.id)

    async def resume(self) -> None:
        """Register a recovered session and re-arm the timers matching its status."""
        self._deps.registry.register(self)
        logger.info("%s Headcount %s recovered as %s", self._tag, self.id, self.status)
        if self.status is SessionStatus.IN_PROGRESS:
            remaining = (self.expires_at - _utcnow()).total_seconds()
            if remaining <= 0:
                logger.info("%s Reaction window elapsed while offline", self._tag)
                await self.end()
                return
            self._arm_in_progress(remaining)
        elif self.status is SessionStatus.FINISHED:
            self._arm_staff_window()

    async def submit_claim(
        self,
        participant_id: int,
        option_key: str,
        channel: PromptChannel | None = None,
    ) -> ConfirmationOutcome:
        """Record a claim, running the confirmation dialog for resource claims.

        Raises a ClaimError when the attempt is rejected. A cancelled or timed
        out dialog is returned as an outcome and records nothing.
        """
        async with self._lock:
            option = self._check_claim(participant_id, option_key)
            if not option.requires_confirmation:
                await self._record_claim(option_key, ParticipantClaim(participant_id))
                return Confirmed()
            if channel is None:
                raise ValueError("A prompt channel is required for resource claims")
            self._guard.acquire(participant_id)

        # The participant stays busy until a confirmed claim is recorded.
        try:
            outcome = await ConfirmationFlow(option).run(channel)
            if not isinstance(outcome, Confirmed):
                logger.info(
                    "%s Claim on %s by %s ended with %s",
                    self._tag,
                    option_key,
                    participant_id,
                    type(outcome).__name__,
                )
                return outcome

            async with self._lock:
                if self.status.is_terminal:
                    raise ClaimsClosed()
                await self._record_claim(
                    option_key,
                    ParticipantClaim(
                        participant_id=participant_id,
                        qualifiers=outcome.qualifiers,
                        correction_count=outcome.correction_count,
                    ),
                )
                alert = self._take_keys_alert()
        finally:
            self._guard.release(participant_id)

        if alert:
            await self._send_keys_alert()
        return outcome

    async def dispatch_control_action(
        self,
        operator_id: int,
        action: ControlAction,
        channel: PromptChannel | None = None,
    ) -> SessionStatus:
        """Apply an operator action and return the resulting status.

        Staff who did not start the headcount must confirm END, ABORT and
        DELETE over the channel before the action applies.
        """
        await self.check_control(operator_id, action)
        if self.needs_leader_override(operator_id, action):
            if channel is None:
                raise ValueError("A prompt channel is required to override the leader")
            verb = _OVERRIDE_VERBS[action]
            if not await confirm_leader_override(channel, verb, self.initiator_name):
                logger.info(
                    "%s %s by %s was not confirmed", self._tag, action, operator_id
                )
                raise ActionNotConfirmed(f"Did not {verb} headcount.")
        logger.info("%s %s requested by %s", self._tag, action, operator_id)
        await self._apply(action)
        return self.status

    async def check_control(self, operator_id: int, action: ControlAction) -> None:
        """Raise unless the operator may apply the action in the current status."""
        environment = self._require_environment()
        if not await self._deps.authorizer.is_authorized(operator_id, environment):
            raise NotAuthorized()
        allowed, _ = _TRANSITIONS[action]
        if self.status not in allowed:
            raise InvalidForState()

    def needs_leader_override(self, operator_id: int, action: ControlAction) -> bool:
        return operator_id != self.initiator_id and action in _OVERRIDE_VERBS

    async def end(self) -> None:
        await self._apply(ControlAction.END)

    async def abort(self) -> None:
        await self._apply(ControlAction.ABORT)

    async def convert(self) -> None:
        await self._apply(ControlAction.CONVERT)

    def render_snapshot(self) -> SessionView:
        """Return a point-in-time copy of the session for presentation."""
        return SessionView(
            session_id=self.id,
            status=self.status,
            scope=self.scope,
            initiator_id=self.initiator_id,
            initiator_name=self.initiator_name,
            created_at=self.created_at,
            expires_at=self.expires_at,
            options=tuple(self._option_view(entry) for entry in self.options),
        )

    def snapshot(self) -> SessionSnapshot:
        """Return the persisted form of the session."""
        return SessionSnapshot(
            id=self.id,
            scope=self.scope,
            initiator_id=self.initiator_id,
            initiator_name=self.initiator_name,
            status=self.status,
            created_at=self.created_at,
            last_transition_at=self.last_transition_at,
            expires_at=self.expires_at,
            announcement=self.announcement,
            control_panel=self.control_panel,
            options=tuple(
                OptionSnapshot(
                    key=entry.key,
                    kind=entry.kind,
                    name=entry.name,
                    emoji=entry.emoji,
                    qualifier_ids=tuple(x.id for x in entry.qualifier_candidates),
                )
                for entry in self.options
            ),
            claims=tuple(self.ledger.all_claims()),
        )

    def is_confirming(self, participant_id: int) -> bool:
        return self._guard.is_busy(participant_id)

    async def detach(self) -> None:
        """Stop timers without changing state, leaving the snapshot for recovery."""
        timers = self._stop_timers()
        current = asyncio.current_task()
        pending = [x for x in (*timers, *self._background) if x is not current]
        await asyncio.gather(*pending, return_exceptions=True)

    async def _apply(self, action: ControlAction) -> None:
        allowed, target = _TRANSITIONS[action]
        async with self._lock:
            if self.status not in allowed:
                raise InvalidForState()
            self._set_status(target, _utcnow())
            self._stop_timers()
            if target is SessionStatus.FINISHED:
                await self._finish()
            else:
                await self._close()
        logger.info("%s Headcount %s is now %s", self._tag, self.id, self.status)
        if self.status is SessionStatus.CONVERTED:
            self._track(asyncio.create_task(self._hand_off()))

    async def _finish(self) -> None:
        await self._persist(StatusChanged(status=self.status, at=self.last_transition_at))
        try:
            await self._render_views()
        except ArtifactMissing:
            logger.warning("%s Headcount message is gone, aborting", self._tag)
            self._set_status(SessionStatus.ABORTED, _utcnow())
            await self._close()
            return
        except Exception:
            logger.exception("%s Failed to render finished headcount", self._tag)
        self._arm_staff_window()

    async def _close(self) -> None:
        # Stored first so an interrupted cleanup leaves nothing to recover.
        if self._persisted:
            await self._persist(
                StatusChanged(status=self.status, at=self.last_transition_at)
            )
        await self._cleanup()

    async def _cleanup(self) -> None:
        try:
            await self._render_views()
        except ArtifactMissing:
            logger.info("%s Headcount message already removed", self._tag)
        except Exception:
            logger.exception("%s Failed to render final headcount", self._tag)
        if self._persisted:
            try:
                await asyncio.to_thread(self._deps.repository.remove, self.id)
            except PersistenceFailure:
                logger.warning("%s Failed to remove snapshot %s", self._tag, self.id)
            else:
                self._persisted = False
        self._deps.registry.unregister(self.id)

    async def _hand_off(self) -> None:
        try:
            await self._deps.handoff.hand_off(self.scope, self.ledger.all_claims())
        except Exception:
            logger.exception("%s Live run handoff failed", self._tag)

    def _check_claim(self, participant_id: int, option_key: str) -> OptionEntry:
        if self.status is not SessionStatus.IN_PROGRESS:
            raise ClaimsClosed()
        option = self.options.get(option_key)
        if option is None:
            raise UnknownOption()
        if self._guard.is_busy(participant_id):
            raise ParticipantBusy()
        if self.ledger.has_claim(option_key, participant_id):
            raise DuplicateClaim()
        return option

    async def _record_claim(self, option_key: str, claim: ParticipantClaim) -> None:
        self.ledger.add(option_key, claim)
        await self._persist(
            ClaimAppended(
                claim=ClaimRecord(
                    option_key=option_key,
                    participant_id=claim.participant_id,
                    qualifiers=claim.qualifiers,
                    correction_count=claim.correction_count,
                )
            )
        )

    async def _append_snapshot(self) -> None:
        try:
            await asyncio.to_thread(self._deps.repository.append, self.snapshot())
        except PersistenceFailure:
            logger.warning("%s Failed to store snapshot %s", self._tag, self.id)
            return
        self._persisted = True

    async def _persist(self, delta: SnapshotDelta) -> None:
        # A snapshot that never reached storage is written in full instead.
        if not self._persisted:
            await self._append_snapshot()
            return
        try:
            await asyncio.to_thread(self._deps.repository.update, self.id, delta)
        except PersistenceFailure:
            logger.warning("%s Failed to update snapshot %s", self._tag, self.id)

    def _require_environment(self) -> ResolvedEnvironment:
        if self.environment is None:
            raise InvalidForState("This headcount has not been started.")
        return self.environment

    async def _render_views(self) -> None:
        environment = self._require_environment()
        view = self.render_snapshot()
        renderer = self._deps.renderer
        self.announcement = await renderer.render_announcement(
            view, environment, self.announcement
        )
        self.control_panel = await renderer.render_control_panel(
            view, environment, self.control_panel
        )

    async def _render_announcement(self) -> None:
        self.announcement = await self._deps.renderer.render_announcement(
            self.render_snapshot(), self._require_environment(), self.announcement
        )

    async def _render_control_panel(self) -> None:
        self.control_panel = await self._deps.renderer.render_control_panel(
            self.render_snapshot(), self._require_environment(), self.control_panel
        )

    def _take_keys_alert(self) -> bool:
        if self._keys_alerted or not self._all_keys_claimed():
            return False
        self._keys_alerted = True
        return True

    def _all_keys_claimed(self) -> bool:
        keys = self.options.resource_keys()
        return bool(keys) and all(self.ledger.count_for(x) > 0 for x in keys)

    async def _send_keys_alert(self) -> None:
        environment = self._require_environment()
        text = (
            f"Your {self.scope.dungeon_name} headcount has at least one reaction "
            "for every key. Consider starting the run."
        )
        try:
            await self._deps.renderer.send_control_notice(environment, text)
        except Exception:
            logger.exception("%s Failed to send key alert", self._tag)

    def _option_view(self, entry: OptionEntry) -> OptionView:
        claims = self.ledger.claims_for(entry.key)
        breakdown = Counter(q for claim in claims for q in claim.qualifiers)
        return OptionView(
            key=entry.key,
            kind=entry.kind,
            name=entry.name,
            emoji=entry.emoji,
            claims=claims,
            qualifier_breakdown=tuple(breakdown.items()),
        )

    def _set_status(self, status: SessionStatus, at: datetime) -> None:
        self.status = status
        self.last_transition_at = at

    def _arm_in_progress(self, window_seconds: float) -> None:
        self._spawn_timer(self._expire_after(window_seconds, ControlAction.END))
        self._spawn_timer(self._refresh_loop(self._render_announcement))
        self._spawn_timer(self._refresh_loop(self._render_control_panel))

    def _arm_staff_window(self) -> None:
        window = self._deps.timings.staff_response_window_seconds
        self._spawn_timer(self._expire_after(window, ControlAction.ABORT))

    def _spawn_timer(self, coro: Coroutine[Any, Any, None]) -> None:
        self._timers.append(asyncio.create_task(coro))

    def _track(self, task: asyncio.Task[None]) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _stop_timers(self) -> list[asyncio.Task[None]]:
        current = asyncio.current_task()
        stopped = []
        for task in self._timers:
            if task is current:
                # The timer applying a transition runs its cleanup to completion.
                self._track(task)
                continue
            task.cancel()
            stopped.append(task)
        self._timers = []
        return stopped

    async def _expire_after(self, delay: float, action: ControlAction) -> None:
        await asyncio.sleep(delay)
        logger.info("%s Window elapsed, applying %s", self._tag, action)
        try:
            await self._apply(action)
        except InvalidForState:
            logger.debug("%s %s no longer applies", self._tag, action)

    async def _refresh_loop(self, render: Callable[[], Awaitable[None]]) -> None:
        interval = self._deps.timings.refresh_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                async with self._lock:
                    if self.status is not SessionStatus.IN_PROGRESS:
                        return
                    await render()
            except ArtifactMissing:
                logger.warning("%s Headcount message is gone, aborting", self._tag)
                try:
                    await self.abort()
                except InvalidForState:
                    logger.debug("%s Already closed", self._tag)
                return
            except Exception:
                logger.exception("%s Failed to refresh headcount", self._tag)


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)
