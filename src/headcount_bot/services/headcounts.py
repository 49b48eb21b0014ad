"""Entry points for starting, recovering and driving headcounts."""

import asyncio
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Protocol
from uuid import UUID

from headcount_bot.config import CustomDungeonConfig, SectionConfig
from headcount_bot.domain.dungeons import BUILT_IN_DUNGEONS, DungeonReaction
from headcount_bot.domain.errors import (
    ClaimError,
    ClaimsClosed,
    ControlError,
    EnvironmentUnavailable,
    HeadcountError,
    InvalidForState,
    NotAuthorized,
    NotEligible,
    OperatorBusy,
    ParticipantBusy,
    PersistenceFailure,
    UnknownDungeon,
)
from headcount_bot.domain.modifiers import MODIFIER_CATALOG, ModifierCatalog
from headcount_bot.domain.options import (
    BuiltInOptionSet,
    CustomOptionSet,
    OptionEntry,
    OptionSet,
    OptionSetDefinition,
    resolve_option_set,
)
from headcount_bot.domain.sessions import (
    RECOVERABLE_STATUSES,
    ChannelRef,
    ControlAction,
    OptionSnapshot,
    ResolvedEnvironment,
    SessionScope,
    SessionSnapshot,
    SessionStatus,
)
from headcount_bot.services.confirmation import (
    Cancelled,
    ConfirmationOutcome,
    ConfirmationPrompt,
    Confirmed,
    QueuedPromptChannel,
)
from headcount_bot.services.registry import SessionRegistry
from headcount_bot.services.sessions import SessionDependencies, SessionInstance

logger = logging.getLogger(__name__)


class PromptSender(Protocol):
    """Delivers confirmation prompts and results to a participant."""

    async def send_prompt(
        self, session_id: UUID, participant_id: int, prompt: ConfirmationPrompt
    ) -> None:
        """Show a confirmation prompt to the participant."""

    async def notify(self, participant_id: int, text: str) -> None:
        """Send a plain message to the participant."""


class ParticipantEligibility(Protocol):
    """Decides whether a participant may react to a headcount."""

    async def is_eligible(
        self, participant_id: int, environment: ResolvedEnvironment
    ) -> bool:
        """Return True if the participant holds the eligibility role."""


@dataclass
class HeadcountService:
    """Creates sessions and routes participant and operator events to them."""

    dependencies: SessionDependencies
    prompt_sender: PromptSender
    eligibility: ParticipantEligibility
    catalog: ModifierCatalog = MODIFIER_CATALOG
    default_reaction_window_seconds: float = 3600.0
    _channels: dict[tuple[UUID, int], QueuedPromptChannel] = field(
        default_factory=dict, init=False
    )
    _tasks: set[asyncio.Task[None]] = field(default_factory=set, init=False)

    @property
    def registry(self) -> SessionRegistry:
        return self.dependencies.registry

    def create(
        self,
        initiator_id: int,
        initiator_name: str,
        scope: SessionScope,
        definition: OptionSetDefinition,
    ) -> SessionInstance:
        """Create an unstarted session for a resolved dungeon definition."""
        options = resolve_option_set(definition, self.catalog)
        return SessionInstance.create(
            self.dependencies,
            scope=scope,
            initiator_id=initiator_id,
            initiator_name=initiator_name,
            options=options,
        )

    async def start_headcount(
        self,
        initiator_id: int,
        initiator_name: str,
        section: SectionConfig,
        dungeon_code: str,
    ) -> SessionInstance:
        """Create and start a headcount for a section's dungeon.

        Only operators allowed on the section's control surface may start one.
        """
        definition = option_set_definition(section, dungeon_code)
        options = resolve_option_set(definition, self.catalog)
        scope = section_scope(section, options, self.default_reaction_window_seconds)
        environment = await self.dependencies.resolver.resolve(scope)
        if not await self.dependencies.authorizer.is_authorized(
            initiator_id, environment
        ):
            raise NotAuthorized("Only section staff can start a headcount.")
        session = self.create(initiator_id, initiator_name, scope, definition)
        await session.start(environment)
        return session

    async def recover_all(self) -> int:
        """Rehydrate every stored running or finished session."""
        repository = self.dependencies.repository
        try:
            snapshots = await asyncio.to_thread(
                repository.list_by_status, RECOVERABLE_STATUSES
            )
        except PersistenceFailure:
            logger.exception("Failed to load stored headcounts")
            return 0

        recovered = 0
        for snapshot in snapshots:
            if await self._recover(snapshot):
                recovered += 1
        logger.info("Recovered %d of %d stored headcounts", recovered, len(snapshots))
        return recovered

    async def submit_claim(
        self, session_id: UUID, participant_id: int, option_key: str
    ) -> ConfirmationOutcome:
        """Submit a claim, prompting the participant when the option needs it."""
        session = self.registry.get(session_id)
        if session is None:
            raise ClaimsClosed()
        if session.environment is not None and not await self.eligibility.is_eligible(
            participant_id, session.environment
        ):
            raise NotEligible()

        option = session.options.get(option_key)
        if option is None or not option.requires_confirmation:
            return await session.submit_claim(participant_id, option_key)

        # One open prompt per participant and session, held until the claim
        # attempt has fully finished.
        key = (session_id, participant_id)
        if key in self._channels:
            if not session.is_running:
                raise ClaimsClosed()
            raise ParticipantBusy()
        channel = self._open_channel(key)
        try:
            return await session.submit_claim(participant_id, option_key, channel)
        finally:
            self._channels.pop(key, None)

    def claim_in_background(
        self, session_id: UUID, participant_id: int, option_key: str
    ) -> asyncio.Task[None]:
        """Run a claim with its confirmation dialog without blocking the caller."""
        task = asyncio.create_task(
            self._claim_and_notify(session_id, participant_id, option_key)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def choose_action(self, session_id: UUID, participant_id: int, index: int) -> bool:
        """Answer the participant's current prompt with one of its actions."""
        channel = self._channels.get((session_id, participant_id))
        if channel is None or channel.prompt is None:
            return False
        if not 0 <= index < len(channel.prompt.actions):
            return False
        channel.deliver([channel.prompt.actions[index].value])
        return True

    def toggle_selection(
        self, session_id: UUID, participant_id: int, index: int
    ) -> tuple[str, ...] | None:
        """Toggle a multi-select entry and return the selected labels."""
        channel = self._channels.get((session_id, participant_id))
        if channel is None or channel.prompt is None:
            return None
        selections = channel.prompt.selections
        if not 0 <= index < len(selections):
            return None
        chosen = set(channel.toggle(selections[index].value))
        return tuple(x.label for x in selections if x.value in chosen)

    def submit_selection(self, session_id: UUID, participant_id: int) -> bool:
        channel = self._channels.get((session_id, participant_id))
        if channel is None or channel.prompt is None:
            return False
        channel.submit_selection()
        return True

    async def dispatch_control_action(
        self, session_id: UUID, operator_id: int, action: ControlAction
    ) -> SessionStatus:
        """Route an operator action to a live session.

        Staff acting on a headcount they did not start confirm through a prompt
        in their private chat with the bot first.
        """
        session = self._live_session(session_id)
        if not session.needs_leader_override(operator_id, action):
            return await session.dispatch_control_action(operator_id, action)
        key = (session_id, operator_id)
        if key in self._channels:
            raise OperatorBusy()
        channel = self._open_channel(key)
        try:
            return await session.dispatch_control_action(operator_id, action, channel)
        finally:
            self._channels.pop(key, None)

    async def needs_confirmation(
        self, session_id: UUID, operator_id: int, action: ControlAction
    ) -> bool:
        """Check an operator action and report whether it must be confirmed first."""
        session = self._live_session(session_id)
        await session.check_control(operator_id, action)
        if not session.needs_leader_override(operator_id, action):
            return False
        if (session_id, operator_id) in self._channels:
            raise OperatorBusy()
        return True

    def control_in_background(
        self, session_id: UUID, operator_id: int, action: ControlAction
    ) -> asyncio.Task[None]:
        """Run an operator action with its confirmation prompt without blocking."""
        task = asyncio.create_task(
            self._control_and_notify(session_id, operator_id, action)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def close(self) -> None:
        """Stop timers and pending dialogs, leaving snapshots for recovery."""
        for channel in list(self._channels.values()):
            channel.dismiss()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        for session in self.registry:
            await session.detach()

    async def _recover(self, snapshot: SessionSnapshot) -> bool:
        if snapshot.announcement is None or snapshot.control_panel is None:
            logger.warning("Headcount %s has no rendered messages, skipping", snapshot.id)
            return False
        try:
            environment = await self.dependencies.resolver.resolve(snapshot.scope)
        except EnvironmentUnavailable:
            logger.warning(
                "Environment for headcount %s in section %s is unavailable, skipping",
                snapshot.id,
                snapshot.scope.section_id,
            )
            return False
        try:
            session = SessionInstance.from_snapshot(
                self.dependencies,
                snapshot,
                options=option_set_from_snapshot(snapshot, self.catalog),
                environment=environment,
            )
            await session.resume()
        except HeadcountError as exc:
            logger.warning("Failed to recover headcount %s: %s", snapshot.id, exc.reason)
            return False
        return True

    async def _claim_and_notify(
        self, session_id: UUID, participant_id: int, option_key: str
    ) -> None:
        session = self.registry.get(session_id)
        option = session.options.get(option_key) if session else None
        try:
            outcome = await self.submit_claim(session_id, participant_id, option_key)
        except ClaimError as exc:
            text = exc.reason
        except Exception:
            logger.exception("Claim on %s by %s failed", option_key, participant_id)
            return
        else:
            text = outcome_message(option, outcome)
        try:
            await self.prompt_sender.notify(participant_id, text)
        except Exception:
            logger.exception("Failed to notify participant %s", participant_id)

    async def _control_and_notify(
        self, session_id: UUID, operator_id: int, action: ControlAction
    ) -> None:
        try:
            status = await self.dispatch_control_action(session_id, operator_id, action)
        except ControlError as exc:
            text = exc.reason
        except Exception:
            logger.exception("%s on %s by %s failed", action, session_id, operator_id)
            return
        else:
            text = status_message(status)
        try:
            await self.prompt_sender.notify(operator_id, text)
        except Exception:
            logger.exception("Failed to notify operator %s", operator_id)

    def _live_session(self, session_id: UUID) -> SessionInstance:
        session = self.registry.get(session_id)
        if session is None:
            raise InvalidForState("This headcount is no longer active.")
        return session

    def _open_channel(self, key: tuple[UUID, int]) -> QueuedPromptChannel:
        session_id, user_id = key
        channel = QueuedPromptChannel(
            user_id, partial(self.prompt_sender.send_prompt, session_id)
        )
        self._channels[key] = channel
        return channel


def status_message(status: SessionStatus) -> str:
    """Return the reply sent to an operator once an action has applied."""
    return f"Headcount is now {status.value.lower().replace('_', ' ')}."


def outcome_message(option: OptionEntry | None, outcome: ConfirmationOutcome) -> str:
    """Return the message sent to a participant when a claim attempt ends."""
    name = option.name if option else "reaction"
    if isinstance(outcome, Confirmed):
        if outcome.qualifiers:
            return (
                f"Your {name} has been recorded with: {', '.join(outcome.qualifiers)}."
            )
        return f"Your {name} has been recorded."
    if isinstance(outcome, Cancelled):
        return f"You cancelled your {name} reaction."
    return f"Your {name} confirmation timed out. React again to try once more."


def option_set_definition(section: SectionConfig, dungeon_code: str) -> OptionSetDefinition:
    """Pick the built-in or custom dungeon a section offers under a code name."""
    code = dungeon_code.strip().upper()
    for custom in section.custom_dungeons:
        if custom.code_name.upper() == code:
            return _custom_definition(custom)
    allowed = {x.upper() for x in section.allowed_dungeons}
    if allowed and code not in allowed:
        raise UnknownDungeon()
    override = section.modifier_overrides.get(code)
    return BuiltInOptionSet(
        code_name=code,
        allowed_modifier_ids=tuple(override) if override is not None else None,
    )


def section_scope(
    section: SectionConfig, options: OptionSet, default_window_seconds: float
) -> SessionScope:
    """Build the immutable scope of a headcount in a section."""
    return SessionScope(
        section_id=section.id,
        section_name=section.name,
        dungeon_code=options.code_name,
        dungeon_name=options.dungeon_name,
        announcement_channel=ChannelRef(
            chat_id=section.chat_id, thread_id=section.announcement_thread_id
        ),
        control_channel=ChannelRef(
            chat_id=section.resolved_control_chat_id,
            thread_id=section.control_thread_id,
        ),
        eligibility_chat_id=section.eligibility_chat_id,
        reaction_window_seconds=section.reaction_window_seconds
        or default_window_seconds,
    )


def option_set_from_snapshot(
    snapshot: SessionSnapshot, catalog: ModifierCatalog = MODIFIER_CATALOG
) -> OptionSet:
    """Rebuild the option set stored with a snapshot."""
    return OptionSet(
        snapshot.scope.dungeon_code,
        snapshot.scope.dungeon_name,
        [_entry_from_snapshot(option, catalog) for option in snapshot.options],
    )


def _entry_from_snapshot(option: OptionSnapshot, catalog: ModifierCatalog) -> OptionEntry:
    return OptionEntry(
        key=option.key,
        kind=option.kind,
        name=option.name,
        emoji=option.emoji,
        qualifier_candidates=catalog.subset(option.qualifier_ids),
    )


def _custom_definition(custom: CustomDungeonConfig) -> CustomOptionSet:
    return CustomOptionSet(
        code_name=custom.code_name.upper(),
        name=custom.name,
        key_reactions=tuple(
            DungeonReaction(x.key, x.name, x.type, x.emoji) for x in custom.key_reactions
        ),
        other_reactions=tuple(
            DungeonReaction(x.key, x.name, x.type, x.emoji)
            for x in custom.other_reactions
        ),
        allowed_modifier_ids=(
            tuple(custom.allowed_modifier_ids)
            if custom.allowed_modifier_ids is not None
            else None
        ),
    )


def available_dungeons(section: SectionConfig) -> list[tuple[str, str]]:
    """Return the code names and names of the dungeons a section can start."""
    allowed = {x.upper() for x in section.allowed_dungeons}
    dungeons = [
        (code, info.name)
        for code, info in BUILT_IN_DUNGEONS.items()
        if not allowed or code in allowed
    ]
    dungeons.extend((x.code_name.upper(), x.name) for x in section.custom_dungeons)
    return dungeons
