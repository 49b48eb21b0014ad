"""Confirmation dialog that finalizes the modifiers of a key claim."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from headcount_bot.domain.errors import ParticipantBusy
from headcount_bot.domain.modifiers import DungeonModifier
from headcount_bot.domain.options import OptionEntry

logger = logging.getLogger(__name__)

SELECTION_WINDOW_SECONDS = 2 * 60.0
LEVEL_WINDOW_SECONDS = 2 * 60.0
BINARY_WINDOW_SECONDS = 15.0
LEADER_OVERRIDE_WINDOW_SECONDS = 30.0
MAX_SELECTED_QUALIFIERS = 4
UNSPECIFIED_QUALIFIER = "unspecified"

NO_QUALIFIERS = "no_modifier"
NOT_LISTED = "none_listed"
CONFIRM = "confirm"
CONFIRM_WITH_QUALIFIERS = "confirm_with_modifiers"
ACCIDENT = "accident"
CANCEL = "cancel"


class FlowState(StrEnum):
    """Where a confirmation flow is in its dialog."""

    NOT_STARTED = "NOT_STARTED"
    AWAITING_QUALIFIER_SELECTION = "AWAITING_QUALIFIER_SELECTION"
    AWAITING_LEVEL = "AWAITING_LEVEL"
    AWAITING_BINARY = "AWAITING_BINARY"
    FINALIZING = "FINALIZING"
    DONE = "DONE"


class PromptKind(StrEnum):
    QUALIFIER_SELECTION = "QUALIFIER_SELECTION"
    LEVEL = "LEVEL"
    BINARY = "BINARY"


@dataclass(frozen=True)
class PromptChoice:
    """A single selectable answer."""

    value: str
    label: str
    description: str | None = None


@dataclass(frozen=True)
class ConfirmationPrompt:
    """A question directed at the claiming participant.

    ``selections`` are toggled in a multi-select; ``actions`` answer the prompt
    with a single press.
    """

    kind: PromptKind
    text: str
    actions: tuple[PromptChoice, ...]
    timeout_seconds: float
    selections: tuple[PromptChoice, ...] = ()
    max_selections: int = 0


@dataclass(frozen=True)
class Confirmed:
    qualifiers: tuple[str, ...] = ()
    correction_count: int = 0


@dataclass(frozen=True)
class Cancelled:
    pass


@dataclass(frozen=True)
class TimedOut:
    pass


ConfirmationOutcome = Confirmed | Cancelled | TimedOut


class PromptChannel(Protocol):
    """Transport that shows a prompt to one participant and returns the answer."""

    async def ask(self, prompt: ConfirmationPrompt) -> Sequence[str] | None:
        """Show the prompt and return the chosen values, or None if dismissed."""


class ConfirmationFlow:
    """Sub-state machine turning a key claim into a finalized qualifier list."""

    def __init__(self, option: OptionEntry) -> None:
        self.option = option
        self.state = FlowState.NOT_STARTED
        self.outcome: ConfirmationOutcome | None = None
        self.current: DungeonModifier | None = None
        self._pending: list[DungeonModifier] = []
        self._qualifiers: list[str] = []
        self._corrections = 0

    async def run(self, channel: PromptChannel) -> ConfirmationOutcome:
        """Drive the dialog over a channel until it reaches an outcome.

        Every prompt has a hard deadline. Transport errors end the attempt as
        cancelled instead of propagating.
        """
        step = self.start()
        while isinstance(step, ConfirmationPrompt):
            try:
                response = await asyncio.wait_for(
                    channel.ask(step), timeout=step.timeout_seconds
                )
            except TimeoutError:
                step = self.expire()
                continue
            except Exception:
                logger.exception("Confirmation prompt for %s failed", self.option.key)
                step = self.cancel()
                continue
            if response is None:
                step = self.cancel()
            else:
                step = self.handle(response)
        return step

    def start(self) -> ConfirmationPrompt:
        if self.state is not FlowState.NOT_STARTED:
            raise RuntimeError("Confirmation flow already started")
        if self.option.qualifier_candidates:
            self.state = FlowState.AWAITING_QUALIFIER_SELECTION
            return self._selection_prompt()
        self.state = FlowState.AWAITING_BINARY
        return self._binary_prompt()

    def handle(
        self, response: Sequence[str]
    ) -> ConfirmationPrompt | ConfirmationOutcome:
        """Apply one answer and return the next prompt or the final outcome."""
        values = tuple(response)
        if self.state is FlowState.AWAITING_QUALIFIER_SELECTION:
            return self._handle_selection(values)
        if self.state is FlowState.AWAITING_LEVEL:
            return self._handle_level(values)
        if self.state is FlowState.AWAITING_BINARY:
            return self._handle_binary(values)
        raise RuntimeError(f"Confirmation flow is not awaiting an answer ({self.state})")

    def expire(self) -> ConfirmationOutcome:
        """Resolve a prompt whose window elapsed."""
        # An unanswered binary prompt counts as a decline.
        if self.state is FlowState.AWAITING_BINARY:
            return self._finish(Cancelled())
        return self._finish(TimedOut())

    def cancel(self) -> ConfirmationOutcome:
        return self._finish(Cancelled())

    def _handle_selection(
        self, values: tuple[str, ...]
    ) -> ConfirmationPrompt | ConfirmationOutcome:
        if CANCEL in values:
            return self._finish(Cancelled())
        if NO_QUALIFIERS in values:
            return self._finish(Confirmed())
        if NOT_LISTED in values:
            return self._finish(Confirmed(qualifiers=(UNSPECIFIED_QUALIFIER,)))
        selected = [x for x in self.option.qualifier_candidates if x.id in values]
        self._pending = selected[:MAX_SELECTED_QUALIFIERS]
        return self._advance()

    def _handle_level(
        self, values: tuple[str, ...]
    ) -> ConfirmationPrompt | ConfirmationOutcome:
        if self.current is None:
            raise RuntimeError("No modifier is awaiting a level")
        choice = values[0] if values else ""
        if choice == CANCEL:
            return self._finish(Cancelled())
        if choice == ACCIDENT:
            self._corrections += 1
            return self._advance()
        if choice.isdigit() and 1 <= int(choice) <= self.current.max_level:
            self._qualifiers.append(self.current.label(int(choice)))
            return self._advance()
        return self._level_prompt(self.current)

    def _handle_binary(self, values: tuple[str, ...]) -> ConfirmationOutcome:
        if CONFIRM in values:
            return self._finish(Confirmed())
        if CONFIRM_WITH_QUALIFIERS in values:
            return self._finish(Confirmed(qualifiers=(UNSPECIFIED_QUALIFIER,)))
        return self._finish(Cancelled())

    def _advance(self) -> ConfirmationPrompt | ConfirmationOutcome:
        while self._pending:
            modifier = self._pending.pop(0)
            if modifier.max_level == 1:
                self._qualifiers.append(modifier.label())
                continue
            self.current = modifier
            self.state = FlowState.AWAITING_LEVEL
            return self._level_prompt(modifier)
        self.current = None
        self.state = FlowState.FINALIZING
        return self._finish(
            Confirmed(
                qualifiers=tuple(self._qualifiers),
                correction_count=self._corrections,
            )
        )

    def _finish(self, outcome: ConfirmationOutcome) -> ConfirmationOutcome:
        self.state = FlowState.DONE
        self.outcome = outcome
        self._pending = []
        return outcome

    def _selection_prompt(self) -> ConfirmationPrompt:
        return ConfirmationPrompt(
            kind=PromptKind.QUALIFIER_SELECTION,
            text=(
                f"You pressed the {self.option.name} button. What modifiers does "
                "this key have? Select all that apply. If none of your modifiers "
                "are listed, press None Listed. If your key has no modifiers, "
                "press No Modifier. You have two minutes to answer."
            ),
            selections=tuple(
                PromptChoice(value=x.id, label=x.name, description=x.description)
                for x in self.option.qualifier_candidates
            ),
            max_selections=MAX_SELECTED_QUALIFIERS,
            actions=(
                PromptChoice(value=NO_QUALIFIERS, label="No Modifier"),
                PromptChoice(value=NOT_LISTED, label="None Listed"),
                PromptChoice(value=CANCEL, label="Cancel"),
            ),
            timeout_seconds=SELECTION_WINDOW_SECONDS,
        )

    def _level_prompt(self, modifier: DungeonModifier) -> ConfirmationPrompt:
        levels = tuple(
            PromptChoice(value=str(level), label=str(level))
            for level in range(1, modifier.max_level + 1)
        )
        return ConfirmationPrompt(
            kind=PromptKind.LEVEL,
            text=(
                f"What level is the {modifier.name} modifier? Press Cancel to stop, "
                "or Accident if you selected this modifier by mistake."
            ),
            actions=(
                *levels,
                PromptChoice(value=CANCEL, label="Cancel"),
                PromptChoice(value=ACCIDENT, label="Accident"),
            ),
            timeout_seconds=LEVEL_WINDOW_SECONDS,
        )

    def _binary_prompt(self) -> ConfirmationPrompt:
        return ConfirmationPrompt(
            kind=PromptKind.BINARY,
            text=(
                f"You pressed the {self.option.name} button. Please confirm that you "
                "are bringing this item."
            ),
            actions=(
                PromptChoice(value=CONFIRM, label="Confirm"),
                PromptChoice(value=CONFIRM_WITH_QUALIFIERS, label="Confirm w/ Modifiers"),
                PromptChoice(value=CANCEL, label="Cancel"),
            ),
            timeout_seconds=BINARY_WINDOW_SECONDS,
        )


def leader_override_prompt(verb: str, leader_name: str) -> ConfirmationPrompt:
    """Prompt shown to staff acting on a headcount someone else started."""
    return ConfirmationPrompt(
        kind=PromptKind.BINARY,
        text=(
            f"This is not your headcount. Are you sure you want to {verb} "
            f"{leader_name}'s headcount?"
        ),
        actions=(
            PromptChoice(value=CONFIRM, label="Yes"),
            PromptChoice(value=CANCEL, label="No"),
        ),
        timeout_seconds=LEADER_OVERRIDE_WINDOW_SECONDS,
    )


async def confirm_leader_override(
    channel: PromptChannel, verb: str, leader_name: str
) -> bool:
    """Ask the operator to confirm. Anything but Yes within the window declines."""
    prompt = leader_override_prompt(verb, leader_name)
    try:
        response = await asyncio.wait_for(
            channel.ask(prompt), timeout=prompt.timeout_seconds
        )
    except TimeoutError:
        return False
    except Exception:
        logger.exception("Leader override prompt failed")
        return False
    return response is not None and CONFIRM in response


PromptSender = Callable[[int, ConfirmationPrompt], Awaitable[None]]


class QueuedPromptChannel:
    """Prompt channel fed by an event queue, one per in-flight flow."""

    def __init__(self, participant_id: int, send: PromptSender) -> None:
        self.participant_id = participant_id
        self.prompt: ConfirmationPrompt | None = None
        self._send = send
        self._responses: asyncio.Queue[tuple[str, ...] | None] = asyncio.Queue()
        self._selected: list[str] = []

    async def ask(self, prompt: ConfirmationPrompt) -> Sequence[str] | None:
        while not self._responses.empty():
            self._responses.get_nowait()
        self.prompt = prompt
        self._selected = []
        await self._send(self.participant_id, prompt)
        return await self._responses.get()

    def deliver(self, values: Sequence[str]) -> None:
        """Answer the current prompt."""
        self._responses.put_nowait(tuple(values))

    def toggle(self, value: str) -> tuple[str, ...]:
        """Toggle a multi-select value on the current prompt and return the selection."""
        if self.prompt is None or value not in {x.value for x in self.prompt.selections}:
            return tuple(self._selected)
        if value in self._selected:
            self._selected.remove(value)
        elif len(self._selected) < self.prompt.max_selections:
            self._selected.append(value)
        return tuple(self._selected)

    def submit_selection(self) -> None:
        self.deliver(self._selected)

    def dismiss(self) -> None:
        """Close the current prompt without an answer."""
        self._responses.put_nowait(None)


class ConfirmationGuard:
    """Tracks participants with a confirmation in flight."""

    def __init__(self) -> None:
        self._confirming: set[int] = set()

    def is_busy(self, participant_id: int) -> bool:
        return participant_id in self._confirming

    def acquire(self, participant_id: int) -> None:
        if participant_id in self._confirming:
            raise ParticipantBusy()
        self._confirming.add(participant_id)

    def release(self, participant_id: int) -> None:
        self._confirming.discard(participant_id)
