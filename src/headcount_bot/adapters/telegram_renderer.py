"""Telegram presentation of headcounts and confirmation prompts."""

from dataclasses import dataclass
from uuid import UUID

from headcount_bot.adapters.telegram_client import TelegramClient
from headcount_bot.domain.options import OptionKind
from headcount_bot.domain.sessions import (
    ArtifactHandle,
    ControlAction,
    OptionView,
    ResolvedEnvironment,
    SessionStatus,
    SessionView,
)
from headcount_bot.services.confirmation import ConfirmationPrompt

CLAIM_PREFIX = "hc"
PROMPT_PREFIX = "hq"
CONTROL_PREFIX = "hx"
SUBMIT_SELECTION = "d"

_STATUS_LABELS = {
    SessionStatus.NOTHING: "Preparing",
    SessionStatus.IN_PROGRESS: "Open",
    SessionStatus.FINISHED: "Ended, waiting for staff",
    SessionStatus.ABORTED: "Aborted",
    SessionStatus.CONVERTED: "Converted to a run",
}

_CONTROL_BUTTONS: dict[SessionStatus, list[tuple[str, ControlAction]]] = {
    SessionStatus.IN_PROGRESS: [
        ("End headcount", ControlAction.END),
        ("Abort", ControlAction.ABORT),
    ],
    SessionStatus.FINISHED: [
        ("Convert to run", ControlAction.CONVERT),
        ("Abort", ControlAction.ABORT),
        ("Delete", ControlAction.DELETE),
    ],
}


def claim_callback(session_id: UUID, option_index: int) -> str:
    """Build callback_data within Telegram's 64-byte limit."""
    return f"{CLAIM_PREFIX}:{session_id}:{option_index}"


def prompt_callback(session_id: UUID, choice: str) -> str:
    return f"{PROMPT_PREFIX}:{session_id}:{choice}"


def control_callback(session_id: UUID, action: ControlAction) -> str:
    return f"{CONTROL_PREFIX}:{session_id}:{action.value}"


def parse_callback(data: str) -> tuple[str, UUID, str] | None:
    """Parse callback data in the format <prefix>:<uuid>:<payload>."""
    parts = data.split(":", maxsplit=2)
    if len(parts) != 3:
        return None
    prefix, raw_id, payload = parts
    if prefix not in {CLAIM_PREFIX, PROMPT_PREFIX, CONTROL_PREFIX}:
        return None
    try:
        return prefix, UUID(raw_id), payload
    except ValueError:
        return None


@dataclass
class TelegramSessionRenderer:
    """Posts and edits the announcement and control panel messages."""

    telegram_client: TelegramClient

    async def render_announcement(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        text = format_announcement(view)
        markup = _announcement_keyboard(view)
        return await self._publish(environment, previous, text, markup, control=False)

    async def render_control_panel(
        self,
        view: SessionView,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
    ) -> ArtifactHandle:
        text = format_control_panel(view)
        markup = _control_keyboard(view)
        return await self._publish(environment, previous, text, markup, control=True)

    async def send_control_notice(
        self, environment: ResolvedEnvironment, text: str
    ) -> None:
        await self.telegram_client.send_message(
            chat_id=environment.control_channel.chat_id,
            text=text,
            message_thread_id=environment.control_channel.thread_id,
        )

    async def _publish(  # noqa: PLR0913
        self,
        environment: ResolvedEnvironment,
        previous: ArtifactHandle | None,
        text: str,
        markup: dict,
        control: bool,
    ) -> ArtifactHandle:
        channel = environment.control_channel if control else environment.target_channel
        if previous is None:
            message_id = await self.telegram_client.send_message(
                chat_id=channel.chat_id,
                text=text,
                reply_markup=markup,
                message_thread_id=channel.thread_id,
            )
            return ArtifactHandle(chat_id=channel.chat_id, message_id=message_id)
        await self.telegram_client.edit_message_text(
            chat_id=previous.chat_id,
            message_id=previous.message_id,
            text=text,
            reply_markup=markup,
        )
        return previous


@dataclass
class TelegramPromptSender:
    """Sends confirmation prompts and results to participants in private chat."""

    telegram_client: TelegramClient

    async def send_prompt(
        self, session_id: UUID, participant_id: int, prompt: ConfirmationPrompt
    ) -> None:
        await self.telegram_client.send_message(
            chat_id=participant_id,
            text=prompt.text,
            reply_markup=prompt_keyboard(session_id, prompt),
        )

    async def notify(self, participant_id: int, text: str) -> None:
        await self.telegram_client.send_message(chat_id=participant_id, text=text)


def prompt_keyboard(session_id: UUID, prompt: ConfirmationPrompt) -> dict:
    """Build the inline keyboard for a confirmation prompt."""
    rows: list[list[dict[str, str]]] = [
        [
            {
                "text": choice.label,
                "callback_data": prompt_callback(session_id, f"s{index}"),
            }
        ]
        for index, choice in enumerate(prompt.selections)
    ]
    if prompt.selections:
        rows.append(
            [
                {
                    "text": "Done",
                    "callback_data": prompt_callback(session_id, SUBMIT_SELECTION),
                }
            ]
        )
    rows.append(
        [
            {
                "text": choice.label,
                "callback_data": prompt_callback(session_id, f"a{index}"),
            }
            for index, choice in enumerate(prompt.actions)
        ]
    )
    return {"inline_keyboard": rows}


def format_announcement(view: SessionView) -> str:
    """Format the public headcount message."""
    lines = [
        f"{view.scope.dungeon_name} headcount by {view.initiator_name}",
        f"Section: {view.scope.section_name}",
        f"Status: {_STATUS_LABELS[view.status]}",
    ]
    if view.status is SessionStatus.IN_PROGRESS:
        lines.append(
            "Press Interested if you want to join. Press a key if you can bring it."
        )
        lines.append(f"Closes at {view.expires_at.strftime('%H:%M')} UTC")
    lines.append("")
    for option in view.options:
        if option.kind is OptionKind.INFORMATIONAL and not option.count:
            continue
        lines.append(f"{_option_title(option)}: {option.count}")
    return "\n".join(lines)


def format_control_panel(view: SessionView) -> str:
    """Format the staff control panel with every claim and its modifiers."""
    lines = [
        f"Control panel: {view.scope.dungeon_name} headcount",
        f"Started by {view.initiator_name} ({view.initiator_id})",
        f"Status: {_STATUS_LABELS[view.status]}",
        f"Interested: {view.interested_count}",
    ]
    for option in view.options:
        if option.kind is OptionKind.PURE_INTEREST:
            continue
        lines.append("")
        lines.append(f"{_option_title(option)} ({option.count})")
        for claim in option.claims:
            detail = ", ".join(claim.qualifiers) if claim.qualifiers else "no modifiers"
            if option.kind is OptionKind.RESOURCE_CLAIM:
                lines.append(f"- {claim.participant_id}: {detail}")
            else:
                lines.append(f"- {claim.participant_id}")
        if option.qualifier_breakdown:
            summary = ", ".join(
                f"{label} x{count}" for label, count in option.qualifier_breakdown
            )
            lines.append(f"Modifiers: {summary}")
    return "\n".join(lines)


def _option_title(option: OptionView) -> str:
    return f"{option.emoji} {option.name}" if option.emoji else option.name


def _announcement_keyboard(view: SessionView) -> dict:
    if view.status is not SessionStatus.IN_PROGRESS:
        return {"inline_keyboard": []}
    return {
        "inline_keyboard": [
            [
                {
                    "text": f"{_option_title(option)} ({option.count})",
                    "callback_data": claim_callback(view.session_id, index),
                }
            ]
            for index, option in enumerate(view.options)
        ]
    }


def _control_keyboard(view: SessionView) -> dict:
    buttons = _CONTROL_BUTTONS.get(view.status, [])
    if not buttons:
        return {"inline_keyboard": []}
    return {
        "inline_keyboard": [
            [
                {"text": label, "callback_data": control_callback(view.session_id, action)}
                for label, action in buttons
            ]
        ]
    }
