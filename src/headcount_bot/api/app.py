"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import FastAPI, Request

from headcount_bot.adapters.telegram_renderer import (
    CLAIM_PREFIX,
    CONTROL_PREFIX,
    PROMPT_PREFIX,
    SUBMIT_SELECTION,
    parse_callback,
)
from headcount_bot.api.admin import router as admin_router
from headcount_bot.api.telegram_models import (
    TelegramMessage,
    TelegramUpdate,
    TelegramUser,
)
from headcount_bot.app_logging import configure_logging
from headcount_bot.config import SectionConfig, parse_allowed_user_ids
from headcount_bot.containers import AppContainer
from headcount_bot.domain.errors import (
    ClaimError,
    ClaimsClosed,
    ControlError,
    DuplicateClaim,
    EnvironmentUnavailable,
    ParticipantBusy,
    UnknownDungeon,
    UnknownOption,
)
from headcount_bot.domain.sessions import ControlAction
from headcount_bot.services.headcounts import available_dungeons, status_message
from headcount_bot.telegram_commands import CHAT_MENU_BUTTON, telegram_commands

_HELP_TEXT = (
    "Staff start a headcount in a section with /headcount <dungeon>. "
    "Members press Interested, or the key they can bring. Keys are confirmed "
    "in a private chat with this bot, so start a chat with it first. "
    "Use /dungeons to see what this section offers."
)


def create_app(container: AppContainer) -> FastAPI:  # noqa: PLR0915
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)
    allowed_user_ids = parse_allowed_user_ids(
        container.settings.telegram_allowed_user_ids
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        state_container: AppContainer = app.state.container
        try:
            await state_container.telegram_client.set_my_commands(telegram_commands())
            await state_container.telegram_client.set_chat_menu_button(
                CHAT_MENU_BUTTON
            )
        except Exception:
            logger.exception("Failed to sync Telegram bot commands")
        try:
            await state_container.headcount_service.recover_all()
        except Exception:
            logger.exception("Failed to recover stored headcounts")
        yield
        await state_container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    @app.post("/telegram/webhook")
    async def telegram_webhook(
        update: TelegramUpdate, request: Request
    ) -> dict[str, str]:
        """Handle Telegram webhook updates."""
        state_container: AppContainer = request.app.state.container
        user_id = _extract_user_id(update)
        if user_id is not None and not _is_user_allowed(user_id, allowed_user_ids):
            if update.callback_query:
                await state_container.telegram_client.answer_callback_query(
                    update.callback_query.id,
                    text="Not authorized.",
                )
                return {"status": "ok"}
            if update.message:
                await state_container.telegram_client.send_message(
                    chat_id=update.message.chat.id,
                    text="This bot is private.",
                )
                return {"status": "ok"}

        if update.callback_query:
            callback = update.callback_query
            parsed = parse_callback(callback.data) if callback.data else None
            if parsed is None:
                await state_container.telegram_client.answer_callback_query(callback.id)
                return {"status": "ok"}
            prefix, session_id, payload = parsed
            if prefix == CLAIM_PREFIX:
                text = await _handle_claim(
                    state_container, session_id, callback.from_user.id, payload
                )
            elif prefix == PROMPT_PREFIX:
                text = _handle_prompt(
                    state_container, session_id, callback.from_user.id, payload
                )
            else:
                text = await _handle_control(
                    state_container, session_id, callback.from_user.id, payload
                )
            await state_container.telegram_client.answer_callback_query(
                callback.id, text=text
            )
            return {"status": "ok"}

        message = update.message
        if not message or not message.text or not message.from_user:
            return {"status": "ok"}
        command, args = _parse_command(message.text)
        if command == "/headcount":
            await _start_headcount(
                state_container, message, message.from_user, args, logger
            )
        elif command == "/dungeons":
            await _list_dungeons(state_container, message)
        elif command in {"/help", "/start"}:
            await _reply(state_container, message, _HELP_TEXT)
        return {"status": "ok"}

    return app


async def _handle_claim(
    container: AppContainer, session_id: UUID, participant_id: int, payload: str
) -> str | None:
    """Record a reaction button press and return the callback answer."""
    service = container.headcount_service
    session = service.registry.get(session_id)
    if session is None:
        return ClaimsClosed().reason
    option = session.options.at(int(payload)) if payload.isdigit() else None
    if option is None:
        return UnknownOption().reason
    if option.requires_confirmation:
        if session.is_confirming(participant_id):
            return ParticipantBusy().reason
        if session.ledger.has_claim(option.key, participant_id):
            return DuplicateClaim().reason
        service.claim_in_background(session_id, participant_id, option.key)
        return "Check your private chat with the bot to confirm."
    try:
        await service.submit_claim(session_id, participant_id, option.key)
    except ClaimError as exc:
        return exc.reason
    return f"{option.name} recorded."


def _handle_prompt(
    container: AppContainer, session_id: UUID, participant_id: int, payload: str
) -> str | None:
    """Route a confirmation prompt button to the participant's open dialog."""
    service = container.headcount_service
    expired = "This prompt has expired."
    if payload == SUBMIT_SELECTION:
        submitted = service.submit_selection(session_id, participant_id)
        return None if submitted else expired
    kind, index = payload[:1], payload[1:]
    if not index.isdigit():
        return None
    if kind == "s":
        selected = service.toggle_selection(session_id, participant_id, int(index))
        if selected is None:
            return expired
        return f"Selected: {', '.join(selected)}" if selected else "Nothing selected."
    if kind == "a":
        chosen = service.choose_action(session_id, participant_id, int(index))
        return None if chosen else expired
    return None


async def _handle_control(
    container: AppContainer, session_id: UUID, operator_id: int, payload: str
) -> str | None:
    """Apply a control panel button and return the callback answer."""
    try:
        action = ControlAction(payload)
    except ValueError:
        return None
    service = container.headcount_service
    try:
        if await service.needs_confirmation(session_id, operator_id, action):
            service.control_in_background(session_id, operator_id, action)
            return "This is not your headcount. Check your private chat with the bot."
        status = await service.dispatch_control_action(session_id, operator_id, action)
    except ControlError as exc:
        return exc.reason
    return status_message(status)


async def _start_headcount(
    container: AppContainer,
    message: TelegramMessage,
    initiator: TelegramUser,
    args: list[str],
    logger: logging.Logger,
) -> None:
    if not args:
        await _reply(container, message, "Usage: /headcount <dungeon> [section]")
        return
    section = _resolve_section(container, message, args[1:])
    if section is None:
        await _reply(container, message, "This chat is not a configured section.")
        return
    try:
        await container.headcount_service.start_headcount(
            initiator_id=initiator.id,
            initiator_name=initiator.display_name,
            section=section,
            dungeon_code=args[0],
        )
    except (UnknownDungeon, EnvironmentUnavailable, ControlError) as exc:
        await _reply(container, message, exc.reason)
    except Exception:
        logger.exception(
            "Failed to start headcount", extra={"section_id": section.id}
        )
        await _reply(
            container,
            message,
            "Sorry, I couldn't start the headcount. Please try again.",
        )


async def _list_dungeons(container: AppContainer, message: TelegramMessage) -> None:
    section = container.settings.section_for_chat(message.chat.id)
    if section is None:
        await _reply(container, message, "This chat is not a configured section.")
        return
    lines = [f"Dungeons in {section.name}:"]
    for code, name in available_dungeons(section):
        lines.append(f"- {name} ({code.lower()})")
    await _reply(container, message, "\n".join(lines))


def _resolve_section(
    container: AppContainer, message: TelegramMessage, args: list[str]
) -> SectionConfig | None:
    if args:
        return container.settings.section(args[0])
    return container.settings.section_for_chat(message.chat.id)


async def _reply(container: AppContainer, message: TelegramMessage, text: str) -> None:
    await container.telegram_client.send_message(
        chat_id=message.chat.id,
        text=text,
        message_thread_id=message.message_thread_id,
    )


def _parse_command(text: str) -> tuple[str, list[str]]:
    """Split '/command@bot arg1 arg2' into the command and its arguments."""
    parts = text.strip().split()
    if not parts or not parts[0].startswith("/"):
        return "", []
    command = parts[0].split("@", maxsplit=1)[0].lower()
    return command, parts[1:]


def _extract_user_id(update: TelegramUpdate) -> int | None:
    """Extract Telegram user id from update, if present."""
    if update.callback_query:
        return update.callback_query.from_user.id
    if update.message and update.message.from_user:
        return update.message.from_user.id
    return None


def _is_user_allowed(user_id: int, allowed: set[int] | None) -> bool:
    """Return true when the user is allowed to interact with the bot."""
    return allowed is None or user_id in allowed
