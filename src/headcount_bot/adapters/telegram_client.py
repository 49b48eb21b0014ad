"""Telegram API client adapter."""

from dataclasses import dataclass
from typing import Protocol

import httpx

from headcount_bot.domain.errors import ArtifactMissing

_BAD_REQUEST = 400
_NOT_MODIFIED = "message is not modified"


class TelegramClient(Protocol):
    """Interface for Telegram API interactions."""

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: dict | None = None,
        message_thread_id: int | None = None,
    ) -> int:
        """Send a text message to a Telegram chat and return its message id."""

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        """Replace the text and keyboard of a sent message."""

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None, show_alert: bool = False
    ) -> None:
        """Answer a Telegram callback query."""

    async def get_chat(self, chat_id: int) -> dict | None:
        """Return chat details, or None if the bot cannot see the chat."""

    async def get_chat_member(self, chat_id: int, user_id: int) -> dict | None:
        """Return a user's membership in a chat, or None if unknown."""

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""


@dataclass
class HttpxTelegramClient:
    """Telegram client implemented with httpx."""

    bot_token: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, bot_token: str) -> "HttpxTelegramClient":
        """Create a Telegram client with a managed httpx session."""
        return cls(bot_token=bot_token, http_client=httpx.AsyncClient())

    async def send_message(
        self,
        chat_id: int,
        text: str,
        reply_markup: dict | None = None,
        message_thread_id: int | None = None,
    ) -> int:
        """Send a message using Telegram's sendMessage API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload: dict[str, object] = {"chat_id": chat_id, "text": text}
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        if message_thread_id is not None:
            payload["message_thread_id"] = message_thread_id
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()
        return int(response.json()["result"]["message_id"])

    async def edit_message_text(
        self,
        chat_id: int,
        message_id: int,
        text: str,
        reply_markup: dict | None = None,
    ) -> None:
        """Edit a message, raising ArtifactMissing when it no longer exists."""
        url = f"https://api.telegram.org/bot{self.bot_token}/editMessageText"
        payload: dict[str, object] = {
            "chat_id": chat_id,
            "message_id": message_id,
            "text": text,
        }
        if reply_markup is not None:
            payload["reply_markup"] = reply_markup
        response = await self.http_client.post(url, json=payload, timeout=10)
        if response.status_code == _BAD_REQUEST:
            description = _description(response)
            if _NOT_MODIFIED in description:
                return
            if "not found" in description:
                raise ArtifactMissing()
        response.raise_for_status()

    async def answer_callback_query(
        self, callback_query_id: str, text: str | None = None, show_alert: bool = False
    ) -> None:
        """Answer a callback query using Telegram's API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/answerCallbackQuery"
        payload: dict[str, object] = {"callback_query_id": callback_query_id}
        if text is not None:
            payload["text"] = text
        if show_alert:
            payload["show_alert"] = True
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()

    async def get_chat(self, chat_id: int) -> dict | None:
        """Fetch chat details using Telegram's getChat API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/getChat"
        response = await self.http_client.post(
            url, json={"chat_id": chat_id}, timeout=10
        )
        if response.status_code == _BAD_REQUEST:
            return None
        response.raise_for_status()
        return response.json()["result"]

    async def get_chat_member(self, chat_id: int, user_id: int) -> dict | None:
        """Fetch a chat member using Telegram's getChatMember API."""
        url = f"https://api.telegram.org/bot{self.bot_token}/getChatMember"
        response = await self.http_client.post(
            url, json={"chat_id": chat_id, "user_id": user_id}, timeout=10
        )
        if response.status_code == _BAD_REQUEST:
            return None
        response.raise_for_status()
        return response.json()["result"]

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()

    async def set_my_commands(self, commands: list[dict[str, str]]) -> None:
        """Set the bot command list."""
        url = f"https://api.telegram.org/bot{self.bot_token}/setMyCommands"
        payload: dict[str, object] = {"commands": commands}
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()

    async def set_chat_menu_button(
        self, menu_button: dict[str, object] | None = None
    ) -> None:
        """Set the chat menu button."""
        url = f"https://api.telegram.org/bot{self.bot_token}/setChatMenuButton"
        payload: dict[str, object] = {
            "menu_button": menu_button or {"type": "commands"}
        }
        response = await self.http_client.post(url, json=payload, timeout=10)
        response.raise_for_status()


def _description(response: httpx.Response) -> str:
    try:
        return str(response.json().get("description", "")).lower()
    except ValueError:
        return ""
