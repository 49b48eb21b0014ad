"""Telegram-backed environment resolution and permission checks."""

import logging
from dataclasses import dataclass

import httpx

from headcount_bot.adapters.telegram_client import TelegramClient
from headcount_bot.domain.errors import EnvironmentUnavailable
from headcount_bot.domain.sessions import ResolvedEnvironment, SessionScope

logger = logging.getLogger(__name__)

_STAFF_STATUSES = {"creator", "administrator"}
_MEMBER_STATUSES = {"creator", "administrator", "member", "restricted"}


@dataclass
class TelegramEnvironmentResolver:
    """Resolves a section's forum topics and verified-members chat."""

    telegram_client: TelegramClient

    async def resolve(self, scope: SessionScope) -> ResolvedEnvironment:
        """Look up the chats a headcount needs, raising EnvironmentUnavailable."""
        try:
            target = await self.telegram_client.get_chat(
                scope.announcement_channel.chat_id
            )
            control = await self.telegram_client.get_chat(scope.control_channel.chat_id)
            eligibility = await self.telegram_client.get_chat(scope.eligibility_chat_id)
        except httpx.HTTPError as exc:
            logger.warning("Failed to resolve chats for section %s", scope.section_id)
            raise EnvironmentUnavailable() from exc
        if target is None or control is None or eligibility is None:
            raise EnvironmentUnavailable()
        if target["id"] != control["id"]:
            raise EnvironmentUnavailable(
                "The announcement and control topics must be in the same group."
            )
        return ResolvedEnvironment(
            target_channel=scope.announcement_channel,
            control_channel=scope.control_channel,
            eligibility_role=int(eligibility["id"]),
            parent_id=int(target["id"]),
        )


@dataclass
class TelegramControlAuthorizer:
    """Allows group administrators of the control chat to drive headcounts."""

    telegram_client: TelegramClient

    async def is_authorized(
        self, operator_id: int, environment: ResolvedEnvironment
    ) -> bool:
        member = await self.telegram_client.get_chat_member(
            environment.control_channel.chat_id, operator_id
        )
        return member is not None and member.get("status") in _STAFF_STATUSES


@dataclass
class TelegramMembershipChecker:
    """Checks that a participant belongs to the verified-members chat."""

    telegram_client: TelegramClient

    async def is_eligible(
        self, participant_id: int, environment: ResolvedEnvironment
    ) -> bool:
        member = await self.telegram_client.get_chat_member(
            environment.eligibility_role, participant_id
        )
        return member is not None and member.get("status") in _MEMBER_STATUSES
