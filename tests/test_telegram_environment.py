"""Tests for Telegram environment resolution and permission checks."""

import asyncio
from dataclasses import replace

import httpx
import pytest

from headcount_bot.adapters.telegram_environment import (
    TelegramControlAuthorizer,
    TelegramEnvironmentResolver,
    TelegramMembershipChecker,
)
from headcount_bot.domain.errors import EnvironmentUnavailable
from headcount_bot.domain.sessions import ChannelRef
from tests.conftest import (
    ENVIRONMENT,
    MEMBER_ID,
    SECTION_CHAT_ID,
    STAFF_ID,
    VERIFIED_CHAT_ID,
    FakeTelegramClient,
    make_scope,
)


def _client_with_chats() -> FakeTelegramClient:
    client = FakeTelegramClient()
    client.chats[SECTION_CHAT_ID] = {"id": SECTION_CHAT_ID, "is_forum": True}
    client.chats[VERIFIED_CHAT_ID] = {"id": VERIFIED_CHAT_ID}
    return client


def test_resolver_builds_environment_from_scope() -> None:
    resolver = TelegramEnvironmentResolver(_client_with_chats())

    environment = asyncio.run(resolver.resolve(make_scope()))

    assert environment == ENVIRONMENT


def test_resolver_reports_missing_chats() -> None:
    client = _client_with_chats()
    del client.chats[VERIFIED_CHAT_ID]

    with pytest.raises(EnvironmentUnavailable):
        asyncio.run(TelegramEnvironmentResolver(client).resolve(make_scope()))


def test_resolver_requires_control_topic_in_the_same_group() -> None:
    client = _client_with_chats()
    client.chats[-3003] = {"id": -3003}
    scope = make_scope()
    split = replace(scope, control_channel=ChannelRef(chat_id=-3003))

    with pytest.raises(EnvironmentUnavailable) as excinfo:
        asyncio.run(TelegramEnvironmentResolver(client).resolve(split))

    assert "same group" in str(excinfo.value.reason)


def test_resolver_wraps_transport_errors() -> None:
    class BrokenClient(FakeTelegramClient):
        async def get_chat(self, chat_id: int) -> dict | None:
            raise httpx.ConnectError("offline")

    with pytest.raises(EnvironmentUnavailable):
        asyncio.run(TelegramEnvironmentResolver(BrokenClient()).resolve(make_scope()))


def test_control_authorizer_accepts_group_admins_only() -> None:
    client = FakeTelegramClient()
    client.members[(SECTION_CHAT_ID, STAFF_ID)] = {"status": "administrator"}
    client.members[(SECTION_CHAT_ID, MEMBER_ID)] = {"status": "member"}
    authorizer = TelegramControlAuthorizer(client)

    async def scenario() -> list[bool]:
        return [
            await authorizer.is_authorized(STAFF_ID, ENVIRONMENT),
            await authorizer.is_authorized(MEMBER_ID, ENVIRONMENT),
            await authorizer.is_authorized(1, ENVIRONMENT),
        ]

    assert asyncio.run(scenario()) == [True, False, False]


def test_membership_checker_uses_verified_chat() -> None:
    client = FakeTelegramClient()
    client.members[(VERIFIED_CHAT_ID, MEMBER_ID)] = {"status": "member"}
    client.members[(VERIFIED_CHAT_ID, 13)] = {"status": "left"}
    client.members[(SECTION_CHAT_ID, 14)] = {"status": "member"}
    checker = TelegramMembershipChecker(client)

    async def scenario() -> list[bool]:
        return [
            await checker.is_eligible(MEMBER_ID, ENVIRONMENT),
            await checker.is_eligible(13, ENVIRONMENT),
            await checker.is_eligible(14, ENVIRONMENT),
        ]

    assert asyncio.run(scenario()) == [True, False, False]
