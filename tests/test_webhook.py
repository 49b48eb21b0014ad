"""Tests for Telegram webhook handling."""

from fastapi.testclient import TestClient

from headcount_bot.api.app import create_app
from headcount_bot.domain.sessions import SessionStatus
from tests.conftest import (
    CO_LEADER_ID,
    MEMBER_ID,
    SECTION_CHAT_ID,
    STAFF_ID,
    FakePromptSender,
    FakeTelegramClient,
    wait_until,
)


def _message(update_id: int, user_id: int, text: str, chat_id: int = SECTION_CHAT_ID):  # type: ignore[no-untyped-def]
    return {
        "update_id": update_id,
        "message": {
            "message_id": update_id * 10,
            "date": 1700000000,
            "chat": {"id": chat_id, "type": "supergroup", "is_forum": True},
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "message_thread_id": 12,
            "text": text,
        },
    }


def _callback(update_id: int, user_id: int, data: str):  # type: ignore[no-untyped-def]
    return {
        "update_id": update_id,
        "callback_query": {
            "id": f"cbq-{update_id}",
            "from": {"id": user_id, "is_bot": False, "first_name": "Test"},
            "data": data,
        },
    }


def test_lifespan_syncs_commands(container, telegram_client: FakeTelegramClient) -> None:
    with TestClient(create_app(container)) as client:
        response = client.get("/health")

    assert response.json() == {"status": "ok"}
    assert telegram_client.commands is not None
    assert telegram_client.commands[0]["command"] == "headcount"
    assert telegram_client.menu_button == {"type": "commands"}


def test_headcount_claim_and_end_flow(
    container, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)) as client:
        response = client.post(
            "/telegram/webhook", json=_message(1, STAFF_ID, "/headcount@bot shatters")
        )
        assert response.status_code == 200
        assert len(container.registry) == 1
        session = next(iter(container.registry))

        client.post(
            "/telegram/webhook", json=_callback(2, MEMBER_ID, f"hc:{session.id}:0")
        )
        client.post(
            "/telegram/webhook", json=_callback(3, MEMBER_ID, f"hc:{session.id}:0")
        )
        client.post(
            "/telegram/webhook", json=_callback(4, MEMBER_ID, f"hx:{session.id}:END")
        )
        client.post(
            "/telegram/webhook", json=_callback(5, STAFF_ID, f"hx:{session.id}:END")
        )

        assert session.status is SessionStatus.FINISHED
        assert session.ledger.has_claim("interested", MEMBER_ID)

    answers = dict(telegram_client.callbacks)
    assert answers["cbq-2"] == "Interested recorded."
    assert answers["cbq-3"] == "You have already selected this!"
    assert answers["cbq-4"] is not None
    assert answers["cbq-5"] == "Headcount is now finished."
    assert telegram_client.messages == []


def test_key_claim_points_to_private_chat(
    container,
    telegram_client: FakeTelegramClient,
    prompt_sender: FakePromptSender,
) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/telegram/webhook", json=_message(1, STAFF_ID, "/headcount shatters"))
        session = next(iter(container.registry))
        key_index = session.options.index_of("SHATTERS_KEY")

        client.post(
            "/telegram/webhook",
            json=_callback(2, MEMBER_ID, f"hc:{session.id}:{key_index}"),
        )
        client.portal.call(wait_until, lambda: bool(prompt_sender.prompts))
        client.post(
            "/telegram/webhook",
            json=_callback(3, MEMBER_ID, f"hq:{session.id}:a0"),
        )
        client.portal.call(wait_until, lambda: bool(prompt_sender.notifications))

        assert session.ledger.count_for("SHATTERS_KEY") == 1

    answers = dict(telegram_client.callbacks)
    assert answers["cbq-2"] == "Check your private chat with the bot to confirm."
    assert prompt_sender.notifications == [
        (MEMBER_ID, "Your Shatters Key has been recorded.")
    ]


def test_other_staff_end_is_confirmed_in_private_chat(
    container,
    telegram_client: FakeTelegramClient,
    prompt_sender: FakePromptSender,
) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/telegram/webhook", json=_message(1, STAFF_ID, "/headcount shatters"))
        session = next(iter(container.registry))

        client.post(
            "/telegram/webhook", json=_callback(2, CO_LEADER_ID, f"hx:{session.id}:END")
        )
        client.portal.call(wait_until, lambda: bool(prompt_sender.prompts))
        assert session.status is SessionStatus.IN_PROGRESS
        client.post(
            "/telegram/webhook", json=_callback(3, CO_LEADER_ID, f"hq:{session.id}:a0")
        )
        client.portal.call(wait_until, lambda: bool(prompt_sender.notifications))

        assert session.status is SessionStatus.FINISHED

    answers = dict(telegram_client.callbacks)
    assert answers["cbq-2"] == (
        "This is not your headcount. Check your private chat with the bot."
    )
    assert answers["cbq-3"] is None
    assert prompt_sender.notifications == [
        (CO_LEADER_ID, "Headcount is now finished.")
    ]


def test_expired_prompt_and_unknown_session(
    container, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)) as client:
        client.post(
            "/telegram/webhook",
            json=_callback(
                1, MEMBER_ID, "hq:00000000-0000-0000-0000-000000000000:a0"
            ),
        )
        client.post(
            "/telegram/webhook",
            json=_callback(
                2, MEMBER_ID, "hc:00000000-0000-0000-0000-000000000000:0"
            ),
        )
        client.post("/telegram/webhook", json=_callback(3, MEMBER_ID, "garbage"))

    assert telegram_client.callbacks == [
        ("cbq-1", "This prompt has expired."),
        ("cbq-2", "This headcount is no longer accepting reactions."),
        ("cbq-3", None),
    ]


def test_non_staff_cannot_start_headcount(
    container, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)) as client:
        client.post(
            "/telegram/webhook", json=_message(1, MEMBER_ID, "/headcount shatters")
        )

    assert len(container.registry) == 0
    assert telegram_client.messages == [
        (SECTION_CHAT_ID, "Only section staff can start a headcount.")
    ]
    assert telegram_client.threads == [12]


def test_headcount_replies_for_bad_input(
    container, telegram_client: FakeTelegramClient
) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/telegram/webhook", json=_message(1, STAFF_ID, "/headcount"))
        client.post(
            "/telegram/webhook",
            json=_message(2, STAFF_ID, "/headcount shatters", chat_id=-9999),
        )
        client.post(
            "/telegram/webhook", json=_message(3, STAFF_ID, "/headcount atlantis")
        )

    texts = [text for _, text in telegram_client.messages]
    assert texts == [
        "Usage: /headcount <dungeon> [section]",
        "This chat is not a configured section.",
        "That dungeon does not exist in this section.",
    ]


def test_dungeons_and_help(container, telegram_client: FakeTelegramClient) -> None:
    with TestClient(create_app(container)) as client:
        client.post("/telegram/webhook", json=_message(1, MEMBER_ID, "/dungeons"))
        client.post("/telegram/webhook", json=_message(2, MEMBER_ID, "/help"))
        client.post("/telegram/webhook", json=_message(3, MEMBER_ID, "hello"))

    dungeons, help_text = [text for _, text in telegram_client.messages]
    assert dungeons.splitlines()[0] == "Dungeons in Main Section:"
    assert "- Shatters (shatters)" in dungeons
    assert "/headcount <dungeon>" in help_text


def test_allow_list_blocks_unknown_users(
    container, telegram_client: FakeTelegramClient
) -> None:
    container.settings = container.settings.model_copy(
        update={"telegram_allowed_user_ids": str(STAFF_ID)}
    )

    with TestClient(create_app(container)) as client:
        client.post("/telegram/webhook", json=_message(1, MEMBER_ID, "/help"))
        client.post("/telegram/webhook", json=_callback(2, MEMBER_ID, "garbage"))

    assert telegram_client.messages == [(SECTION_CHAT_ID, "This bot is private.")]
    assert telegram_client.callbacks == [("cbq-2", "Not authorized.")]
