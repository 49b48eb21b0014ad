"""Tests for container wiring."""

import asyncio

from headcount_bot import containers
from headcount_bot.adapters.live_run_client import (
    HttpxLiveRunClient,
    LoggingLiveRunHandoff,
)
from headcount_bot.adapters.supabase_snapshot_repository import (
    SupabaseSnapshotRepository,
)
from headcount_bot.containers import build_container


def test_build_container_creates_services(settings, monkeypatch) -> None:
    created: list[tuple[str, str]] = []

    def fake_create_client(url: str, key: str) -> object:
        created.append((url, key))
        return object()

    monkeypatch.setattr(containers, "create_client", fake_create_client)

    container = build_container(settings)

    assert created == [("https://example.supabase.co", "service-key")]
    assert isinstance(container.snapshot_repository, SupabaseSnapshotRepository)
    assert container.headcount_service.registry is container.registry
    dependencies = container.headcount_service.dependencies
    assert isinstance(dependencies.handoff, LoggingLiveRunHandoff)
    assert dependencies.timings.refresh_interval_seconds == 5.0
    asyncio.run(container.close_resources())


def test_build_container_uses_live_run_webhook(settings, monkeypatch) -> None:
    monkeypatch.setattr(containers, "create_client", lambda url, key: object())
    configured = settings.model_copy(
        update={"live_run_webhook_url": "https://runs.example.test/hook"}
    )

    container = build_container(configured)

    handoff = container.headcount_service.dependencies.handoff
    assert isinstance(handoff, HttpxLiveRunClient)
    assert handoff.webhook_url == "https://runs.example.test/hook"
    asyncio.run(container.close_resources())
