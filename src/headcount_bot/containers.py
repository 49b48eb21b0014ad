"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import create_client

from headcount_bot.adapters.live_run_client import (
    HttpxLiveRunClient,
    LoggingLiveRunHandoff,
)
from headcount_bot.adapters.supabase_snapshot_repository import (
    SupabaseSnapshotRepository,
)
from headcount_bot.adapters.telegram_client import (
    HttpxTelegramClient,
    TelegramClient,
)
from headcount_bot.adapters.telegram_environment import (
    TelegramControlAuthorizer,
    TelegramEnvironmentResolver,
    TelegramMembershipChecker,
)
from headcount_bot.adapters.telegram_renderer import (
    TelegramPromptSender,
    TelegramSessionRenderer,
)
from headcount_bot.config import Settings
from headcount_bot.services.headcounts import HeadcountService
from headcount_bot.services.registry import SessionRegistry
from headcount_bot.services.sessions import (
    SessionDependencies,
    SessionTimings,
    SnapshotRepository,
)


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    telegram_client: TelegramClient
    snapshot_repository: SnapshotRepository
    registry: SessionRegistry
    headcount_service: HeadcountService
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    snapshot_repository = SupabaseSnapshotRepository(supabase_client)
    telegram_client = HttpxTelegramClient.create(resolved_settings.telegram_bot_token)
    if resolved_settings.live_run_webhook_url:
        handoff: HttpxLiveRunClient | LoggingLiveRunHandoff = HttpxLiveRunClient.create(
            resolved_settings.live_run_webhook_url
        )
    else:
        handoff = LoggingLiveRunHandoff()
    registry = SessionRegistry()
    dependencies = SessionDependencies(
        resolver=TelegramEnvironmentResolver(telegram_client),
        authorizer=TelegramControlAuthorizer(telegram_client),
        repository=snapshot_repository,
        renderer=TelegramSessionRenderer(telegram_client),
        handoff=handoff,
        registry=registry,
        timings=SessionTimings(
            refresh_interval_seconds=resolved_settings.refresh_interval_seconds,
            staff_response_window_seconds=(
                resolved_settings.staff_response_window_seconds
            ),
        ),
    )
    headcount_service = HeadcountService(
        dependencies=dependencies,
        prompt_sender=TelegramPromptSender(telegram_client),
        eligibility=TelegramMembershipChecker(telegram_client),
        default_reaction_window_seconds=(
            resolved_settings.default_reaction_window_seconds
        ),
    )

    async def close_resources() -> None:
        await headcount_service.close()
        await handoff.close()
        await telegram_client.close()

    return AppContainer(
        settings=resolved_settings,
        telegram_client=telegram_client,
        snapshot_repository=snapshot_repository,
        registry=registry,
        headcount_service=headcount_service,
        close_resources=close_resources,
    )
