"""Application configuration."""

import os

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from headcount_bot.domain.dungeons import ReactionType

_ENVIRONMENT = os.getenv("ENVIRONMENT", "local")


class CustomReactionConfig(BaseModel):
    """A reaction offered by a section-defined dungeon."""

    key: str
    name: str
    type: ReactionType
    emoji: str | None = None


class CustomDungeonConfig(BaseModel):
    """A dungeon defined by a section."""

    code_name: str
    name: str
    key_reactions: list[CustomReactionConfig] = Field(default_factory=list)
    other_reactions: list[CustomReactionConfig] = Field(default_factory=list)
    allowed_modifier_ids: list[str] | None = None


class SectionConfig(BaseModel):
    """A forum supergroup that runs headcounts."""

    id: str
    name: str
    chat_id: int
    announcement_thread_id: int | None = None
    control_chat_id: int | None = None
    control_thread_id: int | None = None
    eligibility_chat_id: int
    reaction_window_seconds: float | None = None
    allowed_dungeons: list[str] = Field(default_factory=list)
    custom_dungeons: list[CustomDungeonConfig] = Field(default_factory=list)
    modifier_overrides: dict[str, list[str]] = Field(default_factory=dict)

    @property
    def resolved_control_chat_id(self) -> int:
        return self.control_chat_id if self.control_chat_id is not None else self.chat_id


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    telegram_bot_token: str
    supabase_url: str
    supabase_service_key: str
    admin_token: str
    telegram_allowed_user_ids: str | None = None
    sections: list[SectionConfig] = Field(default_factory=list)
    live_run_webhook_url: str | None = None
    refresh_interval_seconds: float = 5.0
    staff_response_window_seconds: float = 600.0
    default_reaction_window_seconds: float = 3600.0
    host: str = "0.0.0.0"
    port: int = 8000
    environment: str = _ENVIRONMENT

    model_config = SettingsConfigDict(
        env_file=(f".env.{_ENVIRONMENT}", ".env"),
        extra="ignore",
    )

    def section(self, section_id: str) -> SectionConfig | None:
        """Return a configured section by id, if present."""
        for section in self.sections:
            if section.id == section_id:
                return section
        return None

    def section_for_chat(self, chat_id: int) -> SectionConfig | None:
        """Return the section whose announcement or control chat is the given chat."""
        for section in self.sections:
            if chat_id in {section.chat_id, section.resolved_control_chat_id}:
                return section
        return None


def parse_allowed_user_ids(raw: str | None) -> set[int] | None:
    """Parse allowed Telegram user IDs from env."""
    if raw is None:
        return None
    cleaned = raw.strip()
    if cleaned in {"", "*"}:
        return None
    ids: set[int] = set()
    for chunk in cleaned.split(","):
        value = chunk.strip()
        if not value:
            continue
        if value.isdigit():
            ids.add(int(value))
    return ids or None
