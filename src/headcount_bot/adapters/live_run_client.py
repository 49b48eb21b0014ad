"""Handoff of converted headcounts to the live run service."""

import logging
from dataclasses import dataclass

import httpx

from headcount_bot.domain.sessions import ClaimRecord, SessionScope
from headcount_bot.services.sessions import LiveRunHandoff

logger = logging.getLogger(__name__)


def handoff_payload(scope: SessionScope, claims: list[ClaimRecord]) -> dict[str, object]:
    """Serialize a converted headcount for the live run service."""
    return {
        "scope": {
            "section_id": scope.section_id,
            "section_name": scope.section_name,
            "dungeon_code": scope.dungeon_code,
            "dungeon_name": scope.dungeon_name,
            "chat_id": scope.announcement_channel.chat_id,
            "thread_id": scope.announcement_channel.thread_id,
        },
        "claims": [
            {
                "option_key": claim.option_key,
                "participant_id": claim.participant_id,
                "qualifiers": list(claim.qualifiers),
                "correction_count": claim.correction_count,
            }
            for claim in claims
        ],
    }


@dataclass
class HttpxLiveRunClient(LiveRunHandoff):
    """HTTPX-backed live run webhook client."""

    webhook_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, webhook_url: str) -> "HttpxLiveRunClient":
        """Create a live run client with a managed httpx session."""
        return cls(webhook_url=webhook_url, http_client=httpx.AsyncClient())

    async def hand_off(self, scope: SessionScope, claims: list[ClaimRecord]) -> None:
        """Post the converted headcount to the live run webhook."""
        response = await self.http_client.post(
            self.webhook_url,
            json=handoff_payload(scope, claims),
            timeout=15,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()


class LoggingLiveRunHandoff(LiveRunHandoff):
    """Handoff used when no live run service is configured."""

    async def hand_off(self, scope: SessionScope, claims: list[ClaimRecord]) -> None:
        logger.info(
            "Headcount for %s in %s converted with %d claims",
            scope.dungeon_name,
            scope.section_name,
            len(claims),
        )

    async def close(self) -> None:
        return None
