"""Supabase-backed headcount snapshot repository."""

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import httpx
from postgrest.exceptions import APIError
from supabase import Client

from headcount_bot.domain.errors import PersistenceFailure
from headcount_bot.domain.options import OptionKind
from headcount_bot.domain.sessions import (
    ArtifactHandle,
    ChannelRef,
    ClaimAppended,
    ClaimRecord,
    OptionSnapshot,
    SessionScope,
    SessionSnapshot,
    SessionStatus,
    SnapshotDelta,
    StatusChanged,
)
from headcount_bot.services.sessions import SnapshotRepository

_SESSIONS = "headcount_sessions"
_CLAIMS = "headcount_claims"
_CLAIM_CONFLICT = "session_id,option_key,participant_id"
_SESSION_COLUMNS = (
    "id, section_id, section_name, dungeon_code, dungeon_name, chat_id, "
    "announcement_thread_id, control_chat_id, control_thread_id, "
    "eligibility_chat_id, reaction_window_seconds, initiator_id, initiator_name, "
    "status, created_at, last_transition_at, expires_at, announcement_chat_id, "
    "announcement_message_id, control_panel_chat_id, control_panel_message_id, "
    "options_json"
)


@dataclass
class SupabaseSnapshotRepository(SnapshotRepository):
    """Supabase implementation for headcount snapshots.

    Sessions live in one row each; claims are rows keyed by session, option and
    participant so a retried write never duplicates a claim. Claim order is the
    insertion order of the ``id`` identity column.
    """

    client: Client

    def append(self, snapshot: SessionSnapshot) -> None:
        """Upsert the session row and all of its claims."""
        try:
            self.client.table(_SESSIONS).upsert(_session_row(snapshot)).execute()
            if snapshot.claims:
                self.client.table(_CLAIMS).upsert(
                    [_claim_row(snapshot.id, claim) for claim in snapshot.claims],
                    on_conflict=_CLAIM_CONFLICT,
                ).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise PersistenceFailure() from exc

    def update(self, session_id: UUID, delta: SnapshotDelta) -> None:
        """Apply a claim append or a status change."""
        try:
            if isinstance(delta, ClaimAppended):
                self.client.table(_CLAIMS).upsert(
                    _claim_row(session_id, delta.claim),
                    on_conflict=_CLAIM_CONFLICT,
                ).execute()
            elif isinstance(delta, StatusChanged):
                self.client.table(_SESSIONS).update(
                    {
                        "status": delta.status.value,
                        "last_transition_at": delta.at.isoformat(),
                    }
                ).eq("id", str(session_id)).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise PersistenceFailure() from exc

    def remove(self, session_id: UUID) -> None:
        """Delete the session row and its claims."""
        try:
            self.client.table(_CLAIMS).delete().eq(
                "session_id", str(session_id)
            ).execute()
            self.client.table(_SESSIONS).delete().eq("id", str(session_id)).execute()
        except (APIError, httpx.HTTPError) as exc:
            raise PersistenceFailure() from exc

    def list_by_status(
        self, statuses: Sequence[SessionStatus]
    ) -> list[SessionSnapshot]:
        """Return stored snapshots with their claims in stored order."""
        try:
            response = (
                self.client.table(_SESSIONS)
                .select(_SESSION_COLUMNS)
                .in_("status", [status.value for status in statuses])
                .order("created_at")
                .execute()
            )
            rows = response.data or []
            if not rows:
                return []
            claims_response = (
                self.client.table(_CLAIMS)
                .select(
                    "session_id, option_key, participant_id, qualifiers, "
                    "correction_count"
                )
                .in_("session_id", [row["id"] for row in rows])
                .order("id")
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise PersistenceFailure() from exc
        claims: dict[str, list[ClaimRecord]] = {}
        for row in claims_response.data or []:
            claims.setdefault(str(row["session_id"]), []).append(
                ClaimRecord(
                    option_key=row["option_key"],
                    participant_id=int(row["participant_id"]),
                    qualifiers=tuple(row.get("qualifiers") or ()),
                    correction_count=int(row.get("correction_count") or 0),
                )
            )
        return [_snapshot_from_row(row, claims.get(str(row["id"]), [])) for row in rows]

    def get(self, session_id: UUID) -> SessionSnapshot | None:
        """Return a stored snapshot by id, if present."""
        try:
            response = (
                self.client.table(_SESSIONS)
                .select(_SESSION_COLUMNS)
                .eq("id", str(session_id))
                .limit(1)
                .execute()
            )
            if not response.data:
                return None
            claims_response = (
                self.client.table(_CLAIMS)
                .select(
                    "session_id, option_key, participant_id, qualifiers, "
                    "correction_count"
                )
                .eq("session_id", str(session_id))
                .order("id")
                .execute()
            )
        except (APIError, httpx.HTTPError) as exc:
            raise PersistenceFailure() from exc
        claims = [
            ClaimRecord(
                option_key=row["option_key"],
                participant_id=int(row["participant_id"]),
                qualifiers=tuple(row.get("qualifiers") or ()),
                correction_count=int(row.get("correction_count") or 0),
            )
            for row in claims_response.data or []
        ]
        return _snapshot_from_row(response.data[0], claims)


def _session_row(snapshot: SessionSnapshot) -> dict[str, object]:
    scope = snapshot.scope
    return {
        "id": str(snapshot.id),
        "section_id": scope.section_id,
        "section_name": scope.section_name,
        "dungeon_code": scope.dungeon_code,
        "dungeon_name": scope.dungeon_name,
        "chat_id": scope.announcement_channel.chat_id,
        "announcement_thread_id": scope.announcement_channel.thread_id,
        "control_chat_id": scope.control_channel.chat_id,
        "control_thread_id": scope.control_channel.thread_id,
        "eligibility_chat_id": scope.eligibility_chat_id,
        "reaction_window_seconds": scope.reaction_window_seconds,
        "initiator_id": snapshot.initiator_id,
        "initiator_name": snapshot.initiator_name,
        "status": snapshot.status.value,
        "created_at": snapshot.created_at.isoformat(),
        "last_transition_at": snapshot.last_transition_at.isoformat(),
        "expires_at": snapshot.expires_at.isoformat(),
        "announcement_chat_id": (
            snapshot.announcement.chat_id if snapshot.announcement else None
        ),
        "announcement_message_id": (
            snapshot.announcement.message_id if snapshot.announcement else None
        ),
        "control_panel_chat_id": (
            snapshot.control_panel.chat_id if snapshot.control_panel else None
        ),
        "control_panel_message_id": (
            snapshot.control_panel.message_id if snapshot.control_panel else None
        ),
        "options_json": [
            {
                "key": option.key,
                "kind": option.kind.value,
                "name": option.name,
                "emoji": option.emoji,
                "qualifier_ids": list(option.qualifier_ids),
            }
            for option in snapshot.options
        ],
    }


def _claim_row(session_id: UUID, claim: ClaimRecord) -> dict[str, object]:
    return {
        "session_id": str(session_id),
        "option_key": claim.option_key,
        "participant_id": claim.participant_id,
        "qualifiers": list(claim.qualifiers),
        "correction_count": claim.correction_count,
    }


def _snapshot_from_row(
    row: dict[str, object], claims: list[ClaimRecord]
) -> SessionSnapshot:
    return SessionSnapshot(
        id=UUID(str(row["id"])),
        scope=SessionScope(
            section_id=str(row["section_id"]),
            section_name=str(row["section_name"]),
            dungeon_code=str(row["dungeon_code"]),
            dungeon_name=str(row["dungeon_name"]),
            announcement_channel=ChannelRef(
                chat_id=int(row["chat_id"]),
                thread_id=_optional_int(row.get("announcement_thread_id")),
            ),
            control_channel=ChannelRef(
                chat_id=int(row["control_chat_id"]),
                thread_id=_optional_int(row.get("control_thread_id")),
            ),
            eligibility_chat_id=int(row["eligibility_chat_id"]),
            reaction_window_seconds=float(row["reaction_window_seconds"]),
        ),
        initiator_id=int(row["initiator_id"]),
        initiator_name=str(row["initiator_name"]),
        status=SessionStatus(row["status"]),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        last_transition_at=datetime.fromisoformat(str(row["last_transition_at"])),
        expires_at=datetime.fromisoformat(str(row["expires_at"])),
        announcement=_handle(
            row.get("announcement_chat_id"), row.get("announcement_message_id")
        ),
        control_panel=_handle(
            row.get("control_panel_chat_id"), row.get("control_panel_message_id")
        ),
        options=tuple(
            OptionSnapshot(
                key=option["key"],
                kind=OptionKind(option["kind"]),
                name=option["name"],
                emoji=option.get("emoji"),
                qualifier_ids=tuple(option.get("qualifier_ids") or ()),
            )
            for option in row.get("options_json") or []
        ),
        claims=tuple(claims),
    )


def _handle(chat_id: object, message_id: object) -> ArtifactHandle | None:
    if chat_id is None or message_id is None:
        return None
    return ArtifactHandle(chat_id=int(chat_id), message_id=int(message_id))


def _optional_int(value: object) -> int | None:
    return int(value) if value is not None else None
