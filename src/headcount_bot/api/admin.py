"""Admin API endpoints with simple token auth."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING
from uuid import UUID  # noqa: TC003

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from headcount_bot.domain.errors import PersistenceFailure

if TYPE_CHECKING:
    from headcount_bot.containers import AppContainer
    from headcount_bot.domain.sessions import SessionSnapshot, SessionView

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


@router.get("/health", dependencies=[Depends(require_admin)])
async def admin_health(request: Request) -> dict[str, object]:
    """Admin health check endpoint."""
    container: AppContainer = request.app.state.container
    return {"status": "ok", "live_sessions": len(container.registry)}


@router.get("/sessions", dependencies=[Depends(require_admin)])
async def list_sessions(request: Request) -> dict[str, object]:
    """Return the live headcounts."""
    container: AppContainer = request.app.state.container
    return {
        "sessions": [
            _view_summary(session.render_snapshot()) for session in container.registry
        ]
    }


@router.get("/sessions/{session_id}", dependencies=[Depends(require_admin)])
async def session_detail(session_id: UUID, request: Request) -> dict[str, object]:
    """Return a live headcount, or its stored snapshot if it is not running here."""
    container: AppContainer = request.app.state.container
    session = container.registry.get(session_id)
    if session is not None:
        return {"live": True, **_view_detail(session.render_snapshot())}
    try:
        snapshot = await asyncio.to_thread(
            container.snapshot_repository.get, session_id
        )
    except PersistenceFailure as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY) from exc
    if snapshot is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND)
    return {"live": False, **_snapshot_detail(snapshot)}


def _view_summary(view: SessionView) -> dict[str, object]:
    return {
        "id": str(view.session_id),
        "status": view.status.value,
        "section_id": view.scope.section_id,
        "dungeon": view.scope.dungeon_name,
        "initiator": view.initiator_name,
        "created_at": view.created_at.isoformat(),
        "expires_at": view.expires_at.isoformat(),
        "interested": view.interested_count,
    }


def _view_detail(view: SessionView) -> dict[str, object]:
    return {
        **_view_summary(view),
        "options": [
            {
                "key": option.key,
                "kind": option.kind.value,
                "name": option.name,
                "count": option.count,
                "claims": [
                    {
                        "participant_id": claim.participant_id,
                        "qualifiers": list(claim.qualifiers),
                        "correction_count": claim.correction_count,
                    }
                    for claim in option.claims
                ],
                "qualifiers": dict(option.qualifier_breakdown),
            }
            for option in view.options
        ],
    }


def _snapshot_detail(snapshot: SessionSnapshot) -> dict[str, object]:
    return {
        "id": str(snapshot.id),
        "status": snapshot.status.value,
        "section_id": snapshot.scope.section_id,
        "dungeon": snapshot.scope.dungeon_name,
        "initiator": snapshot.initiator_name,
        "created_at": snapshot.created_at.isoformat(),
        "expires_at": snapshot.expires_at.isoformat(),
        "options": [option.key for option in snapshot.options],
        "claims": [
            {
                "option_key": claim.option_key,
                "participant_id": claim.participant_id,
                "qualifiers": list(claim.qualifiers),
                "correction_count": claim.correction_count,
            }
            for claim in snapshot.claims
        ],
    }


@router.get("/ui", response_class=HTMLResponse)
async def admin_ui() -> HTMLResponse:
    """Minimal admin UI that consumes the admin API."""
    return HTMLResponse(_ADMIN_UI_HTML)


_ADMIN_UI_HTML = """<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>Headcount Admin</title>
    <style>
      body { font-family: ui-sans-serif, system-ui, sans-serif; margin: 2rem; }
      h1 { margin-bottom: 0.5rem; }
      .row { margin-bottom: 1rem; }
      input { padding: 0.4rem 0.6rem; width: 320px; }
      button { padding: 0.4rem 0.8rem; margin-right: 0.5rem; }
      pre { background: #f6f6f6; padding: 1rem; overflow: auto; }
    </style>
  </head>
  <body>
    <h1>Headcount Admin</h1>
    <div class="row">
      <label>Admin token</label><br />
      <input id="token" type="password" placeholder="X-Admin-Token" />
    </div>
    <div class="row">
      <input id="session" placeholder="Session id" />
    </div>
    <div class="row">
      <button onclick="loadEndpoint('/admin/sessions')">Live sessions</button>
      <button onclick="loadSession()">Session detail</button>
    </div>
    <pre id="output">Ready.</pre>
    <script>
      function loadSession() {
        const id = document.getElementById('session').value.trim();
        loadEndpoint('/admin/sessions/' + encodeURIComponent(id));
      }
      async function loadEndpoint(path) {
        const token = document.getElementById('token').value;
        const output = document.getElementById('output');
        output.textContent = 'Loading...';
        const res = await fetch(path, {
          headers: { 'X-Admin-Token': token }
        });
        if (!res.ok) {
          output.textContent = 'Error: ' + res.status;
          return;
        }
        const data = await res.json();
        output.textContent = JSON.stringify(data, null, 2);
      }
    </script>
  </body>
</html>
"""
