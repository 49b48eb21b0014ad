"""Tests for the live session registry."""

import pytest

from headcount_bot.domain.errors import DuplicateSession
from headcount_bot.services.registry import SessionRegistry


def test_register_get_unregister(make_session) -> None:
    registry = SessionRegistry()
    session = make_session()

    registry.register(session)

    assert registry.get(session.id) is session
    assert session.id in registry
    assert list(registry) == [session]
    assert len(registry) == 1

    registry.unregister(session.id)
    registry.unregister(session.id)

    assert registry.get(session.id) is None
    assert len(registry) == 0


def test_rejects_duplicate_live_ids(make_session) -> None:
    registry = SessionRegistry()
    session = make_session()
    registry.register(session)

    with pytest.raises(DuplicateSession):
        registry.register(session)
