"""Tests for option set resolution."""

import pytest

from headcount_bot.domain.dungeons import DungeonReaction, ReactionType
from headcount_bot.domain.errors import UnknownDungeon
from headcount_bot.domain.modifiers import DEFAULT_MODIFIERS
from headcount_bot.domain.options import (
    INTERESTED_KEY,
    BuiltInOptionSet,
    CustomOptionSet,
    OptionEntry,
    OptionKind,
    OptionSet,
    resolve_option_set,
)


def test_built_in_dungeon_starts_with_interested() -> None:
    options = resolve_option_set(BuiltInOptionSet("SHATTERS"))

    assert options.dungeon_name == "Shatters"
    assert options.keys()[0] == INTERESTED_KEY
    key = options.get("SHATTERS_KEY")
    assert key is not None
    assert key.kind is OptionKind.RESOURCE_CLAIM
    assert key.qualifier_candidates == DEFAULT_MODIFIERS
    rushing = options.get("RUSHING_CLASS")
    assert rushing is not None
    assert rushing.kind is OptionKind.INFORMATIONAL
    assert not rushing.requires_confirmation


def test_nm_keys_have_no_modifier_candidates() -> None:
    options = resolve_option_set(BuiltInOptionSet("LOST_HALLS"))

    vial = options.get("VIAL_OF_PURE_DARKNESS")
    assert vial is not None
    assert vial.kind is OptionKind.RESOURCE_CLAIM
    assert vial.qualifier_candidates == ()
    assert options.resource_keys() == ("CULT_KEY", "VOID_KEY", "VIAL_OF_PURE_DARKNESS")


def test_modifier_override_restricts_candidates() -> None:
    options = resolve_option_set(
        BuiltInOptionSet("SHATTERS", allowed_modifier_ids=("WEAK_BOSS", "UNKNOWN"))
    )

    key = options.get("SHATTERS_KEY")
    assert key is not None
    assert [x.id for x in key.qualifier_candidates] == ["WEAK_BOSS"]


def test_unknown_built_in_dungeon() -> None:
    with pytest.raises(UnknownDungeon):
        resolve_option_set(BuiltInOptionSet("NOPE"))


def test_custom_dungeon_resolves_once() -> None:
    definition = CustomOptionSet(
        code_name="PUB_HALLS",
        name="Pub Halls",
        key_reactions=(
            DungeonReaction("PUB_KEY", "Pub Key", ReactionType.KEY),
            DungeonReaction("PUB_KEY", "Pub Key Again", ReactionType.KEY),
        ),
        other_reactions=(DungeonReaction("PRIEST", "Priest", ReactionType.CLASS),),
        allowed_modifier_ids=("ELITE_BOSS",),
    )

    options = resolve_option_set(definition)

    assert options.keys() == (INTERESTED_KEY, "PUB_KEY", "PRIEST")
    key = options.get("PUB_KEY")
    assert key is not None
    assert key.name == "Pub Key"
    assert [x.id for x in key.qualifier_candidates] == ["ELITE_BOSS"]


def test_option_set_index_lookup() -> None:
    options = resolve_option_set(BuiltInOptionSet("ORYX_3"))

    index = options.index_of("SWORD_RUNE")
    entry = options.at(index)

    assert entry is not None
    assert entry.key == "SWORD_RUNE"
    assert options.at(len(options)) is None
    assert options.at(-1) is None


def test_option_set_rejects_duplicate_keys() -> None:
    entry = OptionEntry(key="a", kind=OptionKind.PURE_INTEREST, name="A")

    with pytest.raises(ValueError):
        OptionSet("X", "X", [entry, entry])
