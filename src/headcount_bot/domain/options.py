"""Claimable options offered by a headcount."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import StrEnum

from headcount_bot.domain.dungeons import (
    BUILT_IN_DUNGEONS,
    DungeonInfo,
    DungeonReaction,
    ReactionType,
)
from headcount_bot.domain.errors import UnknownDungeon
from headcount_bot.domain.modifiers import (
    MODIFIER_CATALOG,
    DungeonModifier,
    ModifierCatalog,
)

INTERESTED_KEY = "interested"


class OptionKind(StrEnum):
    """How a claim on an option is recorded."""

    RESOURCE_CLAIM = "RESOURCE_CLAIM"
    PURE_INTEREST = "PURE_INTEREST"
    INFORMATIONAL = "INFORMATIONAL"


@dataclass(frozen=True)
class OptionEntry:
    """One claimable option within a headcount."""

    key: str
    kind: OptionKind
    name: str
    emoji: str | None = None
    qualifier_candidates: tuple[DungeonModifier, ...] = ()

    @property
    def requires_confirmation(self) -> bool:
        return self.kind is OptionKind.RESOURCE_CLAIM


INTERESTED_OPTION = OptionEntry(
    key=INTERESTED_KEY,
    kind=OptionKind.PURE_INTEREST,
    name="Interested",
    emoji="✅",
)


class OptionSet:
    """Ordered, immutable mapping of option keys to entries."""

    def __init__(self, code_name: str, dungeon_name: str, entries: Iterable[OptionEntry]):
        self.code_name = code_name
        self.dungeon_name = dungeon_name
        self._entries: dict[str, OptionEntry] = {}
        for entry in entries:
            if entry.key in self._entries:
                raise ValueError(f"Duplicate option key {entry.key}")
            self._entries[entry.key] = entry

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[OptionEntry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> OptionEntry | None:
        return self._entries.get(key)

    def keys(self) -> tuple[str, ...]:
        return tuple(self._entries)

    def index_of(self, key: str) -> int:
        """Return the position of an option, used for compact callback data."""
        return self.keys().index(key)

    def at(self, index: int) -> OptionEntry | None:
        entries = tuple(self._entries.values())
        if 0 <= index < len(entries):
            return entries[index]
        return None

    def resource_keys(self) -> tuple[str, ...]:
        return tuple(
            key
            for key, entry in self._entries.items()
            if entry.kind is OptionKind.RESOURCE_CLAIM
        )


@dataclass(frozen=True)
class BuiltInOptionSet:
    """Reference to a built-in dungeon, optionally with a section modifier override."""

    code_name: str
    allowed_modifier_ids: tuple[str, ...] | None = None


@dataclass(frozen=True)
class CustomOptionSet:
    """A dungeon defined by a section rather than built in."""

    code_name: str
    name: str
    key_reactions: tuple[DungeonReaction, ...]
    other_reactions: tuple[DungeonReaction, ...] = ()
    allowed_modifier_ids: tuple[str, ...] | None = None


OptionSetDefinition = BuiltInOptionSet | CustomOptionSet


def resolve_option_set(
    definition: OptionSetDefinition,
    catalog: ModifierCatalog = MODIFIER_CATALOG,
    dungeons: dict[str, DungeonInfo] | None = None,
) -> OptionSet:
    """Resolve a dungeon definition into the option set a headcount offers."""
    if isinstance(definition, BuiltInOptionSet):
        dungeon = (dungeons or BUILT_IN_DUNGEONS).get(definition.code_name)
        if dungeon is None:
            raise UnknownDungeon()
    else:
        dungeon = DungeonInfo(
            code_name=definition.code_name,
            name=definition.name,
            key_reactions=definition.key_reactions,
            other_reactions=definition.other_reactions,
        )

    if definition.allowed_modifier_ids is not None:
        modifiers = catalog.subset(definition.allowed_modifier_ids)
    else:
        modifiers = catalog.defaults()

    entries = [INTERESTED_OPTION]
    for reaction in dungeon.key_reactions + dungeon.other_reactions:
        if reaction.key == INTERESTED_KEY or any(x.key == reaction.key for x in entries):
            continue
        entries.append(_option_from_reaction(reaction, modifiers))
    return OptionSet(dungeon.code_name, dungeon.name, entries)


def _option_from_reaction(
    reaction: DungeonReaction, modifiers: tuple[DungeonModifier, ...]
) -> OptionEntry:
    if not reaction.type.is_key:
        kind = OptionKind.INFORMATIONAL
        candidates: tuple[DungeonModifier, ...] = ()
    else:
        kind = OptionKind.RESOURCE_CLAIM
        # Only regular keys carry modifiers.
        candidates = modifiers if reaction.type is ReactionType.KEY else ()
    return OptionEntry(
        key=reaction.key,
        kind=kind,
        name=reaction.name,
        emoji=reaction.emoji,
        qualifier_candidates=candidates,
    )
