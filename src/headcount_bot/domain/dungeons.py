"""Built-in dungeon definitions."""

from dataclasses import dataclass
from enum import StrEnum


class ReactionType(StrEnum):
    """Kind of reaction a dungeon offers."""

    KEY = "KEY"
    NM_KEY = "NM_KEY"
    CLASS = "CLASS"
    ITEM = "ITEM"
    STATUS_EFFECT = "STATUS_EFFECT"

    @property
    def is_key(self) -> bool:
        return self in {ReactionType.KEY, ReactionType.NM_KEY}


@dataclass(frozen=True)
class DungeonReaction:
    """A reaction offered on a headcount."""

    key: str
    name: str
    type: ReactionType
    emoji: str | None = None


@dataclass(frozen=True)
class DungeonInfo:
    """A dungeon that headcounts can be started for."""

    code_name: str
    name: str
    key_reactions: tuple[DungeonReaction, ...]
    other_reactions: tuple[DungeonReaction, ...] = ()


_RUSHING_CLASS = DungeonReaction("RUSHING_CLASS", "Rushing Class", ReactionType.CLASS, "🏃")
_MSEAL = DungeonReaction("MSEAL", "Marble Seal", ReactionType.ITEM, "🪨")
_ARMOR_BREAK = DungeonReaction("ARMOR_BREAK", "Armor Break", ReactionType.STATUS_EFFECT, "🛡")
_SLOW = DungeonReaction("SLOW", "Slow", ReactionType.STATUS_EFFECT, "🐌")
_CURSE = DungeonReaction("CURSE", "Curse", ReactionType.STATUS_EFFECT, "💀")
_FUNGAL_TOME = DungeonReaction("FUNGAL_TOME", "Tome of the Mushroom Tribes", ReactionType.ITEM, "🍄")
_WARRIOR = DungeonReaction("WARRIOR", "Warrior", ReactionType.CLASS, "⚔")
_KNIGHT = DungeonReaction("KNIGHT", "Knight", ReactionType.CLASS, "🛡")
_PALADIN = DungeonReaction("PALADIN", "Paladin", ReactionType.CLASS, "✝")
_PRIEST = DungeonReaction("PRIEST", "Priest", ReactionType.CLASS, "⚕")
_TRICKSTER = DungeonReaction("TRICKSTER", "Trickster", ReactionType.CLASS, "🎭")

BUILT_IN_DUNGEONS: dict[str, DungeonInfo] = {
    dungeon.code_name: dungeon
    for dungeon in (
        DungeonInfo(
            code_name="SHATTERS",
            name="Shatters",
            key_reactions=(
                DungeonReaction("SHATTERS_KEY", "Shatters Key", ReactionType.KEY, "🔑"),
            ),
            other_reactions=(_RUSHING_CLASS, _MSEAL, _ARMOR_BREAK, _SLOW, _CURSE),
        ),
        DungeonInfo(
            code_name="CULTIST_HIDEOUT",
            name="Cultist Hideout",
            key_reactions=(
                DungeonReaction("LOST_HALLS_KEY", "Lost Halls Key", ReactionType.KEY, "🔑"),
            ),
            other_reactions=(
                _RUSHING_CLASS,
                _MSEAL,
                _CURSE,
                _ARMOR_BREAK,
                _FUNGAL_TOME,
                _WARRIOR,
                _KNIGHT,
                _PALADIN,
                _TRICKSTER,
            ),
        ),
        DungeonInfo(
            code_name="LOST_HALLS",
            name="Lost Halls",
            key_reactions=(
                DungeonReaction("CULT_KEY", "Cult Key", ReactionType.KEY, "🔑"),
                DungeonReaction("VOID_KEY", "Void Key", ReactionType.KEY, "🗝"),
                DungeonReaction(
                    "VIAL_OF_PURE_DARKNESS",
                    "Vial of Pure Darkness",
                    ReactionType.NM_KEY,
                    "🧪",
                ),
            ),
            other_reactions=(
                _CURSE,
                _MSEAL,
                _ARMOR_BREAK,
                _FUNGAL_TOME,
                _WARRIOR,
                _KNIGHT,
                _PALADIN,
                _PRIEST,
                _TRICKSTER,
            ),
        ),
        DungeonInfo(
            code_name="ORYX_3",
            name="Oryx 3",
            key_reactions=(
                DungeonReaction("WC_INC", "Wine Cellar Incantation", ReactionType.NM_KEY, "📜"),
                DungeonReaction("SHIELD_RUNE", "Shield Rune", ReactionType.NM_KEY, "🔵"),
                DungeonReaction("SWORD_RUNE", "Sword Rune", ReactionType.NM_KEY, "🔴"),
                DungeonReaction("HELM_RUNE", "Helm Rune", ReactionType.NM_KEY, "🟡"),
            ),
            other_reactions=(
                _TRICKSTER,
                _MSEAL,
                _ARMOR_BREAK,
                _CURSE,
                _FUNGAL_TOME,
                _WARRIOR,
                _KNIGHT,
                _PALADIN,
                _PRIEST,
            ),
        ),
    )
}
