"""Dungeon modifier catalog used as claim qualifiers."""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass

HIGHEST_MODIFIER_LEVEL = 5


@dataclass(frozen=True)
class DungeonModifier:
    """A known modifier that a key may carry."""

    id: str
    name: str
    max_level: int
    description: str
    default_display: bool = False

    def label(self, level: int | None = None) -> str:
        """Return the qualifier label, with the level appended when given."""
        if level is None:
            return self.name
        return f"{self.name} {level}"


class ModifierCatalog:
    """Immutable lookup of modifiers by id."""

    def __init__(self, modifiers: Iterable[DungeonModifier]) -> None:
        ordered = tuple(modifiers)
        by_id: dict[str, DungeonModifier] = {}
        for modifier in ordered:
            if not 1 <= modifier.max_level <= HIGHEST_MODIFIER_LEVEL:
                raise ValueError(f"Invalid max level for modifier {modifier.id}")
            if modifier.id in by_id:
                raise ValueError(f"Duplicate modifier id {modifier.id}")
            by_id[modifier.id] = modifier
        self._ordered = ordered
        self._by_id = by_id

    def __len__(self) -> int:
        return len(self._ordered)

    def __iter__(self) -> Iterator[DungeonModifier]:
        return iter(self._ordered)

    def get(self, modifier_id: str) -> DungeonModifier | None:
        """Return a modifier by id, if known."""
        return self._by_id.get(modifier_id)

    def by_name(self, name: str) -> DungeonModifier | None:
        """Return a modifier by its display name, if known."""
        for modifier in self._ordered:
            if modifier.name == name:
                return modifier
        return None

    def defaults(self) -> tuple[DungeonModifier, ...]:
        """Return the modifiers shown when no override applies."""
        return tuple(x for x in self._ordered if x.default_display)

    def subset(self, modifier_ids: Iterable[str]) -> tuple[DungeonModifier, ...]:
        """Return the modifiers for the given ids in request order, dropping unknown ids."""
        found = (self._by_id.get(x) for x in modifier_ids)
        return tuple(x for x in found if x is not None)


MODIFIER_CATALOG = ModifierCatalog(
    [
        DungeonModifier("AGENT_OF_ORYX", "Agent of Oryx", 1, "Boss can drop Agents of Oryx Shards.", True),
        DungeonModifier("BIS", "Bis", 1, "Boss has a 50% chance of dropping the portal to the same dungeon.", True),
        DungeonModifier("BORED_MINIONS", "Bored Minions", 3, "Minions' projectiles have x% less lifetime.", True),
        DungeonModifier("BULKY_MINIONS", "Bulky Minions", 3, "Minions have x% more HP."),
        DungeonModifier("CHEF", "Chef", 1, "Boss has a 33% chance of dropping a food item.", True),
        DungeonModifier("COLORFUL", "Colorful", 1, "Boss always drops a Color Dye."),
        DungeonModifier("DIMITUS", "Dimitus", 1, "Dimitus will appear after the Boss is defeated."),
        DungeonModifier("DULL_MINIONS", "Dull Minions", 4, "Minions' projectiles travel x% slower.", True),
        DungeonModifier("ELITE_BOSS", "Elite Boss", 3, "Boss enemies have x% more HP.", True),
        DungeonModifier("ENERGIZED_MINIONS", "Energized Minions", 3, "Minions' projectiles have x% more lifetime.", True),
        DungeonModifier("FEEBLE_BOSS", "Feeble Boss", 4, "Boss enemies have x% less DEF.", True),
        DungeonModifier("FEEBLE_MINIONS", "Feeble Minions", 4, "Minions have x% less DEF."),
        DungeonModifier("FEROCIOUS_BOSS", "Ferocious Boss", 4, "Boss enemies deal x% more DMG.", True),
        DungeonModifier("FEROCIOUS_MINIONS", "Ferocious Minions", 3, "Minions deal x% more DMG."),
        DungeonModifier("GENEROUS", "Generous", 1, "Boss has a 10% chance to drop a Quest Chest.", True),
        DungeonModifier("GUARANTEED_STAT_POT", "Guaranteed Stat Potion", 1, "Boss enemies will always drop their respective Stat Potion.", True),
        DungeonModifier("KEEN_MINIONS", "Keen Minions", 4, "Minions's projectiles travel x% faster.", True),
        DungeonModifier("LAZY_MINIONS", "Lazy Minions", 3, "Minions attack x% slower.", True),
        DungeonModifier("MYSTERY_STAT_POT", "Mystery Stat Potion", 1, "Boss always drops a Mystery Stat Potion."),
        DungeonModifier("NOBLE_BOSS", "Noble Boss", 1, "Boss drops a portal to the Court of Oryx."),
        DungeonModifier("PET_COLLECTOR", "Pet Collector", 1, "Boss has a 25% chance of dropping an egg."),
        DungeonModifier("PRISMIMIC", "Prismimic", 1, "Prismimic will appear after the boss is defeated."),
        DungeonModifier("REWARDS_BOOST_BOSS", "Rewards Boost (Boss)", 5, "Boss enemies give x% more loot.", True),
        DungeonModifier("REWARDS_BOOST_MINIONS", "Rewards Boost (Minions)", 2, "Minions give x% more loot."),
        DungeonModifier("REWARDS_DECREASE_MINIONS", "Rewards Decrease (Minions)", 2, "Minions give x% less loot."),
        DungeonModifier("SKILLED_MINIONS", "Skilled Minions", 3, "Minions attack x% faster.", True),
        DungeonModifier("SOUVENIR", "Souvenir", 2, "Triples your chance of the boss dropping an iconic reward.", True),
        DungeonModifier("SURVIVOR", "Survivor", 1, "Minions have a higher chance to drop Health/Mana Potions."),
        DungeonModifier("TAME_BOSS", "Tame Boss", 4, "Boss enemies deal x% less damage.", True),
        DungeonModifier("TAME_MINIONS", "Tame Minions", 3, "Minions deal x% less damage."),
        DungeonModifier("TOUGH_BOSS", "Tough Boss", 4, "Boss enemies have x% more DEF.", True),
        DungeonModifier("TOUGH_MINIONS", "Tough Minions", 4, "Minions have x% more DEF."),
        DungeonModifier("WEAK_BOSS", "Weak Boss", 3, "Boss enemies have x% less HP.", True),
        DungeonModifier("WEAK_MINIONS", "Weak Minions", 3, "Minions have x% less HP."),
        DungeonModifier("XP_BOOST_BOSS", "XP Boost (Boss)", 5, "Boss enemies give x% more XP"),
        DungeonModifier("XP_BOOST_MINIONS", "XP Boost (Minions)", 2, "Minions give x% more XP."),
        DungeonModifier("XP_DECREASE_MINIONS", "XP Decrease (Minions)", 2, "Minions give x% less XP."),
        DungeonModifier("KEY_FAIRY", "Key Fairy", 3, "Upon killing the boss, a Key Fairy has a chance to spawn.", True),
        DungeonModifier("MYSTERY_SKIN", "Mystery Skin", 1, "Upon killing the boss, a Mystery Skin token will have a chance to drop.", True),
        DungeonModifier("SKIN_HUNTER", "Skin Hunter", 2, "Boss enemies that can drop pet and player skins have better drop rates applied.", True),
        DungeonModifier("NILDROPS", "Nildrops", 1, "Boss enemies drop a Nildrop on defeat. The quality depends on the dungeon."),
        DungeonModifier("BONUS_CONSUMABLES", "Bonus Consumables", 1, "Bosses will drop additional consumables belonging to the dungeon upon defeat."),
        DungeonModifier("MYSTERY_EFFUSION", "Mystery Effusion", 1, "Boss will drop a Tincture or Effusion on defeat."),
        DungeonModifier("EXALTED_BANNER", "Exalted Banner", 2, "Chance for an additional completion when you finish the dungeon.", True),
        DungeonModifier("FOUND_TREASURE", "Found Treasure!", 2, "Treasure rooms will reveal themselves at the start of the dungeon if they exist."),
        DungeonModifier("HEROIC_REGENERATION", "Heroic Regeneration", 1, "Enemies will have a chance to drop Heroic Orbs on death, that grant Healing or Energized."),
        DungeonModifier("SPIDER_SWARM", "Spider Swarm", 1, "Enemies have a chance to split into multiple spiders that drop ichors on death."),
        DungeonModifier("ALEXANDERS_LEGACY", "Alexander's Legacy", 4, "Thessal has an additional chance of becoming wounded upon defeat."),
        DungeonModifier("CRAB_RAVE", "Crab Rave", 1, "The Calamity Crab is replaced with (4/6) mini-Calamity Crabs."),
        DungeonModifier("HAUNTED_HALLS", "Haunted Halls", 1, "Additional chance for each room to contain a Spectral Sentry."),
        DungeonModifier("LINGERING_MAGI", "Lingering Magi", 1, "The castle starts with one Magi Generator already active."),
        DungeonModifier("THE_WANDERER", "The Wanderer", 1, "An unknown foe will appear after the Boss is defeated with its own loot table.", True),
    ]
)

DEFAULT_MODIFIERS = MODIFIER_CATALOG.defaults()
