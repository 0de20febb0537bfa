import random
from dataclasses import dataclass
from typing import Sequence, Tuple


@dataclass(frozen=True)
class ItemDefinition:
    emoji: str
    points: int

    def __post_init__(self):
        if isinstance(self.points, bool) or not isinstance(self.points, int) or self.points <= 0:
            raise ValueError(f"item {self.emoji!r} must be worth a positive integer number of points")


@dataclass(frozen=True)
class RarityTier:
    """One row of the rarity table: a name, a spawn chance and its item pool."""

    name: str
    chance: float
    items: Tuple[ItemDefinition, ...]

    @property
    def visual_key(self) -> str:
        return f"rarity-{self.name.lower()}"


def _pool(points: int, *emojis: str) -> Tuple[ItemDefinition, ...]:
    return tuple(ItemDefinition(emoji=e, points=points) for e in emojis)


# Ordered rarest first; the last row is the lowest tier.
DEFAULT_RARITY_TABLE: Tuple[RarityTier, ...] = (
    RarityTier('Legendary', 0.0005, _pool(100000, '🍌')),
    RarityTier('Rare', 0.05, _pool(2000, '🥝', '🪞', '👻', '🦖')),
    RarityTier('Uncommon', 0.15, _pool(100, '🚀', '🍦', '🦎', '🔔', '🍩', '📱', '🥫', '🧢', '🦫')),
    RarityTier('Common', 0.40, _pool(15, '🐶', '🐒', '🐍', '🫖', '🕯️', '🍭', '🥤', '🍊', '🍋')),
    RarityTier('VeryCommon', 0.3995, _pool(5, '🪙', '🧤', '⚔️', '🎲', '🦡', '🍰', '🎈', '🔑')),
)


def lowest_tier(table: Sequence[RarityTier]) -> RarityTier:
    return table[-1]


def pick_tier(table: Sequence[RarityTier], rng: random.Random) -> RarityTier:
    """Weighted draw over ``table`` in order.

    Falls back to the lowest tier when float rounding leaves the
    cumulative sum just short of the draw.
    """
    roll = rng.random()
    cumulative = 0.0
    for tier in table:
        cumulative += tier.chance
        if roll < cumulative:
            return tier
    return lowest_tier(table)


def pick_item(tier: RarityTier, rng: random.Random) -> ItemDefinition:
    return tier.items[rng.randrange(len(tier.items))]


def pick_item_by_rarity(table: Sequence[RarityTier], rng: random.Random) -> Tuple[RarityTier, ItemDefinition]:
    tier = pick_tier(table, rng)
    return tier, pick_item(tier, rng)
