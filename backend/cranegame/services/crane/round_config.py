import math
from dataclasses import dataclass
from typing import Any, Mapping, Tuple

from .rarity import DEFAULT_RARITY_TABLE, RarityTier

PROBABILITY_TOLERANCE = 1e-6


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RoundConfig:
    """Tunables for one crane session. Validated on construction."""

    grid_size: int = 6
    game_duration: int = 100
    visible_normal: float = 1.0
    visible_low_tier: float = 0.5
    clear_duration: float = 0.75
    drop_delay: float = 0.3
    catch_display: float = 0.8
    rarity_table: Tuple[RarityTier, ...] = DEFAULT_RARITY_TABLE
    random_spawns: int = 3
    low_tier_spawns: int = 3

    def __post_init__(self):
        if self.grid_size < 1:
            raise ConfigError(f"grid_size must be at least 1, got {self.grid_size}")
        if self.game_duration < 1:
            raise ConfigError(f"game_duration must be at least 1 second, got {self.game_duration}")
        for name in ('visible_normal', 'visible_low_tier', 'clear_duration', 'drop_delay', 'catch_display'):
            if not getattr(self, name) > 0:
                raise ConfigError(f"{name} must be positive, got {getattr(self, name)}")
        if self.random_spawns < 0 or self.low_tier_spawns < 0:
            raise ConfigError('spawn counts cannot be negative')
        self._validate_rarity_table()

    def _validate_rarity_table(self):
        table = self.rarity_table
        if not table:
            raise ConfigError('rarity_table must have at least one tier')
        names = [t.name for t in table]
        if len(set(names)) != len(names):
            raise ConfigError(f"rarity tier names must be unique: {names}")
        for tier in table:
            if tier.chance < 0:
                raise ConfigError(f"tier {tier.name} has a negative chance")
            if not tier.items:
                raise ConfigError(f"tier {tier.name} has no items")
        total = math.fsum(t.chance for t in table)
        if abs(total - 1.0) > PROBABILITY_TOLERANCE:
            raise ConfigError(f"rarity chances must sum to 1, got {total}")

    @property
    def cell_count(self) -> int:
        return self.grid_size * self.grid_size

    @classmethod
    def from_mapping(cls, cfg: Mapping[str, Any]) -> 'RoundConfig':
        """Build from a Flask config (or any mapping using the same keys)."""
        try:
            return cls(
                grid_size=int(cfg.get('GRID_SIZE', 6)),
                game_duration=int(cfg.get('GAME_DURATION_SEC', 100)),
                visible_normal=float(cfg.get('VISIBLE_NORMAL_SEC', 1.0)),
                visible_low_tier=float(cfg.get('VISIBLE_LOW_TIER_SEC', 0.5)),
                clear_duration=float(cfg.get('CLEAR_DURATION_SEC', 0.75)),
                drop_delay=float(cfg.get('DROP_DELAY_SEC', 0.3)),
                catch_display=float(cfg.get('CATCH_DISPLAY_SEC', 0.8)),
            )
        except (TypeError, ValueError) as exc:
            if isinstance(exc, ConfigError):
                raise
            raise ConfigError(f"invalid round configuration: {exc}") from exc
