"""Round engine: one crane session's state and its timer-driven cycles.

Three activities share the session state, all scheduled on the same
TaskScheduler: the one-second countdown, the spawn cycle
(spawn -> partial clear -> full clear -> rest -> spawn ...) and the
crane drop of a pending grab. Every timer belongs to the current
session's TaskScope and dies with it.
"""

import enum
import logging
import math
import random
from dataclasses import dataclass
from typing import Callable, List, Optional

from .rarity import lowest_tier, pick_item, pick_item_by_rarity, RarityTier, ItemDefinition
from .round_config import RoundConfig
from .timers import TaskHandle, TaskScheduler, TaskScope

logger = logging.getLogger(__name__)


class Phase(str, enum.Enum):
    NOT_STARTED = 'not_started'
    RUNNING = 'running'
    ENDED = 'ended'


@dataclass(frozen=True)
class Position:
    x: int
    y: int

    def to_dict(self):
        return {'x': self.x, 'y': self.y}


@dataclass(frozen=True)
class GridBounds:
    """On-screen rectangle of the board, in the same units as pointer coordinates."""

    left: float
    top: float
    width: float
    height: float

    @classmethod
    def from_dict(cls, data) -> 'GridBounds':
        """Parse client-supplied bounds; raises ValueError on anything unusable."""
        if not isinstance(data, dict):
            raise ValueError('bounds must be an object')
        try:
            return cls(
                left=finite_float(data['left']),
                top=finite_float(data['top']),
                width=finite_float(data['width']),
                height=finite_float(data['height']),
            )
        except KeyError as exc:
            raise ValueError(f"bounds.{exc.args[0]} is required") from exc


def finite_float(value) -> float:
    """float() that also refuses NaN, infinities and booleans."""
    if isinstance(value, bool):
        raise ValueError('expected a number')
    try:
        number = float(value)
    except TypeError as exc:
        raise ValueError('expected a number') from exc
    if not math.isfinite(number):
        raise ValueError('expected a finite number')
    return number


@dataclass(frozen=True)
class SpawnedItem:
    id: int
    emoji: str
    points: int
    rarity: str
    visual_key: str

    @classmethod
    def create(cls, item_id: int, tier: RarityTier, definition: ItemDefinition) -> 'SpawnedItem':
        return cls(
            id=item_id,
            emoji=definition.emoji,
            points=definition.points,
            rarity=tier.name,
            visual_key=tier.visual_key,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'emoji': self.emoji,
            'points': self.points,
            'rarity': self.rarity,
            'rarity_class': self.visual_key,
        }


@dataclass(frozen=True)
class CatchResult:
    caught: bool
    points: int = 0

    @property
    def message(self) -> str:
        return f"+{self.points}!" if self.caught else 'Miss!'

    def to_dict(self):
        return {'caught': self.caught, 'points': self.points, 'message': self.message}


Grid = List[List[Optional[SpawnedItem]]]
ChangeListener = Callable[['RoundEngine', str], None]


class RoundEngine:
    def __init__(self, config: RoundConfig, scheduler: TaskScheduler,
                 rng: Optional[random.Random] = None, on_change: Optional[ChangeListener] = None):
        self.config = config
        self.scheduler = scheduler
        self.rng = rng or random.Random()
        self.on_change = on_change

        self._grid: Grid = self._empty_grid()
        self._cursor = self._start_cursor()
        self._score = 0
        self._time_remaining = config.game_duration
        self._phase = Phase.NOT_STARTED
        self._pending_catch: Optional[CatchResult] = None
        self._dropping = False
        self._next_item_id = 0
        self._scope: Optional[TaskScope] = None
        self._catch_timer: Optional[TaskHandle] = None

    # ---- read accessors ----

    @property
    def grid(self) -> Grid:
        return [list(row) for row in self._grid]

    @property
    def score(self) -> int:
        return self._score

    @property
    def time_remaining(self) -> int:
        return self._time_remaining

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def pending_catch(self) -> Optional[CatchResult]:
        return self._pending_catch

    @property
    def cursor(self) -> Position:
        return self._cursor

    @property
    def is_dropping(self) -> bool:
        return self._dropping

    def item_at(self, position: Position) -> Optional[SpawnedItem]:
        return self._grid[position.y][position.x]

    def occupied_cells(self) -> List[Position]:
        return [
            Position(x, y)
            for y, row in enumerate(self._grid)
            for x, item in enumerate(row)
            if item is not None
        ]

    # ---- lifecycle ----

    def start_session(self) -> None:
        """Start, or restart, a session from a clean slate."""
        self._close_scope()
        self._grid = self._empty_grid()
        self._cursor = self._start_cursor()
        self._score = 0
        self._time_remaining = self.config.game_duration
        self._pending_catch = None
        self._dropping = False
        self._next_item_id = 0
        self._phase = Phase.RUNNING
        self._scope = self.scheduler.scope()
        logger.info(f"[session-start] duration={self.config.game_duration}s grid={self.config.grid_size}")
        self._notify('started')
        self._scope.call_every(1.0, self.tick)
        self._run_spawn_cycle()

    def shutdown(self) -> None:
        """Drop every pending timer; the engine stays readable."""
        self._close_scope()
        self._dropping = False

    def tick(self) -> None:
        if self._phase is not Phase.RUNNING:
            return
        if self._time_remaining <= 1:
            self._time_remaining = 0
            self._end_session()
            return
        self._time_remaining -= 1
        self._notify('tick')

    def _end_session(self) -> None:
        self._phase = Phase.ENDED
        self._close_scope()
        self._dropping = False
        self._pending_catch = None
        logger.info(f"[session-ended] score={self._score}")
        self._notify('ended')

    def _close_scope(self) -> None:
        if self._scope is not None:
            cancelled = self._scope.cancel_all()
            logger.debug(f"[timers-cancel] cancelled={cancelled}")
            self._scope = None
        self._catch_timer = None

    # ---- spawn cycle ----

    def _run_spawn_cycle(self) -> None:
        if self._phase is not Phase.RUNNING:
            return
        cfg = self.config
        self.spawn_items()
        self._scope.call_later(cfg.visible_normal, self._partial_clear_step)

    def _partial_clear_step(self) -> None:
        self.partial_clear()
        self._scope.call_later(self.config.visible_low_tier, self._full_clear_step)

    def _full_clear_step(self) -> None:
        self.full_clear()
        self._scope.call_later(self.config.clear_duration, self._run_spawn_cycle)

    def spawn_items(self) -> List[Position]:
        """Clear the board and drop a fresh batch of items on random cells."""
        cfg = self.config
        grid = self._empty_grid()
        free = [Position(x, y) for y in range(cfg.grid_size) for x in range(cfg.grid_size)]
        bottom = lowest_tier(cfg.rarity_table)
        placed = []

        for _ in range(cfg.random_spawns):
            if not free:
                break
            cell = free.pop(self.rng.randrange(len(free)))
            tier, definition = pick_item_by_rarity(cfg.rarity_table, self.rng)
            grid[cell.y][cell.x] = SpawnedItem.create(self._new_item_id(), tier, definition)
            placed.append(cell)

        for _ in range(cfg.low_tier_spawns):
            if not free:
                break
            cell = free.pop(self.rng.randrange(len(free)))
            grid[cell.y][cell.x] = SpawnedItem.create(self._new_item_id(), bottom, pick_item(bottom, self.rng))
            placed.append(cell)

        self._grid = grid
        logger.debug(f"[spawn] cells={len(placed)} next_id={self._next_item_id}")
        self._notify('spawn')
        return placed

    def partial_clear(self) -> None:
        """Remove everything except lowest-tier items."""
        bottom = lowest_tier(self.config.rarity_table).name
        self._grid = [
            [item if item is not None and item.rarity == bottom else None for item in row]
            for row in self._grid
        ]
        self._notify('partial_clear')

    def full_clear(self) -> None:
        self._grid = self._empty_grid()
        self._notify('full_clear')

    # ---- player input ----

    def attempt_grab(self) -> bool:
        """Drop the crane. Returns False when the grab is ignored."""
        if self._phase is not Phase.RUNNING or self._dropping:
            return False
        self._dropping = True
        self._scope.call_later(self.config.drop_delay, self._resolve_grab)
        logger.debug(f"[grab] at=({self._cursor.x},{self._cursor.y})")
        self._notify('grab')
        return True

    def _resolve_grab(self) -> None:
        # Reads the board as it is now, not as it was when the crane dropped.
        self._dropping = False
        pos = self._cursor
        item = self._grid[pos.y][pos.x]
        if item is not None:
            self._score += item.points
            self._grid[pos.y][pos.x] = None
            result = CatchResult(caught=True, points=item.points)
            event = 'caught'
        else:
            result = CatchResult(caught=False)
            event = 'miss'
        self._show_catch(result)
        logger.debug(f"[{event}] at=({pos.x},{pos.y}) points={result.points} score={self._score}")
        self._notify(event)

    def _show_catch(self, result: CatchResult) -> None:
        if self._catch_timer is not None:
            self._catch_timer.cancel()
        self._pending_catch = result
        self._catch_timer = self._scope.call_later(self.config.catch_display, self._clear_catch)

    def _clear_catch(self) -> None:
        self._catch_timer = None
        self._pending_catch = None
        self._notify('catch_cleared')

    def move_cursor(self, client_x: float, client_y: float, bounds: GridBounds) -> bool:
        """Point the crane at the cell under a pointer/touch coordinate.

        Returns True only when the cursor actually moved.
        """
        if self._phase is not Phase.RUNNING or self._dropping:
            return False
        n = self.config.grid_size
        if not all(math.isfinite(v) for v in (client_x, client_y, bounds.left, bounds.top, bounds.width, bounds.height)):
            return False
        if not (bounds.width > 0 and bounds.height > 0):
            return False
        rel_x = (client_x - bounds.left) / (bounds.width / n)
        rel_y = (client_y - bounds.top) / (bounds.height / n)
        # finite inputs can still overflow once subtracted and scaled
        if not (math.isfinite(rel_x) and math.isfinite(rel_y)):
            return False
        gx = math.floor(rel_x)
        gy = math.floor(rel_y)
        if not (0 <= gx < n and 0 <= gy < n):
            return False
        if gx == self._cursor.x and gy == self._cursor.y:
            return False
        self._cursor = Position(gx, gy)
        self._notify('cursor')
        return True

    # ---- helpers ----

    def _empty_grid(self) -> Grid:
        n = self.config.grid_size
        return [[None] * n for _ in range(n)]

    def _start_cursor(self) -> Position:
        return Position(self.config.grid_size // 2, 0)

    def _new_item_id(self) -> int:
        item_id = self._next_item_id
        self._next_item_id += 1
        return item_id

    def _notify(self, event: str) -> None:
        if self.on_change is not None:
            self.on_change(self, event)

    def snapshot(self) -> dict:
        return {
            'phase': self._phase.value,
            'score': self._score,
            'time_remaining': self._time_remaining,
            'grid_size': self.config.grid_size,
            'cursor': self._cursor.to_dict(),
            'is_dropping': self._dropping,
            'pending_catch': self._pending_catch.to_dict() if self._pending_catch else None,
            'grid': [[item.to_dict() if item else None for item in row] for row in self._grid],
        }
