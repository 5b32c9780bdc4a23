"""Deterministic tick-based snake simulation on a toroidal grid."""

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from .config import GameConfig
from .models import Board, GameFrame, Point

logger = logging.getLogger(__name__)

Cell = Tuple[int, int]

FALLBACK_FOOD_CELL: Cell = (0, 0)
START_LENGTH = 3


class Direction(enum.Enum):
    """Unit (dx, dy) deltas; y grows downwards."""

    UP = (0, -1)
    DOWN = (0, 1)
    LEFT = (-1, 0)
    RIGHT = (1, 0)

    @property
    def opposite(self) -> "Direction":
        return _OPPOSITES[self]


_OPPOSITES = {
    Direction.UP: Direction.DOWN,
    Direction.DOWN: Direction.UP,
    Direction.LEFT: Direction.RIGHT,
    Direction.RIGHT: Direction.LEFT,
}


class GameStatus(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    GAME_OVER = "game_over"


@dataclass
class GameState:
    snake: List[Cell] = field(default_factory=list)
    direction: Direction = Direction.RIGHT
    pending_direction: Optional[Direction] = None
    food: Optional[Cell] = None
    score: int = 0
    tick_interval_ms: int = 150
    status: GameStatus = GameStatus.IDLE

    @property
    def head(self) -> Cell:
        return self.snake[0]


class GameEngine:
    """Owns the single GameState and advances it one tick at a time.

    Collisions and game over are plain state transitions; nothing in here raises
    for gameplay reasons.
    """

    def __init__(self, config: Optional[GameConfig] = None, seed: Optional[int] = None) -> None:
        self.config = config or GameConfig()
        self.rng = random.Random(seed)
        self.state = GameState(tick_interval_ms=self.config.start_interval_ms)
        self._game_over_listeners: List[Callable[[int], None]] = []

    def add_game_over_listener(self, callback: Callable[[int], None]) -> None:
        self._game_over_listeners.append(callback)

    def spawn_food(self, snake: List[Cell]) -> Cell:
        occupied = set(snake)
        for _ in range(self.config.max_food_attempts):
            cell = (self.rng.randrange(self.config.cols), self.rng.randrange(self.config.rows))
            if cell not in occupied:
                return cell
        logger.warning("[food] no free cell after %d attempts, using fallback", self.config.max_food_attempts)
        return FALLBACK_FOOD_CELL

    def reset(self) -> GameState:
        cols, rows = self.config.cols, self.config.rows
        mid_x, mid_y = cols // 2, rows // 2
        snake = [(mid_x - i, mid_y) for i in range(START_LENGTH)]
        self.state = GameState(
            snake=snake,
            direction=Direction.RIGHT,
            food=self.spawn_food(snake),
            score=0,
            tick_interval_ms=self.config.start_interval_ms,
            status=GameStatus.RUNNING,
        )
        logger.info("[game] reset grid=%dx%d food=%s", cols, rows, self.state.food)
        return self.state

    def toggle_pause(self) -> GameStatus:
        state = self.state
        if state.status is GameStatus.RUNNING:
            state.status = GameStatus.PAUSED
        elif state.status is GameStatus.PAUSED:
            state.status = GameStatus.RUNNING
        return state.status

    def wrap(self, cell: Cell, direction: Direction) -> Cell:
        dx, dy = direction.value
        return ((cell[0] + dx) % self.config.cols, (cell[1] + dy) % self.config.rows)

    def tick(self) -> GameState:
        state = self.state
        if state.status is not GameStatus.RUNNING:
            return state

        if state.pending_direction is not None:
            state.direction = state.pending_direction
            state.pending_direction = None

        new_head = self.wrap(state.head, state.direction)

        if new_head in state.snake:
            state.status = GameStatus.GAME_OVER
            logger.info("[game] over score=%d length=%d", state.score, len(state.snake))
            for callback in self._game_over_listeners:
                callback(state.score)
            return state

        state.snake.insert(0, new_head)
        if new_head == state.food:
            state.score += 1
            state.food = self.spawn_food(state.snake)
            state.tick_interval_ms = max(
                state.tick_interval_ms - self.config.interval_step_ms,
                self.config.min_interval_ms,
            )
        else:
            state.snake.pop()
        return state

    def snapshot(self) -> GameFrame:
        state = self.state
        return GameFrame(
            board=Board(cols=self.config.cols, rows=self.config.rows),
            snake=[Point(x=x, y=y) for x, y in state.snake],
            food=Point(x=state.food[0], y=state.food[1]) if state.food else None,
            score=state.score,
            state=state.status.value,
            tick_interval_ms=state.tick_interval_ms,
        )
