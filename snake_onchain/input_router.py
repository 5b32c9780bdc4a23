from typing import Dict, Optional

from .engine import Direction, GameEngine, GameStatus

KEY_MAP: Dict[str, Direction] = {
    "ArrowUp": Direction.UP,
    "w": Direction.UP,
    "W": Direction.UP,
    "ArrowDown": Direction.DOWN,
    "s": Direction.DOWN,
    "S": Direction.DOWN,
    "ArrowLeft": Direction.LEFT,
    "a": Direction.LEFT,
    "A": Direction.LEFT,
    "ArrowRight": Direction.RIGHT,
    "d": Direction.RIGHT,
    "D": Direction.RIGHT,
}

PAUSE_KEYS = frozenset({" ", "Space", "Escape"})

DEFAULT_DEAD_ZONE = 30.0


def apply(current: Direction, requested: Direction) -> Direction:
    # A U-turn would put the head straight into the neck; drop it silently.
    if requested is current.opposite:
        return current
    return requested


def classify_swipe(dx: float, dy: float, dead_zone: float = DEFAULT_DEAD_ZONE) -> Optional[Direction]:
    if abs(dx) < dead_zone and abs(dy) < dead_zone:
        return None
    if abs(dx) > abs(dy):
        return Direction.RIGHT if dx > 0 else Direction.LEFT
    return Direction.DOWN if dy > 0 else Direction.UP


class InputRouter:
    """Turns key presses and swipes into the engine's pending direction."""

    def __init__(self, engine: GameEngine) -> None:
        self.engine = engine

    @property
    def dead_zone(self) -> float:
        return self.engine.config.swipe_dead_zone

    def request(self, requested: Direction) -> Direction:
        state = self.engine.state
        if state.status is not GameStatus.RUNNING:
            return state.pending_direction or state.direction
        # Filter against the direction actually travelled, not the pending one.
        if apply(state.direction, requested) is requested:
            state.pending_direction = requested
        return state.pending_direction or state.direction

    def press(self, key: str) -> bool:
        """Returns True when the key was consumed."""
        status = self.engine.state.status
        if status not in (GameStatus.RUNNING, GameStatus.PAUSED):
            return False
        if key in PAUSE_KEYS:
            self.engine.toggle_pause()
            return True
        direction = KEY_MAP.get(key)
        if direction is None:
            return False
        self.request(direction)
        return True

    def swipe(self, dx: float, dy: float) -> Optional[Direction]:
        direction = classify_swipe(dx, dy, self.dead_zone)
        if direction is None:
            return None
        return self.request(direction)

    def toggle_pause(self) -> GameStatus:
        return self.engine.toggle_pause()
