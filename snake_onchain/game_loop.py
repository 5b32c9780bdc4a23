import asyncio
import contextlib
import logging
from typing import Callable, List, Optional

from .engine import GameEngine, GameStatus
from .models import GameFrame

logger = logging.getLogger(__name__)


class GameLoop:
    """Re-armed tick timer for a GameEngine.

    The next tick is only scheduled after the previous one finished and while the
    game is still running; leaving RUNNING (pause, game over, teardown) cancels it.
    """

    def __init__(self, engine: GameEngine) -> None:
        self.engine = engine
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None
        self._frame_listeners: List[Callable[[GameFrame], None]] = []

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_frame_listener(self, callback: Callable[[GameFrame], None]) -> None:
        self._frame_listeners.append(callback)

    def remove_frame_listener(self, callback: Callable[[GameFrame], None]) -> None:
        with contextlib.suppress(ValueError):
            self._frame_listeners.remove(callback)

    def publish(self) -> None:
        if not self._frame_listeners:
            return
        frame = self.engine.snapshot()
        for callback in list(self._frame_listeners):
            callback(frame)

    def sync(self) -> None:
        """Arm or disarm the timer to match the engine's status."""
        if self.engine.state.status is GameStatus.RUNNING:
            if not self.armed:
                self._task = asyncio.get_running_loop().create_task(self._run())
        else:
            self.cancel()

    def cancel(self) -> None:
        if self.armed:
            self._task.cancel()
        self._task = None

    async def stop(self) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _run(self) -> None:
        engine = self.engine
        while engine.state.status is GameStatus.RUNNING:
            await asyncio.sleep(engine.state.tick_interval_ms / 1000)
            if engine.state.status is not GameStatus.RUNNING:
                break
            engine.tick()
            self.ticks += 1
            self.publish()
        logger.debug("[tick] timer released status=%s ticks=%d", engine.state.status.value, self.ticks)
        if self._task is asyncio.current_task():
            self._task = None
