import asyncio
import logging
from typing import AsyncIterator, Optional

from .config import Settings
from .engine import GameEngine, GameStatus
from .errors import SubmissionPrecondition
from .game_loop import GameLoop
from .input_router import InputRouter
from .leaderboard import LeaderboardSync
from .ledger import JsonRpcLedgerClient
from .models import GameFrame
from .signer import RpcSigner, Signer
from .submitter import ScoreSubmission, ScoreSubmitter

logger = logging.getLogger(__name__)


class Arcade:
    """One player's game wired to the ledger: engine, input, submitter, leaderboard."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        ledger: Optional[JsonRpcLedgerClient] = None,
        signer: Optional[Signer] = None,
        seed: Optional[int] = None,
    ) -> None:
        self.settings = settings or Settings.from_env()
        self.engine = GameEngine(self.settings.game, seed=seed)
        self.router = InputRouter(self.engine)
        self.loop = GameLoop(self.engine)
        self.ledger = ledger or JsonRpcLedgerClient(
            self.settings.rpc_url,
            self.settings.contract_address,
            timeout=self.settings.rpc_timeout,
            receipt_timeout=self.settings.receipt_timeout,
            receipt_poll_interval=self.settings.receipt_poll_interval,
            event_poll_interval=self.settings.event_poll_interval,
        )
        if signer is None and self.settings.account:
            signer = RpcSigner(self.ledger, self.settings.account)
        self.signer = signer
        self.submitter = ScoreSubmitter(self.settings, self.ledger, self.signer)
        self.leaderboard = LeaderboardSync(self.ledger, self.settings)
        self.final_score: Optional[int] = None

        self.submitter.add_transaction_listener(self.leaderboard.notify_transaction)
        self.engine.add_game_over_listener(self._on_game_over)

    def _on_game_over(self, score: int) -> None:
        self.final_score = score

    async def open(self) -> None:
        await self.ledger.connect()
        await self.leaderboard.activate()

    async def close(self) -> None:
        try:
            await self.leaderboard.deactivate()
        finally:
            try:
                await self.loop.stop()
                await self.submitter.close()
            finally:
                await self.ledger.close()

    def start(self) -> GameFrame:
        self.final_score = None
        self.submitter.reset()
        self.engine.reset()
        self.loop.sync()
        self.loop.publish()
        return self.engine.snapshot()

    def press(self, key: str) -> bool:
        consumed = self.router.press(key)
        self.loop.sync()
        return consumed

    def swipe(self, dx: float, dy: float) -> None:
        self.router.swipe(dx, dy)

    def toggle_pause(self) -> GameStatus:
        status = self.router.toggle_pause()
        self.loop.sync()
        self.loop.publish()
        return status

    async def submit_score(self) -> ScoreSubmission:
        if self.final_score is None:
            raise SubmissionPrecondition("Finish a game before submitting")
        return await self.submitter.submit(self.final_score)

    async def frames(self) -> AsyncIterator[GameFrame]:
        queue: "asyncio.Queue[GameFrame]" = asyncio.Queue()
        self.loop.add_frame_listener(queue.put_nowait)
        try:
            frame = self.engine.snapshot()
            while True:
                yield frame
                if frame.state == GameStatus.GAME_OVER.value:
                    return
                frame = await queue.get()
        finally:
            self.loop.remove_frame_listener(queue.put_nowait)
