import asyncio
import logging
import math
from typing import List, Optional, Sequence, Set

from .config import Settings
from .errors import ReadFailure
from .ledger import SCORE_SUBMITTED, EventSubscription, LedgerEndpoint
from .models import LeaderboardEntry, LeaderboardPage

logger = logging.getLogger(__name__)


def build_entries(addresses: Sequence[str], scores: Sequence[int]) -> List[LeaderboardEntry]:
    """Zip the endpoint's parallel arrays, keeping its order and dropping zero scores."""
    if len(addresses) != len(scores):
        raise ReadFailure(f"leaderboard arrays differ in length: {len(addresses)} != {len(scores)}")
    return [
        LeaderboardEntry(account=address, score=score, rank=rank)
        for rank, (address, score) in enumerate(zip(addresses, scores), start=1)
        if score > 0
    ]


def page_count(entry_count: int, page_size: int) -> int:
    return math.ceil(entry_count / page_size)


class LeaderboardSync:
    def __init__(self, ledger: LedgerEndpoint, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings()
        self.ledger = ledger
        self.page_size = settings.page_size
        self.tx_settle_delay = settings.tx_settle_delay
        self.event_settle_delay = settings.event_settle_delay

        self.entries: List[LeaderboardEntry] = []
        self.current_page = 1
        self.loading = False
        self.error: Optional[str] = None
        self.active = False
        self.refresh_count = 0

        self._subscription: Optional[EventSubscription] = None
        self._drain_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

    @property
    def total_pages(self) -> int:
        return page_count(len(self.entries), self.page_size)

    async def refresh(self) -> List[LeaderboardEntry]:
        entries = await self._fetch()
        if self.active:
            await self._ensure_subscribed()
        return entries

    async def _fetch(self) -> List[LeaderboardEntry]:
        self.loading = True
        self.error = None
        try:
            addresses, scores = await self.ledger.get_leaderboard()
            entries = build_entries(addresses, scores)
        except Exception as exc:
            # The previous collection stays on display; refresh() is the retry.
            self.error = f"Failed to load: {exc}"
            logger.warning("[leaderboard] refresh failed: %s", exc)
            return list(self.entries)
        finally:
            self.loading = False

        self.entries = entries
        self.refresh_count += 1
        self.go_to(self.current_page)
        logger.info("[leaderboard] %d players with scores", len(entries))
        return list(entries)

    def go_to(self, page: int) -> int:
        self.current_page = max(1, min(page, self.total_pages))
        return self.current_page

    def page(self, number: Optional[int] = None) -> LeaderboardPage:
        if number is not None:
            self.go_to(number)
        entries = self.entries
        start = (self.current_page - 1) * self.page_size
        return LeaderboardPage(
            entries=entries[start:start + self.page_size],
            page=self.current_page,
            total_pages=page_count(len(entries), self.page_size),
            loading=self.loading,
            error=self.error,
        )

    def schedule_refresh(self, delay: float) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(self._refresh_after(delay))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _refresh_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        if self.active:
            await self.refresh()

    def notify_transaction(self, tx_hash: str) -> None:
        if not self.active:
            return
        logger.info("[leaderboard] new transaction %s, refreshing in %.1fs", tx_hash, self.tx_settle_delay)
        self.schedule_refresh(self.tx_settle_delay)

    async def _drain(self, subscription: EventSubscription) -> None:
        async for event in subscription:
            logger.info(
                "[leaderboard] %s player=%s score=%s",
                event.event,
                event.args.get("player"),
                event.args.get("score"),
            )
            self.schedule_refresh(self.event_settle_delay)

    async def _ensure_subscribed(self) -> None:
        if self._subscription is not None:
            return
        try:
            subscription = await self.ledger.subscribe(SCORE_SUBMITTED)
        except Exception as exc:
            logger.warning("[leaderboard] could not subscribe to %s, retrying on next refresh: %s", SCORE_SUBMITTED, exc)
            return
        if not self.active or self._subscription is not None:
            subscription.close()
            return
        self._subscription = subscription
        self._drain_task = asyncio.get_running_loop().create_task(self._drain(subscription))

    async def activate(self) -> None:
        if self.active:
            return
        self.active = True
        await self.refresh()

    async def deactivate(self) -> None:
        self.active = False
        if self._subscription is not None:
            self._subscription.close()
            await self._subscription.wait_closed()
            self._subscription = None
        if self._drain_task is not None:
            await self._drain_task
            self._drain_task = None
        pending = list(self._pending)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
