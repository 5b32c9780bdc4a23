"""JSON-RPC adapter for the score contract on the ledger.

Contract calls travel as logical call objects (``to``, ``from``, ``function``,
``args``); encoding them for the chain is left to the node behind ``rpc_url``.
"""

import asyncio
import contextlib
import itertools
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import httpx

from .errors import LedgerError, LedgerTimeout, ReadFailure
from .models import ContractCall, LedgerEvent, Receipt

logger = logging.getLogger(__name__)

SCORE_SUBMITTED = "ScoreSubmitted"


def to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    return int(value)


class LedgerEndpoint(Protocol):
    @property
    def ready(self) -> bool: ...

    def build_call(self, function: str, args: Sequence[Any] = (), sender: Optional[str] = None, gas: Optional[int] = None) -> ContractCall: ...

    async def call(self, function: str, args: Sequence[Any] = (), sender: Optional[str] = None) -> Any: ...

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]: ...

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None) -> Receipt: ...

    async def get_leaderboard(self) -> Tuple[List[str], List[int]]: ...

    async def get_my_score(self, account: str) -> int: ...

    async def subscribe(self, event: str) -> "EventSubscription": ...


class EventSubscription:
    """Queue-backed event channel fed by polling ``eth_getLogs``.

    Consumers drain it with ``async for`` and must call ``close()`` when done.
    """

    def __init__(
        self,
        client: Optional["JsonRpcLedgerClient"],
        event: str,
        from_block: Optional[int],
        poll_interval: float,
    ) -> None:
        self.client = client
        self.event = event
        self.from_block = from_block
        self.poll_interval = poll_interval
        self.closed = False
        self._queue: "asyncio.Queue[Optional[LedgerEvent]]" = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        self._task = asyncio.get_running_loop().create_task(self._poll())

    async def _poll(self) -> None:
        while not self.closed:
            try:
                latest = await self.client.block_number()
                if self.from_block is None:
                    # Starting block could not be read at subscribe time.
                    self.from_block = latest + 1
                    logger.info("[events] %s resolved start block %d", self.event, self.from_block)
                elif latest >= self.from_block:
                    for event in await self.client.get_logs(self.event, self.from_block, latest):
                        self.push(event)
                    self.from_block = latest + 1
            except Exception as exc:
                logger.warning("[events] %s poll failed: %s", self.event, exc)
            await asyncio.sleep(self.poll_interval)

    def push(self, event: LedgerEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._queue.put_nowait(None)

    async def wait_closed(self) -> None:
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await self._task

    def __aiter__(self) -> "EventSubscription":
        return self

    async def __anext__(self) -> LedgerEvent:
        item = await self._queue.get()
        if item is None:
            raise StopAsyncIteration
        return item


class JsonRpcLedgerClient:
    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 10.0,
        receipt_timeout: float = 60.0,
        receipt_poll_interval: float = 1.0,
        event_poll_interval: float = 4.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self.receipt_poll_interval = receipt_poll_interval
        self.event_poll_interval = event_poll_interval
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._ids = itertools.count(1)

    @property
    def ready(self) -> bool:
        return self._client is not None

    async def connect(self) -> "JsonRpcLedgerClient":
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.rpc_url, timeout=self.timeout, transport=self._transport)
        return self

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JsonRpcLedgerClient":
        return await self.connect()

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        if self._client is None:
            raise LedgerError("ledger client is not connected")
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        response = await self._client.post("", json=payload)
        response.raise_for_status()
        body: Dict[str, Any] = response.json()
        error = body.get("error")
        if error:
            raise LedgerError(error.get("message", "ledger error"), code=error.get("code"), data=error.get("data"))
        return body.get("result")

    async def chain_id(self) -> int:
        return to_int(await self.request("eth_chainId"))

    async def block_number(self) -> int:
        return to_int(await self.request("eth_blockNumber"))

    def build_call(self, function: str, args: Sequence[Any] = (), sender: Optional[str] = None, gas: Optional[int] = None) -> ContractCall:
        return ContractCall(to=self.contract_address, function=function, args=list(args), sender=sender, gas=gas)

    async def call(self, function: str, args: Sequence[Any] = (), sender: Optional[str] = None) -> Any:
        return await self.request("eth_call", [self.build_call(function, args, sender).to_rpc(), "latest"])

    async def send_transaction(self, call: ContractCall) -> str:
        return await self.request("eth_sendTransaction", [call.to_rpc()])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Receipt]:
        raw = await self.request("eth_getTransactionReceipt", [tx_hash])
        if raw is None:
            return None
        return Receipt(
            transaction_hash=raw["transactionHash"],
            status=to_int(raw["status"]),
            block_number=to_int(raw["blockNumber"]),
            revert_reason=raw.get("revertReason"),
        )

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[float] = None) -> Receipt:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.receipt_timeout if timeout is None else timeout)
        while True:
            receipt = await self.get_transaction_receipt(tx_hash)
            if receipt is not None:
                return receipt
            if loop.time() >= deadline:
                raise LedgerTimeout(f"timed out waiting for receipt of {tx_hash}")
            await asyncio.sleep(self.receipt_poll_interval)

    async def get_leaderboard(self) -> Tuple[List[str], List[int]]:
        result = await self.call("getLeaderboard")
        if not isinstance(result, (list, tuple)) or len(result) != 2:
            raise ReadFailure(f"unexpected getLeaderboard result: {result!r}")
        addresses, scores = result
        if len(addresses) != len(scores):
            raise ReadFailure(f"getLeaderboard returned {len(addresses)} addresses and {len(scores)} scores")
        return list(addresses), [to_int(score) for score in scores]

    async def get_my_score(self, account: str) -> int:
        result = await self.call("getMyScore", sender=account)
        high_score = result[0] if isinstance(result, (list, tuple)) else result
        return to_int(high_score)

    async def get_logs(self, event: str, from_block: int, to_block: Optional[int] = None) -> List[LedgerEvent]:
        query: Dict[str, Any] = {"address": self.contract_address, "event": event, "fromBlock": hex(from_block)}
        if to_block is not None:
            query["toBlock"] = hex(to_block)
        raw_logs = await self.request("eth_getLogs", [query]) or []
        return [
            LedgerEvent(event=log.get("event", event), block_number=to_int(log["blockNumber"]), args=log.get("args", {}))
            for log in raw_logs
        ]

    async def subscribe(self, event: str = SCORE_SUBMITTED) -> EventSubscription:
        try:
            from_block: Optional[int] = await self.block_number() + 1
        except (httpx.HTTPError, LedgerError, ValueError) as exc:
            logger.warning("[events] could not read block number for %s, resolving on first poll: %s", event, exc)
            from_block = None
        subscription = EventSubscription(self, event, from_block, self.event_poll_interval)
        subscription.start()
        logger.info("[events] subscribed to %s from block %s", event, from_block)
        return subscription
