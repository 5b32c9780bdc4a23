import logging
from typing import Any, Callable, Dict, List, Optional, Union

from fastapi import FastAPI
from pydantic import BaseModel

from ..config import BASE_CHAIN_ID, Settings
from .store import LedgerStore, Revert

logger = logging.getLogger(__name__)

METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
EXECUTION_REVERTED = 3
UNRECOGNIZED_CHAIN = 4902


class RpcRequest(BaseModel):
    jsonrpc: str = "2.0"
    id: Union[int, str, None] = None
    method: str
    params: List[Any] = []


class RpcError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


def _first_param(params: List[Any]) -> Any:
    if not params:
        raise RpcError(INVALID_PARAMS, "missing params")
    return params[0]


def _parse_block(value: Any, default: int) -> int:
    if value is None or value == "latest":
        return default
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def create_app(store: Optional[LedgerStore] = None, chain_id: int = BASE_CHAIN_ID) -> FastAPI:
    app = FastAPI(
        title="Snake devchain",
        version="1.0.0",
        description="Local JSON-RPC ledger hosting the score contract for development and tests.",
    )
    app.state.store = store or LedgerStore()
    app.state.chain_id = chain_id

    def ledger() -> LedgerStore:
        return app.state.store

    def eth_chain_id(params: List[Any]) -> str:
        return hex(app.state.chain_id)

    def eth_block_number(params: List[Any]) -> str:
        return hex(ledger().block_number())

    def eth_call(params: List[Any]) -> Any:
        call = _first_param(params)
        function = call.get("function")
        if function == "getLeaderboard":
            addresses, scores = ledger().leaderboard()
            return [addresses, scores]
        if function == "getMyScore":
            sender = call.get("from")
            if not sender:
                raise RpcError(INVALID_PARAMS, "getMyScore requires a from address")
            return list(ledger().my_score(sender))
        raise RpcError(EXECUTION_REVERTED, f"execution reverted: unknown function {function}")

    def eth_send_transaction(params: List[Any]) -> str:
        tx = _first_param(params)
        sender = tx.get("from")
        if not sender:
            raise RpcError(INVALID_PARAMS, "missing from address")
        function, args = tx.get("function", ""), tx.get("args", [])
        # Without an explicit gas limit the node estimates first and refuses to broadcast a revert.
        if tx.get("gas") is None:
            try:
                ledger().estimate(sender, function, args)
            except Revert as exc:
                raise RpcError(EXECUTION_REVERTED, f"execution reverted: {exc}") from exc
        return ledger().submit_transaction(sender, function, args)

    def eth_get_transaction_receipt(params: List[Any]) -> Optional[Dict[str, Any]]:
        return ledger().receipt(_first_param(params))

    def eth_get_logs(params: List[Any]) -> List[Dict[str, Any]]:
        query = _first_param(params)
        latest = ledger().block_number()
        from_block = _parse_block(query.get("fromBlock"), latest)
        to_block = _parse_block(query.get("toBlock"), latest)
        return ledger().logs(query.get("event", "ScoreSubmitted"), from_block, to_block)

    def wallet_switch_chain(params: List[Any]) -> None:
        requested = _parse_block(_first_param(params).get("chainId"), 0)
        if requested != app.state.chain_id:
            raise RpcError(UNRECOGNIZED_CHAIN, f"Unrecognized chain ID {hex(requested)}")
        return None

    def devchain_reset(params: List[Any]) -> bool:
        ledger().reset()
        logger.info("[rpc] devchain state cleared")
        return True

    handlers: Dict[str, Callable[[List[Any]], Any]] = {
        "eth_chainId": eth_chain_id,
        "eth_blockNumber": eth_block_number,
        "eth_call": eth_call,
        "eth_sendTransaction": eth_send_transaction,
        "eth_getTransactionReceipt": eth_get_transaction_receipt,
        "eth_getLogs": eth_get_logs,
        "wallet_switchEthereumChain": wallet_switch_chain,
        "devchain_reset": devchain_reset,
    }

    @app.post("/")
    async def rpc(request: RpcRequest) -> Dict[str, Any]:
        handler = handlers.get(request.method)
        try:
            if handler is None:
                raise RpcError(METHOD_NOT_FOUND, f"method {request.method} not found")
            result = handler(request.params)
        except RpcError as exc:
            logger.info("[rpc] %s -> error %d %s", request.method, exc.code, exc.message)
            return {"jsonrpc": "2.0", "id": request.id, "error": {"code": exc.code, "message": exc.message}}
        except (AttributeError, TypeError, ValueError) as exc:
            return {"jsonrpc": "2.0", "id": request.id, "error": {"code": INVALID_PARAMS, "message": str(exc)}}
        return {"jsonrpc": "2.0", "id": request.id, "result": result}

    return app


settings = Settings.from_env()
app = create_app(LedgerStore(settings.devchain_db_url, cooldown=settings.devchain_cooldown), chain_id=settings.chain_id)
