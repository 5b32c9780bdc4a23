import asyncio
import os
from typing import Any, Dict, Optional

import httpx

from .config import DEVCHAIN_RPC_URL, SCORE_CONTRACT_ADDRESS
from .errors import SnakeOnChainError
from .leaderboard import build_entries
from .ledger import JsonRpcLedgerClient

RPC_URL = os.getenv("LEDGER_RPC_URL", DEVCHAIN_RPC_URL)
CONTRACT_ADDRESS = os.getenv("SCORE_CONTRACT_ADDRESS", SCORE_CONTRACT_ADDRESS)


async def run_checks(client: JsonRpcLedgerClient, account: Optional[str] = None) -> Dict[str, Any]:
    summary: Dict[str, Any] = {}
    try:
        print("Reading chain id...")
        summary["chain_id"] = await client.chain_id()

        print("Reading block number...")
        summary["block_number"] = await client.block_number()

        print("Checking leaderboard...")
        addresses, scores = await client.get_leaderboard()
        summary["players"] = len(build_entries(addresses, scores))

        if account:
            print(f"Reading high score for {account}...")
            summary["high_score"] = await client.get_my_score(account)
    except (httpx.HTTPError, SnakeOnChainError) as exc:
        raise RuntimeError(f"ledger check failed at {client.rpc_url}: {exc}") from exc
    return summary


async def main() -> None:
    account = os.getenv("SNAKE_ACCOUNT") or None
    print(f"Using RPC URL: {RPC_URL}")
    async with JsonRpcLedgerClient(RPC_URL, CONTRACT_ADDRESS) as client:
        summary = await run_checks(client, account)
    for key, value in summary.items():
        print(f"{key}: {value}")
    print("Ledger verification completed successfully.")


if __name__ == "__main__":
    asyncio.run(main())
