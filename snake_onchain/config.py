import os
from typing import Optional

from pydantic import BaseModel, Field

# The adapter sends logical call objects; a real chain needs an ABI-encoding node or proxy here.
DEVCHAIN_RPC_URL = "http://localhost:8545"
BASE_CHAIN_ID = 8453
SCORE_CONTRACT_ADDRESS = "0xcC8E9a9CeBF3b3a6dd21BD79A7756E3d5f4C9061"


class GameConfig(BaseModel):
    cols: int = Field(25, ge=3)
    rows: int = Field(25, ge=1)
    start_interval_ms: int = Field(150, ge=1)
    interval_step_ms: int = Field(3, ge=0)
    min_interval_ms: int = Field(80, ge=1)
    max_food_attempts: int = Field(500, ge=1)
    swipe_dead_zone: float = Field(30.0, ge=0)


class Settings(BaseModel):
    rpc_url: str = DEVCHAIN_RPC_URL
    chain_id: int = BASE_CHAIN_ID
    contract_address: str = SCORE_CONTRACT_ADDRESS
    account: Optional[str] = None

    rpc_timeout: float = 10.0
    receipt_timeout: float = 60.0
    receipt_poll_interval: float = 1.0
    gas_limit: int = 200_000

    # seconds
    verify_delay: float = 5.0
    readback_delay: float = 2.0
    tx_settle_delay: float = 3.0
    event_settle_delay: float = 2.0
    event_poll_interval: float = 4.0

    page_size: int = Field(10, ge=1)

    devchain_db_url: str = "sqlite:///:memory:"
    devchain_cooldown: float = 0.0

    game: GameConfig = Field(default_factory=GameConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            rpc_url=os.getenv("LEDGER_RPC_URL", DEVCHAIN_RPC_URL),
            chain_id=int(os.getenv("LEDGER_CHAIN_ID", str(BASE_CHAIN_ID))),
            contract_address=os.getenv("SCORE_CONTRACT_ADDRESS", SCORE_CONTRACT_ADDRESS),
            account=os.getenv("SNAKE_ACCOUNT") or None,
            rpc_timeout=float(os.getenv("RPC_TIMEOUT", "10")),
            receipt_timeout=float(os.getenv("RECEIPT_TIMEOUT", "60")),
            verify_delay=float(os.getenv("VERIFY_DELAY", "5")),
            readback_delay=float(os.getenv("READBACK_DELAY", "2")),
            tx_settle_delay=float(os.getenv("TX_SETTLE_DELAY", "3")),
            event_settle_delay=float(os.getenv("EVENT_SETTLE_DELAY", "2")),
            event_poll_interval=float(os.getenv("EVENT_POLL_INTERVAL", "4")),
            devchain_db_url=os.getenv("DEVCHAIN_DB_URL", "sqlite:///:memory:"),
            devchain_cooldown=float(os.getenv("DEVCHAIN_COOLDOWN", "0")),
        )
