from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class Board(BaseModel):
    cols: int
    rows: int


class Point(BaseModel):
    x: int
    y: int


class GameFrame(BaseModel):
    board: Board
    snake: List[Point]
    food: Optional[Point]
    score: int
    state: str
    tick_interval_ms: int


class InputEvent(BaseModel):
    key: Optional[str] = None
    dx: Optional[float] = None
    dy: Optional[float] = None


class LeaderboardEntry(BaseModel):
    account: str
    score: int = Field(..., ge=0)
    rank: int = Field(..., ge=1)


class LeaderboardPage(BaseModel):
    entries: List[LeaderboardEntry]
    page: int
    total_pages: int
    loading: bool = False
    error: Optional[str] = None


class ScoreSubmissionView(BaseModel):
    score: int
    status: str
    message: str
    transaction_id: Optional[str] = None
    error_kind: Optional[str] = None
    on_chain_high_score: Optional[int] = None
    verification_exhausted: bool = False
    history: List[str] = []


class ContractCall(BaseModel):
    to: str
    function: str
    args: List[Any] = []
    sender: Optional[str] = Field(None, alias="from")
    gas: Optional[int] = None

    model_config = {"populate_by_name": True}

    def to_rpc(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"to": self.to, "function": self.function, "args": list(self.args)}
        if self.sender:
            payload["from"] = self.sender
        if self.gas is not None:
            payload["gas"] = hex(self.gas)
        return payload


class Receipt(BaseModel):
    transaction_hash: str
    status: int
    block_number: int
    revert_reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class LedgerEvent(BaseModel):
    event: str
    block_number: int
    args: Dict[str, Any] = {}
