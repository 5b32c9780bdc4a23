import enum
from typing import Any, Optional

import httpx


class ErrorKind(str, enum.Enum):
    USER_REJECTED = "user_rejected"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COOLDOWN_ACTIVE = "cooldown_active"
    LEDGER_REJECTED = "ledger_rejected"
    NETWORK_UNAVAILABLE = "network_unavailable"
    UNKNOWN = "unknown"


class SnakeOnChainError(Exception):
    pass


class SubmissionPrecondition(SnakeOnChainError):
    """Raised before any network call when a submission cannot start."""


class ReadFailure(SnakeOnChainError):
    pass


class LedgerError(SnakeOnChainError):
    def __init__(self, message: str, code: Optional[int] = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class LedgerTimeout(LedgerError):
    pass


USER_REJECTED_CODE = 4001

_USER_REJECTED_PATTERNS = ("user rejected", "user denied", "rejected by user", "action_rejected")
_INSUFFICIENT_FUNDS_PATTERNS = ("insufficient funds",)
_COOLDOWN_PATTERNS = ("cooldown", "too soon", "wait before submitting")
_REVERT_PATTERNS = ("execution reverted", "revert")


def classify_error(exc: BaseException) -> ErrorKind:
    """Map a signer/ledger failure onto the user-facing error taxonomy."""
    code = getattr(exc, "code", None)
    if code == USER_REJECTED_CODE:
        return ErrorKind.USER_REJECTED

    message = str(getattr(exc, "message", None) or exc).lower()
    if any(pattern in message for pattern in _USER_REJECTED_PATTERNS):
        return ErrorKind.USER_REJECTED
    if any(pattern in message for pattern in _INSUFFICIENT_FUNDS_PATTERNS):
        return ErrorKind.INSUFFICIENT_FUNDS
    if any(pattern in message for pattern in _COOLDOWN_PATTERNS):
        return ErrorKind.COOLDOWN_ACTIVE
    if any(pattern in message for pattern in _REVERT_PATTERNS):
        return ErrorKind.LEDGER_REJECTED
    if isinstance(exc, httpx.TransportError):
        return ErrorKind.NETWORK_UNAVAILABLE
    return ErrorKind.UNKNOWN
