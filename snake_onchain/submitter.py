"""Score submission state machine.

NONE -> PREPARING -> AWAITING_SIGNATURE -> PENDING -> CONFIRMED | FAILED

When waiting for the receipt fails after broadcast, the submission moves to
VERIFYING instead and the receipt is polled once more after ``verify_delay``.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

from .config import Settings
from .errors import ErrorKind, SubmissionPrecondition, classify_error
from .ledger import LedgerEndpoint
from .models import Receipt, ScoreSubmissionView
from .signer import Signer, ensure_network

logger = logging.getLogger(__name__)


class SubmissionStatus(str, enum.Enum):
    NONE = "none"
    PREPARING = "preparing"
    AWAITING_SIGNATURE = "awaiting_signature"
    PENDING = "pending"
    VERIFYING = "verifying"
    CONFIRMED = "confirmed"
    FAILED = "failed"


STATUS_MESSAGES = {
    SubmissionStatus.NONE: "",
    SubmissionStatus.PREPARING: "Preparing transaction...",
    SubmissionStatus.AWAITING_SIGNATURE: "Sending transaction...",
    SubmissionStatus.PENDING: "Waiting for confirmation...",
    SubmissionStatus.VERIFYING: "Transaction submitted! Verifying...",
    SubmissionStatus.CONFIRMED: "Score submitted successfully!",
    SubmissionStatus.FAILED: "Transaction failed",
}

ERROR_MESSAGES = {
    ErrorKind.USER_REJECTED: "Transaction rejected",
    ErrorKind.INSUFFICIENT_FUNDS: "Insufficient funds for gas",
    ErrorKind.COOLDOWN_ACTIVE: "Cooldown active, try again later",
    ErrorKind.LEDGER_REJECTED: "Transaction failed",
    ErrorKind.NETWORK_UNAVAILABLE: "Network unavailable. Try again.",
    ErrorKind.UNKNOWN: "Transaction failed. Try again.",
}

UNRESOLVED_MESSAGE = "Transaction submitted, confirmation still unknown"

TERMINAL_STATUSES = frozenset({SubmissionStatus.CONFIRMED, SubmissionStatus.FAILED})


@dataclass
class ScoreSubmission:
    score: int
    status: SubmissionStatus = SubmissionStatus.NONE
    transaction_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    on_chain_high_score: Optional[int] = None
    verification_exhausted: bool = False
    history: List[SubmissionStatus] = field(default_factory=list)

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def view(self) -> ScoreSubmissionView:
        return ScoreSubmissionView(
            score=self.score,
            status=self.status.value,
            message=self.message,
            transaction_id=self.transaction_id,
            error_kind=self.error_kind.value if self.error_kind else None,
            on_chain_high_score=self.on_chain_high_score,
            verification_exhausted=self.verification_exhausted,
            history=[status.value for status in self.history],
        )


class ScoreSubmitter:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        ledger: Optional[LedgerEndpoint] = None,
        signer: Optional[Signer] = None,
    ) -> None:
        settings = settings or Settings()
        self.ledger = ledger
        self.signer = signer
        self.chain_id = settings.chain_id
        self.gas_limit = settings.gas_limit
        self.verify_delay = settings.verify_delay
        self.readback_delay = settings.readback_delay
        self.current: Optional[ScoreSubmission] = None
        self.verification_tasks: Set[asyncio.Task] = set()
        self._status_listeners: List[Callable[[ScoreSubmission], None]] = []
        self._transaction_listeners: List[Callable[[str], None]] = []

    def add_status_listener(self, callback: Callable[[ScoreSubmission], None]) -> None:
        self._status_listeners.append(callback)

    def add_transaction_listener(self, callback: Callable[[str], None]) -> None:
        self._transaction_listeners.append(callback)

    def reset(self) -> None:
        # In-flight work keeps resolving on its own record; only the pointer moves.
        self.current = None

    def _notify(self, submission: ScoreSubmission) -> None:
        for callback in self._status_listeners:
            callback(submission)

    def _transition(self, submission: ScoreSubmission, status: SubmissionStatus, error_kind: Optional[ErrorKind] = None) -> None:
        submission.status = status
        submission.error_kind = error_kind
        submission.history.append(status)
        submission.message = ERROR_MESSAGES[error_kind] if error_kind else STATUS_MESSAGES[status]
        logger.info(
            "[submit] score=%d status=%s tx=%s error=%s",
            submission.score,
            status.value,
            submission.transaction_id,
            error_kind.value if error_kind else None,
        )
        self._notify(submission)

    def _publish_transaction(self, submission: ScoreSubmission) -> None:
        for callback in self._transaction_listeners:
            callback(submission.transaction_id)

    async def submit(
        self,
        score: int,
        signer: Optional[Signer] = None,
        ledger: Optional[LedgerEndpoint] = None,
    ) -> ScoreSubmission:
        signer = signer or self.signer
        ledger = ledger or self.ledger
        if score <= 0:
            raise SubmissionPrecondition("Play first before submitting!")
        if signer is None or not signer.is_connected():
            raise SubmissionPrecondition("No wallet connected")
        if ledger is None or not ledger.ready:
            raise SubmissionPrecondition("Ledger client is not initialized")

        submission = ScoreSubmission(score=score)
        self.current = submission

        self._transition(submission, SubmissionStatus.PREPARING)
        call = ledger.build_call("submitScore", [score], gas=self.gas_limit)

        self._transition(submission, SubmissionStatus.AWAITING_SIGNATURE)
        try:
            await ensure_network(signer, self.chain_id)
            tx_hash = await signer.send_transaction(call)
        except Exception as exc:
            kind = classify_error(exc)
            logger.warning("[submit] broadcast failed (%s): %s", kind.value, exc)
            self._transition(submission, SubmissionStatus.FAILED, kind)
            return submission

        submission.transaction_id = tx_hash
        self._transition(submission, SubmissionStatus.PENDING)
        try:
            receipt = await ledger.wait_for_receipt(tx_hash)
        except Exception as exc:
            # The wait failing says nothing about the transaction itself.
            logger.warning("[submit] waiting for %s failed: %s", tx_hash, exc)
            self._transition(submission, SubmissionStatus.VERIFYING)
            self._publish_transaction(submission)
            task = asyncio.get_running_loop().create_task(self._verify_later(submission, ledger, signer.account))
            self.verification_tasks.add(task)
            task.add_done_callback(self.verification_tasks.discard)
            return submission

        await self._settle(submission, receipt, ledger, signer.account)
        return submission

    async def _settle(self, submission: ScoreSubmission, receipt: Receipt, ledger: LedgerEndpoint, account: Optional[str]) -> None:
        if not receipt.succeeded:
            if receipt.revert_reason:
                logger.info("[submit] %s reverted: %s", receipt.transaction_hash, receipt.revert_reason)
            self._transition(submission, SubmissionStatus.FAILED, ErrorKind.LEDGER_REJECTED)
            return

        already_published = SubmissionStatus.VERIFYING in submission.history
        self._transition(submission, SubmissionStatus.CONFIRMED)
        if not already_published:
            self._publish_transaction(submission)
        await self._read_back(submission, ledger, account)

    async def _read_back(self, submission: ScoreSubmission, ledger: LedgerEndpoint, account: Optional[str]) -> None:
        if not account:
            return
        await asyncio.sleep(self.readback_delay)
        try:
            submission.on_chain_high_score = await ledger.get_my_score(account)
        except Exception as exc:
            logger.warning("[submit] could not read back high score: %s", exc)
            return
        logger.info("[submit] on-chain high score for %s is %d", account, submission.on_chain_high_score)
        self._notify(submission)

    async def _verify_later(self, submission: ScoreSubmission, ledger: LedgerEndpoint, account: Optional[str]) -> None:
        await asyncio.sleep(self.verify_delay)
        try:
            receipt = await ledger.get_transaction_receipt(submission.transaction_id)
        except Exception as exc:
            logger.warning("[submit] could not verify %s: %s", submission.transaction_id, exc)
            receipt = None
        if receipt is None:
            # Single poll only; the submission stays VERIFYING with this flag set.
            submission.verification_exhausted = True
            submission.message = UNRESOLVED_MESSAGE
            logger.warning("[submit] %s unresolved after verification poll", submission.transaction_id)
            self._notify(submission)
            return
        await self._settle(submission, receipt, ledger, account)

    async def wait_for_verification(self) -> None:
        await asyncio.gather(*list(self.verification_tasks))

    async def close(self) -> None:
        pending = list(self.verification_tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self.verification_tasks.clear()
