import httpx
import pytest
from fakes import PLAYER, TX_HASH, FakeLedger, FakeSigner, receipt

from snake_onchain.config import Settings
from snake_onchain.errors import ErrorKind, LedgerError, LedgerTimeout, SubmissionPrecondition
from snake_onchain.submitter import UNRESOLVED_MESSAGE, ScoreSubmitter, SubmissionStatus

S = SubmissionStatus


@pytest.fixture()
def submitter():
    return ScoreSubmitter(Settings(verify_delay=0, readback_delay=0))


def record(submitter):
    seen = []
    submitter.add_status_listener(lambda submission: seen.append(submission.status))
    txs = []
    submitter.add_transaction_listener(txs.append)
    return seen, txs


@pytest.mark.asyncio
async def test_zero_score_fails_fast_without_network(submitter):
    ledger, signer = FakeLedger(), FakeSigner()
    with pytest.raises(SubmissionPrecondition):
        await submitter.submit(0, signer, ledger)
    assert ledger.requests == []
    assert signer.calls == []
    assert submitter.current is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "signer, ledger",
    [
        (None, FakeLedger()),
        (FakeSigner(connected=False), FakeLedger()),
        (FakeSigner(), FakeLedger(ready=False)),
    ],
)
async def test_missing_signer_or_client_fails_fast(submitter, signer, ledger):
    with pytest.raises(SubmissionPrecondition):
        await submitter.submit(5, signer, ledger)
    assert ledger.requests == []
    assert submitter.current is None


@pytest.mark.asyncio
async def test_user_rejection_never_reaches_pending(submitter):
    seen, txs = record(submitter)
    ledger = FakeLedger()
    signer = FakeSigner(error=LedgerError("User rejected the request.", code=4001))

    submission = await submitter.submit(15, signer, ledger)

    assert submission.status is S.FAILED
    assert submission.error_kind is ErrorKind.USER_REJECTED
    assert submission.history == [S.PREPARING, S.AWAITING_SIGNATURE, S.FAILED]
    assert seen == [S.PREPARING, S.AWAITING_SIGNATURE, S.FAILED]
    assert submission.message == "Transaction rejected"
    assert ledger.requests == []
    assert txs == []


@pytest.mark.asyncio
async def test_confirmed_submission_reads_back_high_score(submitter):
    seen, txs = record(submitter)
    ledger = FakeLedger(wait_result=receipt(1), high_score=42)
    signer = FakeSigner()

    submission = await submitter.submit(15, signer, ledger)

    assert submission.status is S.CONFIRMED
    assert submission.history == [S.PREPARING, S.AWAITING_SIGNATURE, S.PENDING, S.CONFIRMED]
    assert submission.transaction_id == TX_HASH
    assert submission.on_chain_high_score == 42
    assert ("get_my_score", PLAYER) in ledger.requests
    assert txs == [TX_HASH]

    call = signer.calls[0]
    assert call.function == "submitScore"
    assert call.args == [15]
    assert call.gas == 200_000
    assert submitter.current is submission


@pytest.mark.asyncio
async def test_read_back_failure_does_not_affect_confirmation(submitter):
    ledger = FakeLedger(wait_result=receipt(1), score_error=httpx.ConnectError("down"))

    submission = await submitter.submit(3, FakeSigner(), ledger)

    assert submission.status is S.CONFIRMED
    assert submission.on_chain_high_score is None
    assert submission.error_kind is None


@pytest.mark.asyncio
async def test_failed_receipt_is_ledger_rejected(submitter):
    seen, txs = record(submitter)
    ledger = FakeLedger(wait_result=receipt(0))

    submission = await submitter.submit(3, FakeSigner(), ledger)

    assert submission.status is S.FAILED
    assert submission.error_kind is ErrorKind.LEDGER_REJECTED
    assert ("get_my_score", PLAYER) not in ledger.requests
    assert txs == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, kind",
    [
        (LedgerError("insufficient funds for gas * price + value", code=-32000), ErrorKind.INSUFFICIENT_FUNDS),
        (LedgerError("execution reverted: Cooldown active", code=3), ErrorKind.COOLDOWN_ACTIVE),
        (httpx.ConnectError("connection refused"), ErrorKind.NETWORK_UNAVAILABLE),
        (RuntimeError("boom"), ErrorKind.UNKNOWN),
    ],
)
async def test_broadcast_failures_are_classified(submitter, error, kind):
    submission = await submitter.submit(3, FakeSigner(error=error), FakeLedger())
    assert submission.status is S.FAILED
    assert submission.error_kind is kind
    assert S.PENDING not in submission.history


@pytest.mark.asyncio
async def test_failed_wait_falls_back_to_single_verification_poll(submitter):
    seen, txs = record(submitter)
    ledger = FakeLedger(wait_error=LedgerTimeout("timed out"), poll_result=receipt(1), high_score=8)

    submission = await submitter.submit(8, FakeSigner(), ledger)
    assert submission.status is S.VERIFYING
    assert submission.message == "Transaction submitted! Verifying..."
    assert txs == [TX_HASH]

    await submitter.wait_for_verification()

    assert submission.status is S.CONFIRMED
    assert submission.history == [S.PREPARING, S.AWAITING_SIGNATURE, S.PENDING, S.VERIFYING, S.CONFIRMED]
    assert [name for name, _ in ledger.requests].count("get_transaction_receipt") == 1
    assert submission.on_chain_high_score == 8
    assert txs == [TX_HASH]


@pytest.mark.asyncio
async def test_verification_poll_can_report_failure(submitter):
    ledger = FakeLedger(wait_error=httpx.ReadTimeout("slow"), poll_result=receipt(0))

    submission = await submitter.submit(8, FakeSigner(), ledger)
    await submitter.wait_for_verification()

    assert submission.status is S.FAILED
    assert submission.error_kind is ErrorKind.LEDGER_REJECTED


@pytest.mark.asyncio
@pytest.mark.parametrize("poll_error", [None, httpx.ConnectError("down")])
async def test_unresolved_verification_stays_verifying(submitter, poll_error):
    ledger = FakeLedger(wait_error=LedgerTimeout("timed out"), poll_result=None, poll_error=poll_error)

    submission = await submitter.submit(8, FakeSigner(), ledger)
    await submitter.wait_for_verification()

    assert submission.status is S.VERIFYING
    assert submission.verification_exhausted
    assert submission.message == UNRESOLVED_MESSAGE
    assert [name for name, _ in ledger.requests].count("get_transaction_receipt") == 1


@pytest.mark.asyncio
async def test_signer_is_moved_to_configured_network(submitter):
    signer = FakeSigner(chain=1)
    await submitter.submit(2, signer, FakeLedger(wait_result=receipt(1)))
    assert signer.switched == [8453]


@pytest.mark.asyncio
async def test_reset_leaves_in_flight_submission_alone(submitter):
    ledger = FakeLedger(wait_error=LedgerTimeout("timed out"), poll_result=receipt(1))

    submission = await submitter.submit(4, FakeSigner(), ledger)
    submitter.reset()
    await submitter.wait_for_verification()

    assert submitter.current is None
    assert submission.status is S.CONFIRMED


@pytest.mark.asyncio
async def test_view_serialises_submission(submitter):
    submission = await submitter.submit(6, FakeSigner(), FakeLedger(wait_result=receipt(1), high_score=6))
    view = submission.view()
    assert view.status == "confirmed"
    assert view.transaction_id == TX_HASH
    assert view.history == ["preparing", "awaiting_signature", "pending", "confirmed"]
    assert view.on_chain_high_score == 6


@pytest.mark.asyncio
async def test_close_cancels_every_pending_verification():
    submitter = ScoreSubmitter(Settings(verify_delay=60, readback_delay=0))
    ledger = FakeLedger(wait_error=LedgerTimeout("timed out"), poll_result=receipt(1))

    first = await submitter.submit(3, FakeSigner(), ledger)
    second = await submitter.submit(5, FakeSigner(tx_hash="0x" + "cd" * 32), ledger)
    tasks = list(submitter.verification_tasks)
    assert len(tasks) == 2

    await submitter.close()

    assert all(task.cancelled() for task in tasks)
    assert submitter.verification_tasks == set()
    assert first.status is S.VERIFYING
    assert second.status is S.VERIFYING
    assert ("get_transaction_receipt", TX_HASH) not in ledger.requests
