import pytest
from fakes import OTHER_PLAYER, PLAYER
from fastapi.testclient import TestClient

from snake_onchain.devchain.server import METHOD_NOT_FOUND, create_app
from snake_onchain.devchain.store import SCORE_SUBMITTED, LedgerStore, Revert


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_high_score_keeps_maximum(store):
    store.submit_transaction(PLAYER, "submitScore", [10])
    store.submit_transaction(PLAYER, "submitScore", [4])
    high, submissions, _ = store.my_score(PLAYER)
    assert high == 10
    assert submissions == 2
    assert store.block_number() == 2


def test_leaderboard_orders_by_score_then_address(store):
    store.submit_transaction(OTHER_PLAYER, "submitScore", [5])
    store.submit_transaction(PLAYER, "submitScore", [5])
    store.submit_transaction("0x00000000000000000000000000000000000000CC", "submitScore", [20])
    addresses, scores = store.leaderboard()
    assert addresses == ["0x00000000000000000000000000000000000000cc", PLAYER, OTHER_PLAYER]
    assert scores == [20, 5, 5]


def test_reverted_transaction_is_mined_with_reason(store):
    tx_hash = store.submit_transaction(PLAYER, "submitScore", [0])
    receipt = store.receipt(tx_hash)
    assert receipt["status"] == "0x0"
    assert receipt["revertReason"] == "Score must be greater than zero"
    assert store.leaderboard() == ([], [])
    assert store.logs(SCORE_SUBMITTED, 0) == []


@pytest.mark.parametrize(
    "function, args",
    [("submitScore", []), ("submitScore", ["many"]), ("setScore", [3]), ("submitScore", [-1])],
)
def test_estimate_rejects_invalid_calls(store, function, args):
    with pytest.raises(Revert):
        store.estimate(PLAYER, function, args)


def test_cooldown_between_submissions():
    clock = FakeClock()
    store = LedgerStore("sqlite:///:memory:", cooldown=60, clock=clock)
    store.submit_transaction(PLAYER, "submitScore", [3])

    clock.now += 30
    with pytest.raises(Revert, match="Cooldown"):
        store.estimate(PLAYER, "submitScore", [4])
    store.estimate(OTHER_PLAYER, "submitScore", [4])

    clock.now += 31
    store.estimate(PLAYER, "submitScore", [4])


def test_logs_filter_by_block_range(store):
    for score in (1, 2, 3):
        store.submit_transaction(PLAYER, "submitScore", [score])
    logs = store.logs(SCORE_SUBMITTED, 2, 2)
    assert len(logs) == 1
    assert logs[0]["blockNumber"] == "0x2"
    assert logs[0]["args"]["score"] == 2
    assert [log["args"]["score"] for log in store.logs(SCORE_SUBMITTED, 2)] == [2, 3]


def test_unknown_player_and_reset(store):
    assert store.my_score(PLAYER) == (0, 0, 0)
    store.submit_transaction(PLAYER, "submitScore", [8])
    store.reset()
    assert store.block_number() == 0
    assert store.leaderboard() == ([], [])


def test_file_database_persists(tmp_path):
    url = f"sqlite:///{tmp_path / 'devchain.db'}"
    LedgerStore(url).submit_transaction(PLAYER, "submitScore", [6])
    assert LedgerStore(url).leaderboard() == ([PLAYER], [6])


def test_rpc_envelope(store):
    with TestClient(create_app(store)) as client:
        ok = client.post("/", json={"jsonrpc": "2.0", "id": 7, "method": "eth_chainId", "params": []}).json()
        assert ok == {"jsonrpc": "2.0", "id": 7, "result": "0x2105"}

        missing = client.post("/", json={"jsonrpc": "2.0", "id": 8, "method": "eth_mine"}).json()
        assert missing["error"]["code"] == METHOD_NOT_FOUND

        bad = client.post("/", json={"jsonrpc": "2.0", "id": 9, "method": "eth_getTransactionReceipt", "params": []}).json()
        assert bad["error"]["code"] == -32602


def test_get_my_score_requires_sender(store):
    with TestClient(create_app(store)) as client:
        body = {"jsonrpc": "2.0", "id": 1, "method": "eth_call", "params": [{"function": "getMyScore"}, "latest"]}
        assert client.post("/", json=body).json()["error"]["code"] == -32602


def test_reset_rpc_clears_state(store):
    store.submit_transaction(PLAYER, "submitScore", [8])
    with TestClient(create_app(store)) as client:
        reply = client.post("/", json={"jsonrpc": "2.0", "id": 3, "method": "devchain_reset", "params": []}).json()
        assert reply["result"] is True

        block = client.post("/", json={"jsonrpc": "2.0", "id": 4, "method": "eth_blockNumber", "params": []}).json()
        assert block["result"] == "0x0"
    assert store.leaderboard() == ([], [])
