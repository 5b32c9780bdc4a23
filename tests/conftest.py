import httpx
import pytest
import pytest_asyncio
from fakes import CONTRACT

from snake_onchain.config import Settings
from snake_onchain.devchain.server import create_app as create_devchain
from snake_onchain.devchain.store import LedgerStore
from snake_onchain.ledger import JsonRpcLedgerClient


@pytest.fixture()
def settings():
    return Settings(
        contract_address=CONTRACT,
        verify_delay=0,
        readback_delay=0,
        tx_settle_delay=0,
        event_settle_delay=0,
        event_poll_interval=0.01,
        receipt_poll_interval=0.01,
        receipt_timeout=1.0,
    )


@pytest.fixture()
def store():
    return LedgerStore("sqlite:///:memory:")


@pytest.fixture()
def devchain(store, settings):
    return create_devchain(store, chain_id=settings.chain_id)


def make_ledger_client(devchain_app, settings: Settings) -> JsonRpcLedgerClient:
    return JsonRpcLedgerClient(
        "http://devchain",
        settings.contract_address,
        receipt_timeout=settings.receipt_timeout,
        receipt_poll_interval=settings.receipt_poll_interval,
        event_poll_interval=settings.event_poll_interval,
        transport=httpx.ASGITransport(app=devchain_app),
    )


@pytest_asyncio.fixture
async def ledger(devchain, settings):
    async with make_ledger_client(devchain, settings) as client:
        yield client
