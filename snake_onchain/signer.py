import logging
from typing import Optional, Protocol

from .errors import LedgerError
from .ledger import JsonRpcLedgerClient, to_int
from .models import ContractCall

logger = logging.getLogger(__name__)


class Signer(Protocol):
    @property
    def account(self) -> Optional[str]: ...

    def is_connected(self) -> bool: ...

    async def chain_id(self) -> int: ...

    async def switch_network(self, chain_id: int) -> None: ...

    async def send_transaction(self, call: ContractCall) -> str: ...


class RpcSigner:
    """Signs through an account the RPC node manages (``eth_sendTransaction``).

    Key custody stays with the node; this only forwards the request.
    """

    def __init__(self, client: JsonRpcLedgerClient, account: Optional[str]) -> None:
        self.client = client
        self._account = account

    @property
    def account(self) -> Optional[str]:
        return self._account

    def is_connected(self) -> bool:
        return bool(self._account) and self.client.ready

    async def chain_id(self) -> int:
        return await self.client.chain_id()

    async def switch_network(self, chain_id: int) -> None:
        await self.client.request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])

    async def send_transaction(self, call: ContractCall) -> str:
        if not self._account:
            raise LedgerError("no account connected")
        call = call.model_copy(update={"sender": self._account})
        return await self.client.send_transaction(call)


async def ensure_network(signer: Signer, chain_id: int) -> None:
    current = to_int(await signer.chain_id())
    if current == chain_id:
        return
    logger.info("[signer] switching network %d -> %d", current, chain_id)
    await signer.switch_network(chain_id)
