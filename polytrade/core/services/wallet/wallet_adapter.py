"""
Wallet Adapter - uniform capability surface over the wallet backends
The trading core codes against this interface and never branches on backend kind
"""
import inspect
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Union

from polytrade.core.models.trading_models import BackendKind, WalletConnection
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

AccountsChangedCallback = Callable[[List[str]], Any]
DisconnectCallback = Callable[[], Any]


class WalletAdapter(ABC):
    """
    Capability interface implemented once per wallet backend

    Signing calls may suspend indefinitely while the user acts inside an
    external wallet app; callers apply their own timeout/guidance policy.
    """

    backend_kind: BackendKind

    def __init__(self):
        self._accounts_changed_callbacks: List[AccountsChangedCallback] = []
        self._disconnect_callbacks: List[DisconnectCallback] = []

    @abstractmethod
    async def get_address(self) -> str:
        """Owner (signer) address of the connected wallet"""

    @abstractmethod
    async def get_network(self) -> int:
        """Chain id the wallet is currently on"""

    @abstractmethod
    async def ensure_network(self, chain_id: int = POLYGON_CHAIN_ID) -> None:
        """Switch (or add) the target chain; raises NetworkSwitchError on failure"""

    @abstractmethod
    async def sign_message(self, message: Union[str, bytes]) -> str:
        """Personal-sign a message, returning the 0x-prefixed signature"""

    @abstractmethod
    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        value: Dict[str, Any],
    ) -> str:
        """EIP-712 sign; `types` excludes EIP712Domain"""

    @abstractmethod
    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        """Send a transaction from the owner address, returning its hash"""

    @property
    def can_sign(self) -> bool:
        return True

    def on_accounts_changed(self, callback: AccountsChangedCallback) -> None:
        self._accounts_changed_callbacks.append(callback)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        self._disconnect_callbacks.append(callback)

    async def _emit_accounts_changed(self, accounts: List[str]) -> None:
        for callback in list(self._accounts_changed_callbacks):
            await _maybe_await(callback(accounts))

    async def _emit_disconnect(self) -> None:
        for callback in list(self._disconnect_callbacks):
            await _maybe_await(callback())

    async def connection(self) -> WalletConnection:
        """Snapshot of the active connection"""
        return WalletConnection(
            owner_address=await self.get_address(),
            backend_kind=self.backend_kind,
            network=await self.get_network(),
            can_sign=self.can_sign,
        )


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


def build_eip712_payload(
    domain: Dict[str, Any],
    types: Dict[str, List[Dict[str, str]]],
    value: Dict[str, Any],
) -> Dict[str, Any]:
    """Full eth_signTypedData_v4 payload including the EIP712Domain type"""
    domain_fields = [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ]
    primary_type = next(iter(types))
    return {
        "types": {
            "EIP712Domain": [field for field in domain_fields if field["name"] in domain],
            **types,
        },
        "domain": domain,
        "primaryType": primary_type,
        "message": value,
    }
