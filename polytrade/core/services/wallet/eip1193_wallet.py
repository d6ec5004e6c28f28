"""
EIP-1193 wallet backends (browser extension, wallet-connect relay, mobile wallet)
All three talk to an injected provider bridge; they differ in network handling
"""
import json
from typing import Any, Dict, List, Optional, Protocol, Union

from eth_utils import to_hex

from polytrade.core.exceptions import (
    NetworkSwitchError,
    SigningRejectedError,
    WalletNotConnectedError,
)
from polytrade.core.models.trading_models import BackendKind
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter, build_eip712_payload
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

USER_REJECTED = 4001
UNRECOGNIZED_CHAIN = 4902

POLYGON_CHAIN_PARAMS = {
    "chainId": hex(POLYGON_CHAIN_ID),
    "chainName": "Polygon Mainnet",
    "nativeCurrency": {"name": "POL", "symbol": "POL", "decimals": 18},
    "rpcUrls": ["https://polygon-rpc.com"],
    "blockExplorerUrls": ["https://polygonscan.com"],
}


class ProviderRpcError(Exception):
    """Error raised by an EIP-1193 provider bridge"""

    def __init__(self, code: int, message: str = ""):
        super().__init__(message or f"Provider error {code}")
        self.code = code


class Eip1193Provider(Protocol):
    """Request/event bridge to a wallet living outside this process"""

    async def request(self, method: str, params: Optional[list] = None) -> Any:
        ...

    def on(self, event: str, handler: Any) -> None:
        ...


class Eip1193WalletAdapter(WalletAdapter):
    """Shared EIP-1193 behaviour"""

    backend_kind: BackendKind

    def __init__(self, provider: Eip1193Provider):
        super().__init__()
        self.provider = provider
        self._address: Optional[str] = None
        provider.on("accountsChanged", self._handle_accounts_changed)
        provider.on("disconnect", self._handle_disconnect)

    async def _request(self, method: str, params: Optional[list] = None) -> Any:
        try:
            return await self.provider.request(method, params or [])
        except ProviderRpcError as e:
            if e.code == USER_REJECTED:
                raise SigningRejectedError(f"User rejected {method}") from e
            raise

    async def _handle_accounts_changed(self, accounts: List[str]) -> None:
        self._address = accounts[0] if accounts else None
        logger.info(f"👛 {self.backend_kind.value} accounts changed: {accounts}")
        await self._emit_accounts_changed(accounts)

    async def _handle_disconnect(self, *_: Any) -> None:
        self._address = None
        logger.info(f"🔌 {self.backend_kind.value} wallet disconnected")
        await self._emit_disconnect()

    async def get_address(self) -> str:
        if self._address is None:
            accounts = await self._request("eth_accounts")
            if not accounts:
                raise WalletNotConnectedError(f"No account connected in {self.backend_kind.value} wallet")
            self._address = accounts[0]
        return self._address

    async def get_network(self) -> int:
        chain_id = await self._request("eth_chainId")
        return int(chain_id, 16) if isinstance(chain_id, str) else int(chain_id)

    async def _switch_chain(self, chain_id: int) -> None:
        await self._request("wallet_switchEthereumChain", [{"chainId": hex(chain_id)}])

    async def ensure_network(self, chain_id: int = POLYGON_CHAIN_ID) -> None:
        if await self.get_network() == chain_id:
            return
        try:
            await self._switch_chain(chain_id)
        except SigningRejectedError as e:
            raise NetworkSwitchError("Network switch rejected in wallet") from e
        except ProviderRpcError as e:
            raise NetworkSwitchError(f"Network switch failed: {e}") from e
        logger.info(f"✅ {self.backend_kind.value} wallet switched to chain {chain_id}")

    async def sign_message(self, message: Union[str, bytes]) -> str:
        payload = to_hex(message if isinstance(message, bytes) else message.encode("utf-8"))
        return await self._request("personal_sign", [payload, await self.get_address()])

    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        value: Dict[str, Any],
    ) -> str:
        payload = build_eip712_payload(domain, types, value)
        return await self._request(
            "eth_signTypedData_v4",
            [await self.get_address(), json.dumps(payload, default=str)],
        )

    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        return await self._request(
            "eth_sendTransaction",
            [{"from": await self.get_address(), "to": to, "data": data, "value": hex(value)}],
        )


class ExtensionWalletAdapter(Eip1193WalletAdapter):
    """Browser extension wallet; can add Polygon when it is unknown"""

    backend_kind = BackendKind.EXTENSION

    async def _switch_chain(self, chain_id: int) -> None:
        try:
            await super()._switch_chain(chain_id)
        except ProviderRpcError as e:
            if e.code != UNRECOGNIZED_CHAIN or chain_id != POLYGON_CHAIN_ID:
                raise
            logger.info("➕ Adding Polygon to extension wallet")
            await self._request("wallet_addEthereumChain", [POLYGON_CHAIN_PARAMS])


class RelayWalletAdapter(Eip1193WalletAdapter):
    """Wallet-connect relay session; the remote wallet must switch networks itself"""

    backend_kind = BackendKind.RELAY

    async def _switch_chain(self, chain_id: int) -> None:
        raise NetworkSwitchError(
            f"Please switch to chain {chain_id} inside your wallet app, then try again"
        )


class MobileWalletAdapter(Eip1193WalletAdapter):
    """In-app mobile wallet; popups are invisible so signing latency is high"""

    backend_kind = BackendKind.MOBILE
