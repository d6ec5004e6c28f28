"""
Custodial (email) wallet backend
The custody provider holds the key and exposes it as an eth_account signer
"""
from typing import Any, Dict, List, Optional, Union

from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from eth_utils import to_hex
from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from polytrade.core.exceptions import NetworkSwitchError
from polytrade.core.models.trading_models import BackendKind
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class CustodialWalletAdapter(WalletAdapter):
    """Email/custodial wallet: signs in-process, sends through Polygon RPC"""

    backend_kind = BackendKind.CUSTODIAL

    def __init__(
        self,
        account: LocalAccount,
        rpc_url: Optional[str] = None,
        chain_id: int = POLYGON_CHAIN_ID,
    ):
        super().__init__()
        self.account = account
        self.chain_id = chain_id
        self.rpc_url = rpc_url or settings.web3.polygon_rpc_url
        self._w3: Optional[AsyncWeb3] = None

    @property
    def w3(self) -> AsyncWeb3:
        if self._w3 is None:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        return self._w3

    async def get_address(self) -> str:
        return self.account.address

    async def get_network(self) -> int:
        return self.chain_id

    async def ensure_network(self, chain_id: int = POLYGON_CHAIN_ID) -> None:
        # The custody provider only signs for Polygon
        if chain_id != POLYGON_CHAIN_ID:
            raise NetworkSwitchError(f"Custodial wallet cannot switch to chain {chain_id}")
        if self.chain_id != POLYGON_CHAIN_ID:
            logger.info(f"🔄 Custodial wallet switching chain {self.chain_id} → {chain_id}")
            self.chain_id = chain_id

    async def sign_message(self, message: Union[str, bytes]) -> str:
        if isinstance(message, bytes):
            signable = encode_defunct(primitive=message)
        else:
            signable = encode_defunct(text=message)
        signed = self.account.sign_message(signable)
        return to_hex(signed.signature)

    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, List[Dict[str, str]]],
        value: Dict[str, Any],
    ) -> str:
        signed = self.account.sign_typed_data(
            domain_data=domain,
            message_types=types,
            message_data=value,
        )
        return to_hex(signed.signature)

    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        sender = self.account.address
        tx = {
            "from": sender,
            "to": AsyncWeb3.to_checksum_address(to),
            "data": data,
            "value": value,
            "chainId": self.chain_id,
            "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
            "gasPrice": await self.w3.eth.gas_price,
        }
        tx["gas"] = await self.w3.eth.estimate_gas(tx)

        signed = self.account.sign_transaction(tx)
        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = to_hex(tx_hash)
        logger.info(f"📤 Custodial transaction sent: {tx_hex}")
        return tx_hex

    async def logout(self) -> None:
        """End the custody provider session"""
        await self._emit_disconnect()
