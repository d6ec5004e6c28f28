"""
Gasless Relayer Client
Submits Safe transactions through the fee-sponsored relayer so the user pays no gas
"""
import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
from eth_abi import encode
from eth_abi.packed import encode_packed
from eth_account.messages import encode_typed_data
from eth_utils import keccak, to_bytes, to_checksum_address, to_hex
from pydantic import BaseModel

from polytrade.core.exceptions import RelayerUnavailableError
from polytrade.core.services.api_client.companion_client import CompanionAPIClient, get_companion_client
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID, SAFE_FACTORY_ADDRESS, ZERO_ADDRESS
from polytrade.core.services.funding.funding_resolver import derive_safe_address
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter, build_eip712_payload
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

SAFE_MULTISEND_ADDRESS = "0xA238CBeb142c10Ef7Ad8442C6D1f9E89e07e7761"

CALL = 0
DELEGATE_CALL = 1

CONFIRMED_STATES = {"STATE_MINED", "STATE_CONFIRMED"}
FAILED_STATES = {"STATE_FAILED", "STATE_INVALID"}

SAFE_TX_TYPES = {
    "SafeTx": [
        {"name": "to", "type": "address"},
        {"name": "value", "type": "uint256"},
        {"name": "data", "type": "bytes"},
        {"name": "operation", "type": "uint8"},
        {"name": "safeTxGas", "type": "uint256"},
        {"name": "baseGas", "type": "uint256"},
        {"name": "gasPrice", "type": "uint256"},
        {"name": "gasToken", "type": "address"},
        {"name": "refundReceiver", "type": "address"},
        {"name": "nonce", "type": "uint256"},
    ]
}

CREATE_PROXY_TYPES = {
    "CreateProxy": [
        {"name": "paymentToken", "type": "address"},
        {"name": "payment", "type": "uint256"},
        {"name": "paymentReceiver", "type": "address"},
    ]
}


class RelayTransaction(BaseModel):
    """A call executed by the Safe"""
    to: str
    data: str
    value: int = 0


def encode_multisend(transactions: List[RelayTransaction]) -> str:
    """Calldata for MultiSend.multiSend(bytes) over a batch of calls"""
    packed = b"".join(
        encode_packed(
            ["uint8", "address", "uint256", "uint256", "bytes"],
            [CALL, to_checksum_address(tx.to), tx.value, len(to_bytes(hexstr=tx.data)), to_bytes(hexstr=tx.data)],
        )
        for tx in transactions
    )
    selector = keccak(text="multiSend(bytes)")[:4]
    return to_hex(selector + encode(["bytes"], [packed]))


def _adjust_safe_signature(signature: str) -> str:
    """eth_sign signatures are marked for Safe verification by shifting v"""
    raw = bytearray(to_bytes(hexstr=signature))
    v = raw[-1]
    if v in (0, 1):
        v += 31
    elif v in (27, 28):
        v += 4
    raw[-1] = v
    return to_hex(bytes(raw))


class RelayerClient:
    """
    Fee-sponsored relay path
    - Only available when the companion server holds builder credentials
    - Transactions are batched into one Safe MultiSend
    """

    def __init__(
        self,
        companion: Optional[CompanionAPIClient] = None,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        poll_interval: float = 2.0,
        max_polls: int = 60,
    ):
        self.companion = companion or get_companion_client()
        self.base_url = (base_url or settings.polymarket.relayer_url).rstrip('/')
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=settings.polymarket.request_timeout)
        self.poll_interval = poll_interval
        self.max_polls = max_polls

    async def is_available(self) -> bool:
        return await self.companion.is_relayer_available()

    async def _builder_headers(self, method: str, path: str, body: str = "") -> Dict[str, str]:
        return await self.companion.builder_sign(method, path, body)

    async def get_deployed(self, owner_address: str) -> bool:
        safe = derive_safe_address(owner_address)
        response = await self.client.get("/deployed", params={"address": safe})
        response.raise_for_status()
        return bool(response.json().get("deployed"))

    async def _get_nonce(self, owner_address: str) -> int:
        response = await self.client.get("/nonce", params={"address": owner_address, "type": "SAFE"})
        response.raise_for_status()
        return int(response.json().get("nonce", 0))

    async def _submit(self, payload: Dict[str, Any]) -> str:
        body = json.dumps(payload, separators=(",", ":"))
        headers = await self._builder_headers("POST", "/submit", body)
        response = await self.client.post(
            "/submit", content=body, headers={**headers, "Content-Type": "application/json"}
        )
        if response.status_code >= 400:
            raise RelayerUnavailableError(f"Relayer rejected request: {response.text[:200]}")
        data = response.json()
        transaction_id = data.get("transactionID")
        if not transaction_id:
            raise RelayerUnavailableError(f"Relayer returned no transaction id: {data}")
        return transaction_id

    async def wait_for_transaction(self, transaction_id: str) -> str:
        """Poll the relayer until the transaction is mined; returns the tx hash"""
        for _ in range(self.max_polls):
            response = await self.client.get("/transaction", params={"id": transaction_id})
            response.raise_for_status()
            data = response.json()
            if isinstance(data, list):
                data = data[0] if data else {}
            state = data.get("state")
            if state in CONFIRMED_STATES:
                return data.get("transactionHash", transaction_id)
            if state in FAILED_STATES:
                raise RelayerUnavailableError(f"Relayed transaction {transaction_id} failed ({state})")
            await asyncio.sleep(self.poll_interval)
        raise RelayerUnavailableError(f"Relayed transaction {transaction_id} not mined in time")

    async def deploy_safe(self, wallet: WalletAdapter) -> str:
        """Deploy the owner's Safe through the relayer"""
        owner = to_checksum_address(await wallet.get_address())
        safe = derive_safe_address(owner)
        domain = {
            "name": "Polymarket Contract Proxy Factory",
            "chainId": POLYGON_CHAIN_ID,
            "verifyingContract": SAFE_FACTORY_ADDRESS,
        }
        params = {"paymentToken": ZERO_ADDRESS, "payment": 0, "paymentReceiver": ZERO_ADDRESS}
        signature = await wallet.sign_typed_data(domain, CREATE_PROXY_TYPES, params)
        transaction_id = await self._submit({
            "from": owner,
            "to": SAFE_FACTORY_ADDRESS,
            "proxyWallet": safe,
            "data": "0x",
            "signature": signature,
            "signatureParams": {**params, "payment": "0"},
            "type": "SAFE-CREATE",
        })
        tx_hash = await self.wait_for_transaction(transaction_id)
        logger.info(f"✅ Safe {safe} deployed via relayer: {tx_hash}")
        return tx_hash

    async def execute(self, wallet: WalletAdapter, transactions: List[RelayTransaction]) -> str:
        """
        Execute a batch of calls from the owner's Safe without gas

        Args:
            wallet: Owner wallet (signs the Safe transaction hash)
            transactions: Calls to batch

        Returns:
            Transaction hash of the mined relay transaction
        """
        if not transactions:
            raise ValueError("No transactions to relay")

        owner = to_checksum_address(await wallet.get_address())
        safe = derive_safe_address(owner)

        if not await self.get_deployed(owner):
            logger.info(f"🏗️ Safe {safe} not deployed, deploying before relay batch")
            await self.deploy_safe(wallet)

        if len(transactions) == 1:
            target, data, operation = transactions[0].to, transactions[0].data, CALL
            value = transactions[0].value
        else:
            target, data, operation, value = SAFE_MULTISEND_ADDRESS, encode_multisend(transactions), DELEGATE_CALL, 0

        nonce = await self._get_nonce(owner)
        safe_tx = {
            "to": to_checksum_address(target),
            "value": value,
            "data": to_bytes(hexstr=data),
            "operation": operation,
            "safeTxGas": 0,
            "baseGas": 0,
            "gasPrice": 0,
            "gasToken": ZERO_ADDRESS,
            "refundReceiver": ZERO_ADDRESS,
            "nonce": nonce,
        }
        domain = {"chainId": POLYGON_CHAIN_ID, "verifyingContract": safe}
        signable = encode_typed_data(full_message=build_eip712_payload(domain, SAFE_TX_TYPES, safe_tx))
        safe_tx_hash = keccak(b"\x19" + signable.version + signable.header + signable.body)

        signature = _adjust_safe_signature(await wallet.sign_message(safe_tx_hash))
        transaction_id = await self._submit({
            "from": owner,
            "to": safe_tx["to"],
            "proxyWallet": safe,
            "data": data,
            "nonce": str(nonce),
            "signature": signature,
            "signatureParams": {
                "gasPrice": "0",
                "operation": str(operation),
                "safeTxnGas": "0",
                "baseGas": "0",
                "gasToken": ZERO_ADDRESS,
                "refundReceiver": ZERO_ADDRESS,
            },
            "type": "SAFE",
        })
        logger.info(f"📤 Relay batch submitted ({len(transactions)} call(s)): {transaction_id}")
        return await self.wait_for_transaction(transaction_id)
