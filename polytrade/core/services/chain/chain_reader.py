"""
Chain Reader - read-only Polygon access
Allowance, operator approval, balance, code and receipt reads with RPC rotation
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from web3 import AsyncWeb3
from web3.providers import AsyncHTTPProvider

from polytrade.core.services.chain.contracts import (
    CONDITIONAL_TOKENS_ADDRESS,
    ERC1155_ABI,
    ERC20_ABI,
    NATIVE_USDC_ADDRESS,
    USDC_E_ADDRESS,
    from_base_units,
)
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "rate limit", "too many requests", "-32005")


def _is_rate_limited(error: Exception) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in RATE_LIMIT_MARKERS)


class ChainReader:
    """
    Read-only Polygon RPC client
    - Never triggers wallet popups (dedicated RPC, no signer)
    - Rotates to the next RPC when one rate limits
    """

    def __init__(self, rpc_urls: Optional[List[str]] = None):
        self.rpc_urls = rpc_urls or [settings.web3.polygon_rpc_url, *settings.web3.fallback_rpc_urls]
        self.max_attempts = settings.web3.rpc_max_attempts
        self.backoff_seconds = settings.web3.rpc_backoff_seconds
        self._rpc_index = 0
        self._w3: Optional[AsyncWeb3] = None

    @property
    def w3(self) -> AsyncWeb3:
        """Lazy Web3 connection to the current RPC"""
        if self._w3 is None:
            url = self.rpc_urls[self._rpc_index % len(self.rpc_urls)]
            self._w3 = AsyncWeb3(AsyncHTTPProvider(url, request_kwargs={"timeout": 10}))
        return self._w3

    def _rotate(self) -> None:
        self._rpc_index += 1
        self._w3 = None
        logger.warning(f"⚠️ Rotating Polygon RPC to {self.rpc_urls[self._rpc_index % len(self.rpc_urls)]}")

    async def _with_retry(self, label: str, call: Callable[[AsyncWeb3], Awaitable[T]]) -> T:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await call(self.w3)
            except Exception as e:
                last_error = e
                if not _is_rate_limited(e) or attempt == self.max_attempts:
                    break
                self._rotate()
                await asyncio.sleep(self.backoff_seconds * attempt)
        logger.error(f"❌ {label} failed: {last_error}")
        raise last_error

    async def get_usdc_allowance(self, owner: str, spender: str) -> int:
        """USDC.e allowance in base units (6 decimals)"""
        async def call(w3: AsyncWeb3) -> int:
            token = w3.eth.contract(address=AsyncWeb3.to_checksum_address(USDC_E_ADDRESS), abi=ERC20_ABI)
            return await token.functions.allowance(
                AsyncWeb3.to_checksum_address(owner),
                AsyncWeb3.to_checksum_address(spender),
            ).call()
        return await self._with_retry(f"allowance({owner[:10]}→{spender[:10]})", call)

    async def is_approved_for_all(self, owner: str, operator: str) -> bool:
        async def call(w3: AsyncWeb3) -> bool:
            ctf = w3.eth.contract(address=AsyncWeb3.to_checksum_address(CONDITIONAL_TOKENS_ADDRESS), abi=ERC1155_ABI)
            return await ctf.functions.isApprovedForAll(
                AsyncWeb3.to_checksum_address(owner),
                AsyncWeb3.to_checksum_address(operator),
            ).call()
        return await self._with_retry(f"isApprovedForAll({owner[:10]}→{operator[:10]})", call)

    async def get_token_balance(self, token_address: str, holder: str) -> float:
        async def call(w3: AsyncWeb3) -> float:
            token = w3.eth.contract(address=AsyncWeb3.to_checksum_address(token_address), abi=ERC20_ABI)
            raw = await token.functions.balanceOf(AsyncWeb3.to_checksum_address(holder)).call()
            decimals = await token.functions.decimals().call()
            return from_base_units(raw, decimals)
        return await self._with_retry(f"balanceOf({holder[:10]})", call)

    async def get_usdc_balance(self, holder: str) -> float:
        """USDC.e balance, the only collateral the exchange accepts"""
        return await self.get_token_balance(USDC_E_ADDRESS, holder)

    async def get_native_usdc_balance(self, holder: str) -> float:
        return await self.get_token_balance(NATIVE_USDC_ADDRESS, holder)

    async def has_code(self, address: str) -> bool:
        """True when a contract is deployed at the address"""
        async def call(w3: AsyncWeb3) -> bool:
            code = await w3.eth.get_code(AsyncWeb3.to_checksum_address(address))
            return len(code) > 0
        return await self._with_retry(f"getCode({address[:10]})", call)

    async def wait_for_receipt(self, tx_hash: str, timeout: Optional[int] = None) -> Dict[str, Any]:
        """Wait until the transaction is mined and return its receipt"""
        async def call(w3: AsyncWeb3) -> Dict[str, Any]:
            receipt = await w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=timeout or settings.web3.receipt_timeout
            )
            return dict(receipt)
        return await self._with_retry(f"receipt({tx_hash[:12]})", call)


# Global instance
_chain_reader: Optional[ChainReader] = None


def get_chain_reader() -> ChainReader:
    """Get or create the read-only chain reader"""
    global _chain_reader
    if _chain_reader is None:
        _chain_reader = ChainReader()
    return _chain_reader
