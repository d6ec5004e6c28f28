"""
Balance Service - cached USDC.e balance of funding addresses
Trading reads the funding address balance, never the generic wallet balance
"""
import time
from typing import Dict, Optional, Tuple

from polytrade.core.services.chain.chain_reader import ChainReader, get_chain_reader
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger, short_address

logger = get_logger(__name__)


class BalanceService:
    """
    USDC.e balances per funding address
    Cached between refreshes; invalidated after every successful order
    """

    def __init__(self, chain_reader: Optional[ChainReader] = None, ttl_seconds: Optional[int] = None):
        self.chain_reader = chain_reader or get_chain_reader()
        self.ttl_seconds = settings.refresh.positions_interval if ttl_seconds is None else ttl_seconds
        self._cache: Dict[str, Tuple[float, float]] = {}

    async def get_usdc_balance(self, funding_address: str, use_cache: bool = True) -> float:
        """
        USDC.e balance in dollars

        Args:
            funding_address: Address holding the trading balance
            use_cache: Serve a fresh-enough cached value when available
        """
        key = funding_address.lower()
        if use_cache and key in self._cache:
            balance, fetched_at = self._cache[key]
            if time.monotonic() - fetched_at < self.ttl_seconds:
                return balance

        balance = await self.chain_reader.get_usdc_balance(funding_address)
        self._cache[key] = (balance, time.monotonic())
        logger.debug(f"💵 USDC.e balance for {short_address(funding_address)}: ${balance:.2f}")
        return balance

    def invalidate(self, funding_address: Optional[str] = None) -> None:
        if funding_address is None:
            self._cache.clear()
        else:
            self._cache.pop(funding_address.lower(), None)
