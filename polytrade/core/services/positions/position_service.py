"""
Position Service - cached exchange positions of funding addresses
"""
import time
from typing import Awaitable, Callable, Dict, List, Optional, Tuple

from polytrade.core.models.trading_models import Position
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger, short_address

logger = get_logger(__name__)

PositionsFetcher = Callable[[str], Awaitable[List[Position]]]


class PositionService:
    """
    Positions per funding address, read from the data API

    The fetcher is the session's ExchangeClient.get_positions; it is passed per
    call so the service never holds on to a torn down session's client.
    """

    def __init__(self, ttl_seconds: Optional[int] = None):
        self.ttl_seconds = settings.refresh.positions_interval if ttl_seconds is None else ttl_seconds
        self._cache: Dict[str, Tuple[List[Position], float]] = {}

    async def get_positions(
        self,
        funding_address: str,
        fetcher: PositionsFetcher,
        use_cache: bool = True,
    ) -> List[Position]:
        key = funding_address.lower()
        if use_cache and key in self._cache:
            positions, fetched_at = self._cache[key]
            if time.monotonic() - fetched_at < self.ttl_seconds:
                return positions

        positions = await fetcher(funding_address)
        self._cache[key] = (positions, time.monotonic())
        logger.debug(f"📊 {len(positions)} position(s) for {short_address(funding_address)}")
        return positions

    def get_cached(self, funding_address: str, token_id: str) -> Optional[Position]:
        entry = self._cache.get(funding_address.lower())
        if entry is None:
            return None
        return next((p for p in entry[0] if p.token_id == token_id), None)

    def apply_sell(self, funding_address: str, token_id: str, shares: float) -> Optional[Position]:
        """
        Optimistically decrement a cached position after a successful sell

        Returns:
            Updated position, or None when it is closed or not cached
        """
        key = funding_address.lower()
        entry = self._cache.get(key)
        if entry is None:
            return None

        positions, fetched_at = entry
        updated: List[Position] = []
        result = None
        for position in positions:
            if position.token_id == token_id:
                remaining = round(position.size - shares, 6)
                if remaining <= 0:
                    logger.info(f"📉 Position {token_id[:20]}... closed locally")
                    continue
                position = position.model_copy(update={"size": remaining})
                result = position
            updated.append(position)

        self._cache[key] = (updated, fetched_at)
        return result

    def invalidate(self, funding_address: Optional[str] = None) -> None:
        if funding_address is None:
            self._cache.clear()
        else:
            self._cache.pop(funding_address.lower(), None)
