"""
Pending Fee Store - resting-order fee records awaiting their fill
Keyed by funding address so a restarted process picks up where it left off
"""
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import redis.asyncio as redis

from polytrade.core.models.trading_models import FeeRecord
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def pending_key(funding_address: str) -> str:
    return f"pending_fees:{funding_address.lower()}"


class PendingFeeStore(ABC):
    @abstractmethod
    async def add(self, record: FeeRecord) -> None:
        ...

    @abstractmethod
    async def remove(self, record: FeeRecord) -> None:
        ...

    @abstractmethod
    async def load(self, funding_address: str) -> List[FeeRecord]:
        ...


class MemoryPendingFeeStore(PendingFeeStore):
    def __init__(self):
        self._records: Dict[str, Dict[str, str]] = {}

    async def add(self, record: FeeRecord) -> None:
        self._records.setdefault(pending_key(record.wallet_address), {})[record.order_id] = record.model_dump_json()

    async def remove(self, record: FeeRecord) -> None:
        self._records.get(pending_key(record.wallet_address), {}).pop(record.order_id, None)

    async def load(self, funding_address: str) -> List[FeeRecord]:
        raw = self._records.get(pending_key(funding_address), {})
        return [FeeRecord.model_validate_json(value) for value in raw.values()]


class RedisPendingFeeStore(PendingFeeStore):
    """
    One redis hash per funding address: order id -> fee record
    Unreadable entries are dropped on load
    """

    def __init__(self, url: Optional[str] = None, ttl: Optional[int] = None):
        self.redis = redis.from_url(url or settings.redis.url, decode_responses=True)
        self.ttl = settings.fees.pending_ttl_seconds if ttl is None else ttl

    async def add(self, record: FeeRecord) -> None:
        key = pending_key(record.wallet_address)
        await self.redis.hset(key, record.order_id, record.model_dump_json())
        if self.ttl:
            await self.redis.expire(key, self.ttl)

    async def remove(self, record: FeeRecord) -> None:
        await self.redis.hdel(pending_key(record.wallet_address), record.order_id)

    async def load(self, funding_address: str) -> List[FeeRecord]:
        key = pending_key(funding_address)
        entries = await self.redis.hgetall(key) or {}
        records = []
        for order_id, raw in entries.items():
            try:
                records.append(FeeRecord.model_validate_json(raw))
            except ValueError as e:
                logger.warning(f"⚠️ Discarding unreadable pending fee {order_id}: {e}")
                await self.redis.hdel(key, order_id)
        return records

    async def close(self) -> None:
        await self.redis.aclose()


def build_pending_fee_store() -> PendingFeeStore:
    """Pending fee store selected by settings"""
    if settings.redis.enabled:
        return RedisPendingFeeStore()
    return MemoryPendingFeeStore()
