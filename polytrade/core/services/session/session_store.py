"""
Session Store - persisted trading sessions keyed by owner address
Redis in deployment, in-memory for tests and single-process use
"""
from abc import ABC, abstractmethod
from typing import Dict, Optional

import redis.asyncio as redis

from polytrade.core.models.trading_models import TradingSession
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def session_key(owner_address: str) -> str:
    return f"session:{owner_address.lower()}"


class SessionStore(ABC):
    """Only TradingSessionManager writes through this interface"""

    @abstractmethod
    async def load(self, owner_address: str) -> Optional[TradingSession]:
        ...

    @abstractmethod
    async def save(self, session: TradingSession) -> None:
        ...

    @abstractmethod
    async def clear(self, owner_address: str) -> None:
        ...


class MemorySessionStore(SessionStore):
    def __init__(self):
        self._sessions: Dict[str, str] = {}

    async def load(self, owner_address: str) -> Optional[TradingSession]:
        raw = self._sessions.get(session_key(owner_address))
        return TradingSession.from_json(raw) if raw else None

    async def save(self, session: TradingSession) -> None:
        self._sessions[session_key(session.owner_address)] = session.to_json()

    async def clear(self, owner_address: str) -> None:
        self._sessions.pop(session_key(owner_address), None)


class RedisSessionStore(SessionStore):
    """
    Redis-backed session store
    Corrupt records are treated as missing and removed
    """

    def __init__(self, url: Optional[str] = None, ttl: Optional[int] = None):
        self.redis = redis.from_url(url or settings.redis.url, decode_responses=True)
        self.ttl = settings.redis.session_ttl if ttl is None else ttl

    async def load(self, owner_address: str) -> Optional[TradingSession]:
        key = session_key(owner_address)
        raw = await self.redis.get(key)
        if not raw:
            return None
        try:
            return TradingSession.from_json(raw)
        except ValueError as e:
            logger.warning(f"⚠️ Discarding unreadable session {key}: {e}")
            await self.redis.delete(key)
            return None

    async def save(self, session: TradingSession) -> None:
        key = session_key(session.owner_address)
        if self.ttl:
            await self.redis.setex(key, self.ttl, session.to_json())
        else:
            await self.redis.set(key, session.to_json())

    async def clear(self, owner_address: str) -> None:
        await self.redis.delete(session_key(owner_address))

    async def close(self) -> None:
        await self.redis.aclose()


def build_session_store() -> SessionStore:
    """Session store selected by settings"""
    if settings.redis.enabled:
        return RedisSessionStore()
    return MemorySessionStore()
