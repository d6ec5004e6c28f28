"""
Session Module
Trading session lifecycle and persistence
"""
from .session_store import MemorySessionStore, RedisSessionStore, SessionStore, build_session_store, session_key
from .trading_session_manager import TradingSessionManager

__all__ = [
    'TradingSessionManager',
    'SessionStore',
    'MemorySessionStore',
    'RedisSessionStore',
    'build_session_store',
    'session_key',
]
