"""Configuration"""
from .settings import settings, AppSettings

__all__ = ["settings", "AppSettings"]
