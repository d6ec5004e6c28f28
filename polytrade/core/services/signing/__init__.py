"""
Signing Module
"""
from .signing_guard import SigningGuard

__all__ = ['SigningGuard']
