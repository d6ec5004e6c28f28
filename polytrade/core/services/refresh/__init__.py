"""
Refresh Module
"""
from .refresh_scheduler import RefreshScheduler

__all__ = ['RefreshScheduler']
