"""
Balance Module
"""
from .balance_service import BalanceService

__all__ = ['BalanceService']
