"""
Positions Module
"""
from .position_service import PositionService

__all__ = ['PositionService']
