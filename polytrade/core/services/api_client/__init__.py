"""
API Client Module
Companion server client
"""
from .companion_client import CompanionAPIClient, get_companion_client

__all__ = ['CompanionAPIClient', 'get_companion_client']
