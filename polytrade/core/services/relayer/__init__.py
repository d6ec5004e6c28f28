"""
Relayer Module
Fee-sponsored (gasless) transaction path
"""
from .relayer_client import RelayerClient, RelayTransaction

__all__ = ['RelayerClient', 'RelayTransaction']
