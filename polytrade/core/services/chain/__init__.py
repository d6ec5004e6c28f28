"""
Chain Module
Read-only Polygon access and contract registry
"""
from .chain_reader import ChainReader, get_chain_reader

__all__ = ['ChainReader', 'get_chain_reader']
