"""
CLOB Module
Exchange REST client and order construction
"""
from .exchange_client import ExchangeClient, extract_error_message, l1_headers
from .order_builder import apply_precision, build_order_message, build_order_payload

__all__ = [
    'ExchangeClient',
    'extract_error_message',
    'l1_headers',
    'apply_precision',
    'build_order_message',
    'build_order_payload',
]
