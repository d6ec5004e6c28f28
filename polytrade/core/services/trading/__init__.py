"""
Trading Module
Order execution, pricing and rejection classification
"""
from .order_classifier import classify_rejection, is_credential_error
from .order_execution_engine import OrderExecutionEngine
from .pricing import aggressive_limit_price, quote_buy

__all__ = [
    'OrderExecutionEngine',
    'aggressive_limit_price',
    'classify_rejection',
    'is_credential_error',
    'quote_buy',
]
