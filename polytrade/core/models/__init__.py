"""
Trading Models Module
"""
from .trading_models import (
    ApiCredentials,
    ApprovalState,
    ApprovalStatus,
    BackendKind,
    BuyQuote,
    FeeRecord,
    FeeStatus,
    FundingAddress,
    Order,
    OrderBook,
    OrderResult,
    OrderRoute,
    OrderSide,
    Outcome,
    Position,
    PriceLevel,
    SignatureType,
    TimeInForce,
    TradingSession,
    WalletConnection,
)

__all__ = [
    'ApiCredentials', 'ApprovalState', 'ApprovalStatus', 'BackendKind', 'BuyQuote',
    'FeeRecord', 'FeeStatus', 'FundingAddress', 'Order', 'OrderBook', 'OrderResult',
    'OrderRoute', 'OrderSide', 'Outcome', 'Position', 'PriceLevel', 'SignatureType',
    'TimeInForce', 'TradingSession', 'WalletConnection',
]
