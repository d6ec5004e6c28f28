"""
Pricing helpers for order execution
"""
from decimal import Decimal
from typing import Optional

from polytrade.core.exceptions import InvalidAmountError
from polytrade.core.models.trading_models import BuyQuote, OrderBook, OrderSide
from polytrade.infrastructure.config.settings import settings


def clamp_price(price: float) -> float:
    return min(max(price, settings.trading.min_price), settings.trading.max_price)


def aggressive_limit_price(book: OrderBook, side: OrderSide) -> Optional[float]:
    """
    Fallback limit price one tick more aggressive than the best visible quote

    BUY improves on the best bid, SELL undercuts the best ask, so the order rests
    at the front of its side of the book. Falls back to the opposite side when
    the own side is empty. Clamped to [min_price, max_price].
    """
    step = settings.trading.limit_price_improvement
    if side is OrderSide.BUY:
        if book.best_bid is not None:
            return clamp_price(round(book.best_bid + step, 4))
        if book.best_ask is not None:
            return clamp_price(round(book.best_ask - step, 4))
    else:
        if book.best_ask is not None:
            return clamp_price(round(book.best_ask - step, 4))
        if book.best_bid is not None:
            return clamp_price(round(book.best_bid + step, 4))
    return None


def quote_buy(amount: float, price: float, fee_percentage: float) -> BuyQuote:
    """
    Buy quote for a USDC amount at a price

    shares = amount / price, total = amount + fee, payout = shares x $1
    """
    if amount is None or amount <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    if price is None or not 0 < price < 1:
        raise InvalidAmountError(f"Price {price} must be between 0 and 1")

    d_amount = Decimal(str(amount))
    d_price = Decimal(str(price))
    fee = d_amount * Decimal(str(fee_percentage)) / Decimal("100")
    shares = d_amount / d_price
    total = d_amount + fee

    return BuyQuote(
        amount=float(d_amount),
        price=float(d_price),
        shares=float(shares),
        fee_percentage=fee_percentage,
        fee_amount=float(fee),
        total_cost=float(total),
        potential_payout=float(shares),
        potential_profit=float(shares - total),
    )
