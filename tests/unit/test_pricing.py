"""Order book selection, buy quotes and limit price fallback"""
import pytest

from polytrade.core.exceptions import InvalidAmountError
from polytrade.core.models.trading_models import OrderBook, OrderSide, PriceLevel
from polytrade.core.services.trading.pricing import aggressive_limit_price, clamp_price, quote_buy


def _book(bids, asks) -> OrderBook:
    return OrderBook(
        token_id="1",
        bids=[PriceLevel(price=p, size=10.0) for p in bids],
        asks=[PriceLevel(price=p, size=10.0) for p in asks],
    )


class TestOrderBook:
    def test_best_bid_and_ask_ignore_level_order(self) -> None:
        book = _book([0.40, 0.55, 0.48], [0.60, 0.58, 0.62])
        assert book.best_bid == 0.55
        assert book.best_ask == 0.58
        assert book.midpoint == pytest.approx(0.565)

    def test_empty_book(self) -> None:
        book = _book([], [])
        assert book.best_bid is None
        assert book.best_ask is None
        assert book.midpoint is None


class TestQuoteBuy:
    def test_scenario_ten_dollars_at_fifty_cents_with_two_percent_fee(self) -> None:
        quote = quote_buy(10, 0.50, 2)
        assert quote.shares == pytest.approx(20.0)
        assert quote.fee_amount == pytest.approx(0.20)
        assert quote.total_cost == pytest.approx(10.20)
        assert quote.potential_payout == pytest.approx(20.0)
        assert quote.potential_profit == pytest.approx(9.80)

    @pytest.mark.parametrize("amount,price,fee", [(7.5, 0.3, 0), (1, 0.99, 1.5), (250, 0.07, 3)])
    def test_quote_identities(self, amount, price, fee) -> None:
        quote = quote_buy(amount, price, fee)
        assert quote.shares == pytest.approx(amount / price)
        assert quote.total_cost == pytest.approx(amount + amount * fee / 100)
        assert quote.potential_payout == pytest.approx(quote.shares)
        assert quote.potential_profit == pytest.approx(quote.potential_payout - quote.total_cost)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount(self, amount) -> None:
        with pytest.raises(InvalidAmountError):
            quote_buy(amount, 0.5, 0)

    @pytest.mark.parametrize("price", [0, 1, 1.2])
    def test_price_out_of_range(self, price) -> None:
        with pytest.raises(InvalidAmountError):
            quote_buy(10, price, 0)


class TestAggressiveLimitPrice:
    def test_buy_improves_best_bid(self) -> None:
        assert aggressive_limit_price(_book([0.40, 0.55], [0.60]), OrderSide.BUY) == pytest.approx(0.56)

    def test_sell_undercuts_best_ask(self) -> None:
        assert aggressive_limit_price(_book([0.40], [0.62, 0.58]), OrderSide.SELL) == pytest.approx(0.57)

    def test_falls_back_to_opposite_side(self) -> None:
        assert aggressive_limit_price(_book([], [0.60]), OrderSide.BUY) == pytest.approx(0.59)
        assert aggressive_limit_price(_book([0.40], []), OrderSide.SELL) == pytest.approx(0.41)

    def test_clamped(self) -> None:
        assert aggressive_limit_price(_book([0.99], []), OrderSide.BUY) == pytest.approx(0.99)
        assert aggressive_limit_price(_book([], [0.01]), OrderSide.SELL) == pytest.approx(0.01)
        assert clamp_price(0.0) == pytest.approx(0.01)

    def test_empty_book_has_no_price(self) -> None:
        assert aggressive_limit_price(_book([], []), OrderSide.BUY) is None
