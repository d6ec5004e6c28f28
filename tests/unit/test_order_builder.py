"""Exchange precision rules and signed order payloads"""
import pytest

from polytrade.core.exceptions import InvalidAmountError
from polytrade.core.models.trading_models import Order, OrderSide, SignatureType, TimeInForce
from polytrade.core.services.chain.contracts import CTF_EXCHANGE_ADDRESS, NEG_RISK_CTF_EXCHANGE_ADDRESS
from polytrade.core.services.clob.order_builder import (
    apply_precision,
    build_clob_auth_message,
    build_order_message,
    build_order_payload,
    order_amounts,
    order_domain,
    round_down,
)

from tests.fixtures.mocks import OTHER_OWNER, OWNER, TOKEN_ID

NOW = 1_700_000_000


def _order(**kwargs) -> Order:
    defaults = {
        "token_id": TOKEN_ID,
        "side": OrderSide.BUY,
        "price": 0.5,
        "size": 20.0,
        "time_in_force": TimeInForce.IMMEDIATE_OR_CANCEL,
    }
    defaults.update(kwargs)
    return Order(**defaults)


class TestPrecision:
    def test_round_down_never_rounds_up(self) -> None:
        assert round_down(0.759, 2) == 0.75
        assert round_down(13.29339, 4) == 13.2933

    def test_immediate_order_derives_size_from_rounded_cost(self) -> None:
        wire = apply_precision(_order(price=0.759, size=13.3), now=NOW)
        assert wire.price == 0.75
        assert wire.size == 13.2933
        assert wire.cost == 9.96
        assert wire.expiration == 0

    def test_resting_order_keeps_four_price_decimals(self) -> None:
        wire = apply_precision(
            _order(price=0.12345, size=10.129, time_in_force=TimeInForce.GOOD_TIL_CANCELLED), now=NOW
        )
        assert wire.price == 0.1234
        assert wire.size == 10.12
        assert wire.cost == pytest.approx(10.12 * 0.1234, abs=1e-6)
        assert wire.expiration == 0

    def test_good_til_date_in_the_past_is_rejected(self) -> None:
        with pytest.raises(InvalidAmountError):
            apply_precision(_order(time_in_force=TimeInForce.GOOD_TIL_DATE, expiry=NOW - 1), now=NOW)

    def test_good_til_date_without_expiry_is_rejected(self) -> None:
        with pytest.raises(InvalidAmountError):
            apply_precision(_order(time_in_force=TimeInForce.GOOD_TIL_DATE), now=NOW)

    def test_good_til_date_gets_minimum_lifetime(self) -> None:
        soon = apply_precision(_order(time_in_force=TimeInForce.GOOD_TIL_DATE, expiry=NOW + 10), now=NOW)
        later = apply_precision(_order(time_in_force=TimeInForce.GOOD_TIL_DATE, expiry=NOW + 3600), now=NOW)
        assert soon.expiration == NOW + 60
        assert later.expiration == NOW + 3600

    def test_dust_order_is_rejected(self) -> None:
        with pytest.raises(InvalidAmountError):
            apply_precision(_order(price=0.5, size=0.001), now=NOW)


class TestAmounts:
    def test_buy_pays_usdc_for_shares(self) -> None:
        wire = apply_precision(_order(), now=NOW)
        assert order_amounts(OrderSide.BUY, wire) == {"makerAmount": 10_000_000, "takerAmount": 20_000_000}

    def test_sell_gives_shares_for_usdc(self) -> None:
        wire = apply_precision(_order(side=OrderSide.SELL), now=NOW)
        assert order_amounts(OrderSide.SELL, wire) == {"makerAmount": 20_000_000, "takerAmount": 10_000_000}


class TestPayload:
    def test_domain_follows_neg_risk(self) -> None:
        assert order_domain(False)["verifyingContract"] == CTF_EXCHANGE_ADDRESS
        assert order_domain(True)["verifyingContract"] == NEG_RISK_CTF_EXCHANGE_ADDRESS
        assert order_domain(False)["chainId"] == 137

    def test_message_and_wire_payload(self) -> None:
        order = _order(side=OrderSide.SELL)
        wire = apply_precision(order, now=NOW)
        message = build_order_message(
            order, wire, maker=OTHER_OWNER, signer=OWNER,
            signature_type=SignatureType.POLY_GNOSIS_SAFE, salt=42,
        )
        assert message["maker"] == OTHER_OWNER
        assert message["signer"] == OWNER
        assert message["side"] == 1
        assert message["signatureType"] == 2
        assert message["tokenId"] == int(TOKEN_ID)

        payload = build_order_payload(message, "0xsig", "api-key", TimeInForce.IMMEDIATE_OR_CANCEL)
        assert payload["owner"] == "api-key"
        assert payload["orderType"] == "FOK"
        assert payload["order"]["side"] == "SELL"
        assert payload["order"]["tokenId"] == TOKEN_ID
        assert payload["order"]["makerAmount"] == "20000000"
        assert payload["order"]["salt"] == 42
        assert payload["order"]["signature"] == "0xsig"

    def test_clob_auth_message(self) -> None:
        message = build_clob_auth_message(OWNER, NOW, 0)
        assert message["timestamp"] == str(NOW)
        assert message["nonce"] == 0
        assert "control" in message["message"]
