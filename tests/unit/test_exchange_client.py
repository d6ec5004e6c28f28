"""Exchange REST client against a mocked transport"""
import json

import httpx
import pytest
from py_clob_client.endpoints import (
    CREATE_API_KEY,
    DERIVE_API_KEY,
    GET_ORDER,
    GET_ORDER_BOOK,
    MID_POINT,
    POST_ORDER,
)

from polytrade.core.exceptions import CredentialDerivationFailedError, ExchangeRejectedError
from polytrade.core.models.trading_models import ApiCredentials
from polytrade.core.services.clob.exchange_client import ExchangeClient, extract_error_message, l1_headers

from tests.fixtures.mocks import OWNER, TOKEN_ID

CREDENTIALS = ApiCredentials(key="key-1", secret="c2VjcmV0c2VjcmV0c2VjcmV0", passphrase="pass-1")


def build_client(handler, credentials=CREDENTIALS) -> ExchangeClient:
    transport = httpx.MockTransport(handler)
    return ExchangeClient(
        OWNER,
        credentials,
        client=httpx.AsyncClient(base_url="https://clob.test", transport=transport),
        data_client=httpx.AsyncClient(base_url="https://data.test", transport=transport),
    )


class TestErrorExtraction:
    def test_error_shapes(self) -> None:
        assert extract_error_message({"error": "not enough balance"}) == "not enough balance"
        assert extract_error_message({"errorMsg": "invalid order"}) == "invalid order"
        assert extract_error_message({"status": 500}) == "Exchange returned status 500"
        assert extract_error_message({"success": True, "orderID": "0x1"}) is None
        assert extract_error_message("Error: bad request") == "Error: bad request"
        assert extract_error_message(None) is None

    def test_l1_headers(self) -> None:
        headers = l1_headers(OWNER, "0xsig", 1700000000)
        assert headers == {
            "POLY_ADDRESS": OWNER,
            "POLY_SIGNATURE": "0xsig",
            "POLY_TIMESTAMP": "1700000000",
            "POLY_NONCE": "0",
        }


class TestCredentials:
    async def test_derive_returns_existing_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == DERIVE_API_KEY
            assert request.headers["POLY_ADDRESS"] == OWNER
            return httpx.Response(200, json={"apiKey": "k", "secret": "s", "passphrase": "p"})

        client = build_client(handler, credentials=None)
        credentials = await client.derive_api_key(l1_headers(OWNER, "0xsig", 1))
        assert (credentials.key, credentials.secret, credentials.passphrase) == ("k", "s", "p")

    async def test_derive_without_existing_key_returns_none(self) -> None:
        client = build_client(lambda request: httpx.Response(400, json={"error": "no key"}), credentials=None)
        assert await client.derive_api_key(l1_headers(OWNER, "0xsig", 1)) is None

    async def test_create_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == CREATE_API_KEY
            return httpx.Response(500, text="boom")

        client = build_client(handler, credentials=None)
        with pytest.raises(CredentialDerivationFailedError):
            await client.create_api_key(l1_headers(OWNER, "0xsig", 1))

    async def test_create_incomplete_credentials_raises(self) -> None:
        client = build_client(lambda request: httpx.Response(200, json={"apiKey": "k"}), credentials=None)
        with pytest.raises(CredentialDerivationFailedError):
            await client.create_api_key(l1_headers(OWNER, "0xsig", 1))

    def test_authenticated_call_without_credentials_raises(self) -> None:
        client = build_client(lambda request: httpx.Response(200), credentials=None)
        with pytest.raises(CredentialDerivationFailedError):
            client.api_creds


class TestMarketData:
    async def test_order_book_is_parsed(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == GET_ORDER_BOOK
            assert request.url.params["token_id"] == TOKEN_ID
            return httpx.Response(200, json={
                "bids": [{"price": "0.48", "size": "100"}, {"price": "0.49", "size": "20"}],
                "asks": [{"price": "0.52", "size": "50"}, {"price": "0.51", "size": "10"}],
            })

        book = await build_client(handler).get_order_book(TOKEN_ID)
        assert book.best_bid == pytest.approx(0.49)
        assert book.best_ask == pytest.approx(0.51)
        assert book.midpoint == pytest.approx(0.50)

    async def test_midpoint(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == MID_POINT
            return httpx.Response(200, json={"mid": "0.655"})

        assert await build_client(handler).get_midpoint(TOKEN_ID) == pytest.approx(0.655)

    async def test_midpoint_unavailable(self) -> None:
        client = build_client(lambda request: httpx.Response(404, json={"error": "no orderbook"}))
        assert await client.get_midpoint(TOKEN_ID) is None

    async def test_positions_skip_empty_holdings(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "data.test"
            assert request.url.params["user"] == OWNER
            return httpx.Response(200, json=[
                {"asset": TOKEN_ID, "outcome": "Yes", "size": 12.5, "avgPrice": 0.4, "curPrice": 0.45},
                {"asset": "999", "outcome": "No", "size": 0, "avgPrice": 0.3, "curPrice": 0.2},
            ])

        positions = await build_client(handler).get_positions(OWNER)
        assert len(positions) == 1
        assert positions[0].token_id == TOKEN_ID
        assert positions[0].size == pytest.approx(12.5)
        assert positions[0].outcome_side == "Yes"


class TestTrading:
    async def test_post_order_sends_l2_headers(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"success": True, "orderID": "0xabc", "status": "matched"})

        response = await build_client(handler).post_order({"order": {"salt": 1}, "owner": "key-1", "orderType": "FOK"})

        assert response["orderID"] == "0xabc"
        assert seen["path"] == POST_ORDER
        assert seen["body"]["orderType"] == "FOK"
        assert seen["headers"]["POLY_API_KEY"] == "key-1"
        assert seen["headers"]["POLY_PASSPHRASE"] == "pass-1"
        assert seen["headers"]["POLY_ADDRESS"] == OWNER
        assert seen["headers"]["POLY_SIGNATURE"]

    async def test_post_order_returns_errors_instead_of_raising(self) -> None:
        client = build_client(lambda request: httpx.Response(400, json={"error": "not enough balance / allowance"}))
        response = await client.post_order({"order": {}})
        assert extract_error_message(response) == "not enough balance / allowance"
        assert response["status"] == 400

    async def test_post_order_non_json_error(self) -> None:
        client = build_client(lambda request: httpx.Response(502, text="Bad Gateway"))
        response = await client.post_order({"order": {}})
        assert extract_error_message(response) == "Bad Gateway"

    async def test_cancel_rejection_raises(self) -> None:
        client = build_client(lambda request: httpx.Response(400, json={"error": "order not found"}))
        with pytest.raises(ExchangeRejectedError):
            await client.cancel_order("0xabc")

    async def test_cancel_rejection_carries_status(self) -> None:
        client = build_client(lambda request: httpx.Response(401, json={"error": "request rejected"}))
        with pytest.raises(ExchangeRejectedError) as exc_info:
            await client.cancel_order("0xabc")
        assert exc_info.value.status == 401

    async def test_open_orders_unwrap_data(self) -> None:
        client = build_client(lambda request: httpx.Response(200, json={"data": [{"id": "0x1"}], "next_cursor": "LTE="}))
        assert await client.get_open_orders() == [{"id": "0x1"}]

    async def test_missing_order_is_none(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"{GET_ORDER}0xgone"
            return httpx.Response(404)

        assert await build_client(handler).get_order("0xgone") is None
