"""
Exchange Client - explicit CLOB REST client owned by the trading session
L1 (wallet signature) headers for credential derivation, L2 (HMAC) headers for
trading, public endpoints for order books and midpoints
"""
import json
import time
from typing import Any, Dict, List, Optional

import httpx
from py_clob_client.clob_types import ApiCreds
from py_clob_client.endpoints import (
    CANCEL,
    CREATE_API_KEY,
    DERIVE_API_KEY,
    GET_ORDER,
    GET_ORDER_BOOK,
    MID_POINT,
    ORDERS,
    POST_ORDER,
)
from py_clob_client.signing.hmac import build_hmac_signature

from polytrade.core.exceptions import CredentialDerivationFailedError, ExchangeRejectedError
from polytrade.core.models.trading_models import ApiCredentials, OrderBook, Position, PriceLevel
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

POLY_ADDRESS = "POLY_ADDRESS"
POLY_SIGNATURE = "POLY_SIGNATURE"
POLY_TIMESTAMP = "POLY_TIMESTAMP"
POLY_NONCE = "POLY_NONCE"
POLY_API_KEY = "POLY_API_KEY"
POLY_PASSPHRASE = "POLY_PASSPHRASE"


def l1_headers(address: str, signature: str, timestamp: int, nonce: int = 0) -> Dict[str, str]:
    return {
        POLY_ADDRESS: address,
        POLY_SIGNATURE: signature,
        POLY_TIMESTAMP: str(timestamp),
        POLY_NONCE: str(nonce),
    }


def extract_error_message(response: Any) -> Optional[str]:
    """The exchange reports errors in several shapes"""
    if isinstance(response, str):
        return response if "error" in response.lower() else None
    if not isinstance(response, dict):
        return None
    for key in ("error", "errorMsg", "message"):
        value = response.get(key)
        if value:
            return value if isinstance(value, str) else json.dumps(value)
    status = response.get("status")
    if isinstance(status, int) and status >= 400:
        return f"Exchange returned status {status}"
    return None


class ExchangeClient:
    """
    CLOB REST client for one trading session
    Constructed by TradingSessionManager and handed to OrderExecutionEngine
    """

    def __init__(
        self,
        owner_address: str,
        credentials: Optional[ApiCredentials] = None,
        host: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        data_client: Optional[httpx.AsyncClient] = None,
    ):
        self.owner_address = owner_address
        self.credentials = credentials
        self.host = (host or settings.polymarket.clob_host).rstrip('/')
        self.client = client or httpx.AsyncClient(base_url=self.host, timeout=settings.polymarket.request_timeout)
        self.data_client = data_client or httpx.AsyncClient(
            base_url=settings.polymarket.data_api_host, timeout=settings.polymarket.request_timeout
        )

    async def close(self) -> None:
        await self.client.aclose()
        await self.data_client.aclose()

    @property
    def api_creds(self) -> ApiCreds:
        if self.credentials is None:
            raise CredentialDerivationFailedError("Exchange client has no API credentials")
        return ApiCreds(
            api_key=self.credentials.key,
            api_secret=self.credentials.secret,
            api_passphrase=self.credentials.passphrase,
        )

    def _l2_headers(self, method: str, path: str, body: Optional[str] = None) -> Dict[str, str]:
        creds = self.api_creds
        timestamp = int(time.time())
        signature = build_hmac_signature(creds.api_secret, timestamp, method, path, body)
        return {
            POLY_ADDRESS: self.owner_address,
            POLY_SIGNATURE: signature,
            POLY_TIMESTAMP: str(timestamp),
            POLY_API_KEY: creds.api_key,
            POLY_PASSPHRASE: creds.api_passphrase,
        }

    # Credentials

    @staticmethod
    def _parse_credentials(data: Dict[str, Any]) -> Optional[ApiCredentials]:
        key = data.get("apiKey") or data.get("api_key") or data.get("key")
        secret = data.get("secret") or data.get("api_secret")
        passphrase = data.get("passphrase") or data.get("api_passphrase")
        if not (key and secret and passphrase):
            return None
        return ApiCredentials(key=key, secret=secret, passphrase=passphrase)

    async def derive_api_key(self, headers: Dict[str, str]) -> Optional[ApiCredentials]:
        """Retrieve existing credentials bound to the L1 signature (None when absent)"""
        response = await self.client.get(DERIVE_API_KEY, headers=headers)
        if response.status_code != 200:
            logger.info(f"🔑 No existing API key to derive ({response.status_code})")
            return None
        return self._parse_credentials(response.json())

    async def create_api_key(self, headers: Dict[str, str]) -> ApiCredentials:
        response = await self.client.post(CREATE_API_KEY, headers=headers)
        if response.status_code != 200:
            raise CredentialDerivationFailedError(
                f"API key creation failed ({response.status_code}): {response.text[:200]}"
            )
        credentials = self._parse_credentials(response.json())
        if credentials is None:
            raise CredentialDerivationFailedError("API key creation returned incomplete credentials")
        return credentials

    # Public market data

    async def get_order_book(self, token_id: str) -> OrderBook:
        response = await self.client.get(GET_ORDER_BOOK, params={"token_id": token_id})
        response.raise_for_status()
        data = response.json()
        return OrderBook(
            token_id=token_id,
            bids=[PriceLevel(price=float(level["price"]), size=float(level["size"])) for level in data.get("bids", [])],
            asks=[PriceLevel(price=float(level["price"]), size=float(level["size"])) for level in data.get("asks", [])],
        )

    async def get_midpoint(self, token_id: str) -> Optional[float]:
        response = await self.client.get(MID_POINT, params={"token_id": token_id})
        if response.status_code != 200:
            logger.warning(f"⚠️ Midpoint unavailable for {token_id[:20]}...: {response.status_code}")
            return None
        mid = response.json().get("mid")
        return float(mid) if mid not in (None, "") else None

    async def get_positions(self, funding_address: str) -> List[Position]:
        """Positions held by the funding address (data API)"""
        response = await self.data_client.get("/positions", params={"user": funding_address})
        response.raise_for_status()
        positions = []
        for item in response.json() or []:
            size = float(item.get("size") or 0)
            if size <= 0:
                continue
            positions.append(Position(
                token_id=str(item.get("asset")),
                outcome_side=item.get("outcome") or "",
                size=size,
                average_entry_price=float(item.get("avgPrice") or 0),
                current_price=float(item.get("curPrice") or 0),
                title=item.get("title"),
                neg_risk=bool(item.get("negativeRisk")),
            ))
        return positions

    # Authenticated trading

    async def post_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Submit a signed order

        Returns:
            Parsed exchange response (errors are returned, not raised)
        """
        body = json.dumps(payload, separators=(",", ":"))
        headers = self._l2_headers("POST", POST_ORDER, body)
        response = await self.client.post(
            POST_ORDER, content=body, headers={**headers, "Content-Type": "application/json"}
        )
        try:
            data = response.json()
        except ValueError:
            data = {"error": response.text}
        if response.status_code >= 400 and isinstance(data, dict):
            data.setdefault("status", response.status_code)
            if not extract_error_message(data):
                data["error"] = response.text or f"HTTP {response.status_code}"
        return data

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        body = json.dumps({"orderID": order_id}, separators=(",", ":"))
        headers = self._l2_headers("DELETE", CANCEL, body)
        response = await self.client.request(
            "DELETE", CANCEL, content=body, headers={**headers, "Content-Type": "application/json"}
        )
        data = response.json()
        error = extract_error_message(data) if response.status_code >= 400 else None
        if error:
            raise ExchangeRejectedError(error, status=response.status_code)
        return data

    async def get_open_orders(self, market: Optional[str] = None) -> List[Dict[str, Any]]:
        headers = self._l2_headers("GET", ORDERS)
        params = {"market": market} if market else None
        response = await self.client.get(ORDERS, headers=headers, params=params)
        response.raise_for_status()
        data = response.json()
        if isinstance(data, dict):
            return data.get("data", [])
        return data

    async def get_order(self, order_id: str) -> Optional[Dict[str, Any]]:
        path = f"{GET_ORDER}{order_id}"
        response = await self.client.get(path, headers=self._l2_headers("GET", path))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json() or None
