"""
Order Builder - exchange order precision, amounts and EIP-712 payloads
Orders are signed by the connected wallet, so the typed data is built here
instead of by an SDK client holding a private key
"""
import random
import time
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Any, Dict, Optional

from py_clob_client.order_builder.constants import BUY, SELL

from polytrade.core.exceptions import InvalidAmountError
from polytrade.core.models.trading_models import Order, OrderSide, SignatureType, TimeInForce
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID, ZERO_ADDRESS, exchange_address, to_base_units
from polytrade.infrastructure.config.settings import settings

ORDER_DOMAIN_NAME = "Polymarket CTF Exchange"
ORDER_DOMAIN_VERSION = "1"

ORDER_TYPES = {
    "Order": [
        {"name": "salt", "type": "uint256"},
        {"name": "maker", "type": "address"},
        {"name": "signer", "type": "address"},
        {"name": "taker", "type": "address"},
        {"name": "tokenId", "type": "uint256"},
        {"name": "makerAmount", "type": "uint256"},
        {"name": "takerAmount", "type": "uint256"},
        {"name": "expiration", "type": "uint256"},
        {"name": "nonce", "type": "uint256"},
        {"name": "feeRateBps", "type": "uint256"},
        {"name": "side", "type": "uint8"},
        {"name": "signatureType", "type": "uint8"},
    ]
}

CLOB_AUTH_DOMAIN = {"name": "ClobAuthDomain", "version": "1", "chainId": POLYGON_CHAIN_ID}
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"
CLOB_AUTH_TYPES = {
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ]
}


def round_down(value: float, places: int) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_DOWN))


@dataclass(frozen=True)
class WireOrder:
    """Price/size after exchange precision rules"""
    price: float
    size: float
    cost: float
    expiration: int


def apply_precision(order: Order, now: Optional[int] = None) -> WireOrder:
    """
    Apply exchange precision rules

    Immediate orders: price 2 decimals, USDC cost 2 decimals, size derived from the
    rounded cost at 4 decimals. Resting orders: price 4 decimals, size 2 decimals.
    GTD expirations are pushed to at least one minute in the future.
    """
    now = int(time.time()) if now is None else now

    if order.time_in_force is TimeInForce.IMMEDIATE_OR_CANCEL:
        price = round_down(order.price, 2)
        if price <= 0:
            raise InvalidAmountError(f"Price {order.price} rounds to zero")
        cost = round_down(order.size * price, 2)
        size = round_down(cost / price, 4)
        cost = round_down(size * price, 2)
        expiration = 0
    else:
        price = round_down(order.price, 4)
        size = round_down(order.size, 2)
        cost = round_down(size * price, 6)
        expiration = 0
        if order.time_in_force is TimeInForce.GOOD_TIL_DATE:
            if order.expiry is None or order.expiry <= now:
                raise InvalidAmountError("Good-til-date orders need an expiry in the future")
            expiration = max(order.expiry, now + settings.trading.gtd_min_lifetime_seconds)

    if size <= 0 or price <= 0:
        raise InvalidAmountError(f"Order too small after rounding (price={price}, size={size})")
    return WireOrder(price=price, size=size, cost=cost, expiration=expiration)


def order_amounts(side: OrderSide, wire: WireOrder) -> Dict[str, int]:
    """makerAmount/takerAmount in 6-decimal base units"""
    usdc = to_base_units(wire.cost)
    shares = to_base_units(wire.size)
    if side is OrderSide.BUY:
        return {"makerAmount": usdc, "takerAmount": shares}
    return {"makerAmount": shares, "takerAmount": usdc}


def generate_salt() -> int:
    return round(time.time() * random.random())


def order_domain(neg_risk: bool) -> Dict[str, Any]:
    return {
        "name": ORDER_DOMAIN_NAME,
        "version": ORDER_DOMAIN_VERSION,
        "chainId": POLYGON_CHAIN_ID,
        "verifyingContract": exchange_address(neg_risk),
    }


def build_order_message(
    order: Order,
    wire: WireOrder,
    maker: str,
    signer: str,
    signature_type: SignatureType,
    salt: Optional[int] = None,
) -> Dict[str, Any]:
    """EIP-712 message for an exchange order"""
    return {
        "salt": generate_salt() if salt is None else salt,
        "maker": maker,
        "signer": signer,
        "taker": ZERO_ADDRESS,
        "tokenId": int(order.token_id),
        **order_amounts(order.side, wire),
        "expiration": wire.expiration,
        "nonce": 0,
        "feeRateBps": 0,
        "side": 0 if order.side is OrderSide.BUY else 1,
        "signatureType": int(signature_type),
    }


def build_order_payload(
    message: Dict[str, Any],
    signature: str,
    owner_api_key: str,
    time_in_force: TimeInForce,
) -> Dict[str, Any]:
    """JSON body for POST /order"""
    return {
        "order": {
            "salt": message["salt"],
            "maker": message["maker"],
            "signer": message["signer"],
            "taker": message["taker"],
            "tokenId": str(message["tokenId"]),
            "makerAmount": str(message["makerAmount"]),
            "takerAmount": str(message["takerAmount"]),
            "expiration": str(message["expiration"]),
            "nonce": str(message["nonce"]),
            "feeRateBps": str(message["feeRateBps"]),
            "side": BUY if message["side"] == 0 else SELL,
            "signatureType": message["signatureType"],
            "signature": signature,
        },
        "owner": owner_api_key,
        "orderType": time_in_force.value,
    }


def build_clob_auth_message(address: str, timestamp: int, nonce: int = 0) -> Dict[str, Any]:
    """EIP-712 message proving control of the wallet for credential derivation"""
    return {
        "address": address,
        "timestamp": str(timestamp),
        "nonce": nonce,
        "message": CLOB_AUTH_MESSAGE,
    }
