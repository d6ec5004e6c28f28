"""
Order rejection classification
Maps exchange error text to an error kind and the user's next step
"""
from typing import Optional, Tuple, Type

from polytrade.core.exceptions import (
    CredentialDerivationFailedError,
    ExchangeRejectedError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    TradingError,
)
from polytrade.core.models.trading_models import OrderRoute

CREDENTIAL_MARKERS = (
    "unauthorized",
    "invalid api key",
    "api key expired",
    "api key not found",
    "invalid credentials",
    "credentials expired",
)
UNAUTHORIZED_STATUS = 401
ALLOWANCE_MARKERS = ("allowance", "insufficient", "not approved")


def is_credential_error(message: str, status: Optional[int] = None) -> bool:
    """HTTP 401, or wording that names the API credentials themselves"""
    if status == UNAUTHORIZED_STATUS:
        return True
    text = (message or "").lower()
    return any(marker in text for marker in CREDENTIAL_MARKERS)


def textual_kind(message: str) -> Optional[str]:
    """'allowance', 'balance' or None from the message text alone"""
    text = (message or "").lower()
    if any(marker in text for marker in ALLOWANCE_MARKERS):
        return "allowance"
    if "balance" in text:
        return "balance"
    return None


def classify_rejection(
    message: str,
    approvals_satisfied: Optional[bool] = None,
    status: Optional[int] = None,
) -> Tuple[Type[TradingError], OrderRoute]:
    """
    Classify an exchange rejection

    Args:
        message: Exchange error text
        approvals_satisfied: Fresh on-chain check; None when unavailable
        status: HTTP status of the exchange response, when known

    Returns:
        (error class, route)
    """
    if is_credential_error(message, status):
        return CredentialDerivationFailedError, OrderRoute.SESSION

    kind = textual_kind(message)
    if kind == "allowance" and approvals_satisfied:
        # Already fully approved on chain: the funds are what is missing
        kind = "balance"

    if kind == "allowance":
        return InsufficientAllowanceError, OrderRoute.APPROVAL
    if kind == "balance":
        return InsufficientBalanceError, OrderRoute.BALANCE
    return ExchangeRejectedError, OrderRoute.RETRY
