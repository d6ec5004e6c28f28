"""
Trading Core Custom Exceptions
Exception hierarchy shared by the session, approval and execution services
"""
from typing import Optional


class TradingError(Exception):
    """Base exception for trading core errors"""

    kind = "trading_error"
    # Actionable next step surfaced to the user: approval, balance, session, retry
    next_step = "retry"

    def __init__(self, message: str = "", *, next_step: Optional[str] = None):
        super().__init__(message or self.__class__.__doc__)
        if next_step:
            self.next_step = next_step


class WalletNotConnectedError(TradingError):
    """Raised when no wallet is connected or the address is unusable"""
    kind = "wallet_not_connected"


class NetworkMismatchError(TradingError):
    """Raised when the wallet is on a different chain than Polygon"""
    kind = "network_mismatch"


class NetworkSwitchError(NetworkMismatchError):
    """Raised when the wallet rejects or cannot perform a network switch"""
    kind = "network_switch"


class SigningRejectedError(TradingError):
    """Raised when the user rejects a signature or transaction request"""
    kind = "signing_rejected"


class SigningTimeoutError(TradingError):
    """Raised (soft) when a signature takes longer than the warning threshold"""
    kind = "signing_timeout"


class SigningCancelledError(TradingError):
    """Raised when the caller stopped waiting for a signature request"""
    kind = "signing_cancelled"


class CredentialDerivationFailedError(TradingError):
    """Raised when exchange API credentials cannot be derived or created"""
    kind = "credential_derivation_failed"
    next_step = "session"


class SessionIncompleteError(TradingError):
    """Raised when trading is attempted without a ready session"""
    kind = "session_incomplete"
    next_step = "session"


class SetupRequiredError(SessionIncompleteError):
    """Raised when the funding address cannot be resolved and setup must run first"""
    kind = "setup_required"
    next_step = "approval"


class InsufficientAllowanceError(TradingError):
    """Raised when the funding address has not approved the exchange contracts"""
    kind = "insufficient_allowance"
    next_step = "approval"


class InsufficientBalanceError(TradingError):
    """Raised when the funding address cannot cover the order cost"""
    kind = "insufficient_balance"
    next_step = "balance"


class InvalidAmountError(TradingError):
    """Raised when an amount, share count, price or expiry is invalid"""
    kind = "invalid_amount"


class ExchangeRejectedError(TradingError):
    """Raised when the exchange rejects a request for an unclassified reason"""
    kind = "exchange_rejected"

    def __init__(self, message: str = "", *, status: Optional[int] = None, next_step: Optional[str] = None):
        super().__init__(message, next_step=next_step)
        self.status = status


class FeeTransferFailedError(TradingError):
    """Raised when the platform fee transfer fails (never fails the trade)"""
    kind = "fee_transfer_failed"


class RelayerUnavailableError(TradingError):
    """Raised when the fee-sponsored relay path cannot be used"""
    kind = "relayer_unavailable"
