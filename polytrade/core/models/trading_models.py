"""
Trading Models
Data models for wallet connections, sessions, approvals, orders and fees
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BackendKind(str, Enum):
    """Wallet backends supported by the trading core"""
    CUSTODIAL = "custodial"
    EXTENSION = "extension"
    RELAY = "relay"
    MOBILE = "mobile"

    @property
    def is_custodial(self) -> bool:
        return self is BackendKind.CUSTODIAL


class SignatureType(int, Enum):
    """Exchange order signature schemes"""
    EOA = 0
    POLY_PROXY = 1
    POLY_GNOSIS_SAFE = 2


class OrderSide(str, Enum):
    BUY = "BUY"
    SELL = "SELL"


class TimeInForce(str, Enum):
    """Order time-in-force policies and their exchange order type"""
    IMMEDIATE_OR_CANCEL = "FOK"
    GOOD_TIL_CANCELLED = "GTC"
    GOOD_TIL_DATE = "GTD"

    @property
    def is_resting(self) -> bool:
        return self is not TimeInForce.IMMEDIATE_OR_CANCEL


class ApprovalState(str, Enum):
    """Approval orchestration states"""
    CHECKING = "checking"
    NEEDS_USDC_APPROVAL = "needs_usdc_approval"
    NEEDS_POSITION_TOKEN_APPROVAL = "needs_position_token_approval"
    NEEDS_DEPOSIT = "needs_deposit"
    COMPLETE = "complete"
    REVOKING = "revoking"
    ERROR = "error"


class FeeStatus(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    PENDING_FILL = "pending_fill"
    FAILED = "failed"


class OrderRoute(str, Enum):
    """Where the caller should send the user after a failed order"""
    APPROVAL = "approval"
    BALANCE = "balance"
    SESSION = "session"
    RETRY = "retry"


class WalletConnection(BaseModel):
    """The single active wallet connection"""
    owner_address: str
    backend_kind: BackendKind
    network: int
    can_sign: bool = True


class FundingAddress(BaseModel):
    """Address holding the tradable balance for an owner"""
    address: str
    deployed: bool
    backend_kind: BackendKind


class ApiCredentials(BaseModel):
    """Exchange L2 API credentials"""
    key: str
    secret: str
    passphrase: str
    derived_at: datetime = Field(default_factory=utc_now)


class TradingSession(BaseModel):
    """
    Trading session bound to one owner address
    Ready for trading when credentials and a funding address are both present
    """
    owner_address: str
    backend_kind: BackendKind
    funding_address: Optional[str] = None
    signature_type: SignatureType = SignatureType.EOA
    proxy_deployed: bool = False
    credentials: Optional[ApiCredentials] = None
    last_checked_at: datetime = Field(default_factory=utc_now)

    def is_ready(self) -> bool:
        return self.credentials is not None and bool(self.funding_address)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "TradingSession":
        return cls.model_validate_json(raw)


class ApprovalStatus(BaseModel):
    """
    Live approval snapshot for a funding address
    Derived from chain reads every time, never persisted
    """
    funding_address: str
    usdc_allowances: Dict[str, int] = Field(default_factory=dict)
    position_token_approvals: Dict[str, bool] = Field(default_factory=dict)
    funding_balance: float = 0.0
    owner_balance: float = 0.0
    native_usdc_balance: float = 0.0
    deposit_proxy_address: Optional[str] = None
    deposit_proxy_balance: Optional[float] = None
    needs_usdc_approval: bool = False
    needs_position_token_approval: bool = False
    needs_deposit: bool = False
    needs_swap: bool = False
    remaining_usdc_grants: List[str] = Field(default_factory=list)
    remaining_position_token_grants: List[str] = Field(default_factory=list)
    state: ApprovalState = ApprovalState.CHECKING
    checked_at: datetime = Field(default_factory=utc_now)

    @property
    def usdc_approved(self) -> bool:
        return not self.needs_usdc_approval

    @property
    def fully_approved(self) -> bool:
        return not (self.needs_usdc_approval or self.needs_position_token_approval)

    def summary(self) -> str:
        return (
            f"{len(self.remaining_usdc_grants)} USDC grant(s) and "
            f"{len(self.remaining_position_token_grants)} position token grant(s) remaining"
        )


class Outcome(BaseModel):
    """A tradable outcome of a market"""
    token_id: str
    name: str
    market: str = ""
    neg_risk: bool = False


class Order(BaseModel):
    token_id: str
    side: OrderSide
    price: float
    size: float
    time_in_force: TimeInForce = TimeInForce.IMMEDIATE_OR_CANCEL
    expiry: Optional[int] = None
    neg_risk: bool = False


class FeeRecord(BaseModel):
    wallet_address: str
    side: OrderSide
    market: str
    amount: float
    percentage: float
    status: FeeStatus
    token_id: Optional[str] = None
    order_id: Optional[str] = None
    order_amount: Optional[float] = None
    tx_hash: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class OrderResult(BaseModel):
    """
    Outcome of an order placement
    A success without an exchange order id is a valid pending state
    """
    success: bool
    exchange_order_id: Optional[str] = None
    raw_response: Any = None
    error_message: Optional[str] = None
    status: Optional[str] = None
    error_kind: Optional[str] = None
    route: Optional[OrderRoute] = None
    order: Optional[Order] = None
    fee: Optional[FeeRecord] = None


class Position(BaseModel):
    token_id: str
    outcome_side: str
    size: float
    average_entry_price: float = 0.0
    current_price: float = 0.0
    title: Optional[str] = None
    neg_risk: bool = False


class PriceLevel(BaseModel):
    price: float
    size: float


class OrderBook(BaseModel):
    """Order book snapshot; level ordering from the exchange is not trusted"""
    token_id: str
    bids: List[PriceLevel] = Field(default_factory=list)
    asks: List[PriceLevel] = Field(default_factory=list)

    @property
    def best_bid(self) -> Optional[float]:
        return max((level.price for level in self.bids), default=None)

    @property
    def best_ask(self) -> Optional[float]:
        return min((level.price for level in self.asks), default=None)

    @property
    def midpoint(self) -> Optional[float]:
        if self.best_bid is None or self.best_ask is None:
            return None
        return (self.best_bid + self.best_ask) / 2


class BuyQuote(BaseModel):
    amount: float
    price: float
    shares: float
    fee_percentage: float
    fee_amount: float
    total_cost: float
    potential_payout: float
    potential_profit: float
