"""
Order Execution Engine - buy/sell placement for the active trading session
Prices, sizes and signs orders with the connected wallet, submits them through
the session's ExchangeClient, classifies rejections and settles platform fees
"""
import time
from typing import Any, Dict, List, Optional

from polytrade.core.exceptions import (
    ExchangeRejectedError,
    InsufficientBalanceError,
    InvalidAmountError,
    SigningCancelledError,
    SigningRejectedError,
)
from polytrade.core.models.trading_models import (
    BuyQuote,
    FeeRecord,
    Order,
    OrderResult,
    OrderRoute,
    OrderSide,
    Outcome,
    Position,
    TimeInForce,
    TradingSession,
)
from polytrade.core.services.api_client.companion_client import CompanionAPIClient, get_companion_client
from polytrade.core.services.approval.approval_orchestrator import ApprovalOrchestrator
from polytrade.core.services.balance.balance_service import BalanceService
from polytrade.core.services.clob.exchange_client import ExchangeClient, extract_error_message
from polytrade.core.services.clob.order_builder import (
    ORDER_TYPES,
    WireOrder,
    apply_precision,
    build_order_message,
    build_order_payload,
    order_domain,
)
from polytrade.core.services.fees.fee_service import FeeService, get_fee_service
from polytrade.core.services.positions.position_service import PositionService
from polytrade.core.services.session.trading_session_manager import TradingSessionManager
from polytrade.core.services.trading.order_classifier import classify_rejection, is_credential_error, textual_kind
from polytrade.core.services.trading.pricing import aggressive_limit_price, clamp_price, quote_buy
from polytrade.infrastructure.logging.logger import get_logger, short_address

logger = get_logger(__name__)


class OrderExecutionEngine:
    """
    Order placement for one TradingSessionManager

    Precondition failures raise typed errors before anything is signed or sent.
    Once an order reaches the wallet, the outcome is reported as an OrderResult:
    rejections carry the classified error kind and the route the UI should take.
    """

    def __init__(
        self,
        session_manager: TradingSessionManager,
        approvals: Optional[ApprovalOrchestrator] = None,
        fee_service: Optional[FeeService] = None,
        companion: Optional[CompanionAPIClient] = None,
        positions: Optional[PositionService] = None,
        balances: Optional[BalanceService] = None,
    ):
        self.session_manager = session_manager
        self.approvals = approvals
        self.fee_service = fee_service or get_fee_service()
        self.companion = companion or get_companion_client()
        self.positions = positions or PositionService()
        self.balances = balances or BalanceService()

    # Quotes and pricing

    async def quote_buy(self, amount: float, price: float, fee_percentage: Optional[float] = None) -> BuyQuote:
        """
        Buy quote including the platform fee

        Args:
            amount: USDC to spend
            price: Price per share
            fee_percentage: Override; current fee configuration when omitted
        """
        if fee_percentage is None:
            fee_percentage = await self.fee_service.get_fee_percentage()
        return quote_buy(amount, price, fee_percentage)

    async def _effective_price(
        self,
        exchange: ExchangeClient,
        token_id: str,
        side: OrderSide,
        time_in_force: TimeInForce,
        price_override: Optional[float],
    ) -> float:
        if time_in_force is TimeInForce.IMMEDIATE_OR_CANCEL:
            price = await exchange.get_midpoint(token_id)
            if price is None:
                book = await exchange.get_order_book(token_id)
                price = book.midpoint
                if price is None:
                    price = book.best_ask if side is OrderSide.BUY else book.best_bid
        elif price_override is not None:
            if not 0 < price_override < 1:
                raise InvalidAmountError(f"Limit price {price_override} must be between 0 and 1")
            price = clamp_price(price_override)
        else:
            book = await exchange.get_order_book(token_id)
            price = aggressive_limit_price(book, side)

        if price is None or price <= 0:
            raise ExchangeRejectedError(f"No price available for token {token_id[:20]}...")
        return price

    @staticmethod
    def _check_expiry(time_in_force: TimeInForce, expiry: Optional[int]) -> None:
        if time_in_force is TimeInForce.GOOD_TIL_DATE and (expiry is None or expiry <= int(time.time())):
            raise InvalidAmountError("Good-til-date orders need an expiry in the future")

    # Placement

    async def place_buy(
        self,
        outcome: Outcome,
        amount: float,
        price_override: Optional[float] = None,
        time_in_force: TimeInForce = TimeInForce.IMMEDIATE_OR_CANCEL,
        expiry: Optional[int] = None,
    ) -> OrderResult:
        """
        Buy shares of an outcome for a USDC amount

        Args:
            outcome: Outcome to buy
            amount: USDC to spend (fee comes on top)
            price_override: Limit price for resting orders
            time_in_force: IOC (market), GTC or GTD
            expiry: Unix timestamp, required for GTD

        Returns:
            OrderResult

        Raises:
            InvalidAmountError, SessionIncompleteError, InsufficientBalanceError
        """
        if amount is None or amount <= 0:
            raise InvalidAmountError("Amount must be greater than zero")
        self._check_expiry(time_in_force, expiry)
        session, exchange = self.session_manager.require_ready()

        logger.info(f"🛒 BUY {outcome.name} ${amount:.2f} ({time_in_force.value}) for {short_address(session.funding_address)}")
        price = await self._effective_price(exchange, outcome.token_id, OrderSide.BUY, time_in_force, price_override)
        quote = await self.quote_buy(amount, price)

        balance = await self.balances.get_usdc_balance(session.funding_address, use_cache=False)
        if balance < quote.total_cost:
            raise InsufficientBalanceError(
                f"Insufficient balance: ${balance:.2f} available, ${quote.total_cost:.2f} needed (incl. fee)"
            )

        order = Order(
            token_id=outcome.token_id,
            side=OrderSide.BUY,
            price=price,
            size=quote.shares,
            time_in_force=time_in_force,
            expiry=expiry,
            neg_risk=outcome.neg_risk,
        )
        return await self._execute(
            session, exchange, order,
            market=outcome.market or outcome.name,
            outcome_name=outcome.name,
            fee_base=quote.amount,
            fee_percentage=quote.fee_percentage,
        )

    async def place_sell(
        self,
        position: Position,
        shares: float,
        price_override: Optional[float] = None,
        time_in_force: TimeInForce = TimeInForce.IMMEDIATE_OR_CANCEL,
        expiry: Optional[int] = None,
    ) -> OrderResult:
        """
        Sell shares of a held position

        Raises:
            InvalidAmountError: shares <= 0 or more than the position holds
        """
        if shares is None or shares <= 0:
            raise InvalidAmountError("Shares to sell must be greater than zero")
        if shares > position.size:
            raise InvalidAmountError(f"Cannot sell {shares} shares, position holds {position.size}")
        self._check_expiry(time_in_force, expiry)
        session, exchange = self.session_manager.require_ready()

        logger.info(f"💰 SELL {shares} {position.outcome_side} shares ({time_in_force.value}) for {short_address(session.funding_address)}")
        price = await self._effective_price(exchange, position.token_id, OrderSide.SELL, time_in_force, price_override)
        fee_percentage = await self.fee_service.get_fee_percentage()

        order = Order(
            token_id=position.token_id,
            side=OrderSide.SELL,
            price=price,
            size=shares,
            time_in_force=time_in_force,
            expiry=expiry,
            neg_risk=position.neg_risk,
        )
        return await self._execute(
            session, exchange, order,
            market=position.title or position.token_id,
            outcome_name=position.outcome_side,
            fee_base=None,
            fee_percentage=fee_percentage,
        )

    async def _execute(
        self,
        session: TradingSession,
        exchange: ExchangeClient,
        order: Order,
        market: str,
        outcome_name: str,
        fee_base: Optional[float],
        fee_percentage: float,
    ) -> OrderResult:
        wire = apply_precision(order)
        wallet = self.session_manager.wallet
        guard = self.session_manager.signing_guard
        message = build_order_message(
            order, wire,
            maker=session.funding_address,
            signer=session.owner_address,
            signature_type=session.signature_type,
        )

        try:
            signature = await guard.run(
                "Sign order",
                lambda: wallet.sign_typed_data(order_domain(order.neg_risk), ORDER_TYPES, message),
            )
        except (SigningRejectedError, SigningCancelledError) as e:
            logger.info(f"✋ Order signing stopped: {e}")
            return OrderResult(
                success=False, error_message=str(e), status="not_submitted",
                error_kind=e.kind, route=OrderRoute.RETRY, order=order,
            )

        payload = build_order_payload(message, signature, session.credentials.key, order.time_in_force)
        try:
            response = await exchange.post_order(payload)
        except Exception as e:
            logger.error(f"❌ Order submission failed: {e}")
            return await self._rejected(session, order, str(e), None)

        error = extract_error_message(response)
        if error is None and isinstance(response, dict) and response.get("success") is False:
            error = "Exchange did not accept the order"
        if error:
            return await self._rejected(session, order, error, response)

        order_id = self._order_id(response)
        status = "open" if order_id else "pending"
        logger.info(
            f"✅ {order.side.value} order {status}: {wire.size} @ {wire.price} "
            f"(${wire.cost:.2f}) id={order_id or 'n/a'}"
        )

        fee = await self._settle_fee(
            session, order, market, order_id,
            fee_base if fee_base is not None else wire.cost,
            fee_percentage,
        )
        await self._record_order(session, order, wire, market, outcome_name, order_id, status, response)
        self._refresh_views(session, order, wire)

        return OrderResult(
            success=True,
            exchange_order_id=order_id,
            raw_response=response,
            status=status,
            order=order,
            fee=fee,
        )

    @staticmethod
    def _order_id(response: Any) -> Optional[str]:
        if not isinstance(response, dict):
            return None
        return response.get("orderID") or response.get("orderId") or response.get("id") or None

    async def _rejected(
        self,
        session: TradingSession,
        order: Order,
        message: str,
        response: Any,
    ) -> OrderResult:
        status = self._response_status(response)
        if is_credential_error(message, status):
            logger.warning(f"🔑 Exchange rejected session credentials: {message}")
            await self.session_manager.invalidate("exchange rejected credentials")
            approvals_satisfied = None
        elif textual_kind(message) == "allowance":
            approvals_satisfied = await self._approvals_satisfied(session.funding_address, order.side)
        else:
            approvals_satisfied = None

        error_class, route = classify_rejection(message, approvals_satisfied, status)
        logger.warning(f"❌ {order.side.value} order rejected ({error_class.kind} → {route.value}): {message}")
        return OrderResult(
            success=False,
            raw_response=response,
            error_message=message,
            status="rejected",
            error_kind=error_class.kind,
            route=route,
            order=order,
        )

    @staticmethod
    def _response_status(response: Any) -> Optional[int]:
        status = response.get("status") if isinstance(response, dict) else None
        return status if isinstance(status, int) else None

    async def _approvals_satisfied(self, funding_address: str, side: OrderSide) -> Optional[bool]:
        """Fresh on-chain approval check; None when it cannot be determined"""
        if self.approvals is None:
            return None
        try:
            status = await self.approvals.check_status(funding_address)
        except Exception as e:
            logger.warning(f"⚠️ Could not re-check approvals after rejection: {e}")
            return None
        return status.usdc_approved if side is OrderSide.BUY else status.fully_approved

    # Side effects of a successful order

    async def _settle_fee(
        self,
        session: TradingSession,
        order: Order,
        market: str,
        order_id: Optional[str],
        fee_base: float,
        fee_percentage: float,
    ) -> Optional[FeeRecord]:
        if fee_percentage <= 0:
            return None
        if order.time_in_force.is_resting:
            return await self.fee_service.record_pending_fill(
                session.funding_address, order.side, market, order.token_id,
                order_id, fee_base, fee_percentage,
            )
        return await self.fee_service.settle_immediate_fee(
            self.session_manager.wallet, self.session_manager.signing_guard,
            session.funding_address, order.side, market, order.token_id,
            order_id, fee_base, fee_percentage,
        )

    async def _record_order(
        self,
        session: TradingSession,
        order: Order,
        wire: WireOrder,
        market: str,
        outcome_name: str,
        order_id: Optional[str],
        status: str,
        response: Any,
    ) -> None:
        await self.companion.record_order({
            "userId": session.owner_address,
            "tokenId": order.token_id,
            "marketName": market,
            "outcome": outcome_name,
            "side": order.side.value,
            "price": wire.price,
            "size": wire.size,
            "totalCost": wire.cost,
            "polymarketOrderId": order_id,
            "status": status,
            "postOrderResponse": response,
        })

    def _refresh_views(self, session: TradingSession, order: Order, wire: WireOrder) -> None:
        funding = session.funding_address
        self.balances.invalidate(funding)
        if order.side is OrderSide.SELL and order.time_in_force is TimeInForce.IMMEDIATE_OR_CANCEL:
            self.positions.apply_sell(funding, order.token_id, wire.size)
        else:
            self.positions.invalidate(funding)

    # Open orders

    async def cancel_order(self, order_id: str) -> Dict[str, Any]:
        """Cancel a resting order; its pending fee is settled by FeeReconciler"""
        session, exchange = self.session_manager.require_ready()
        try:
            response = await exchange.cancel_order(order_id)
        except ExchangeRejectedError as e:
            if is_credential_error(str(e), e.status):
                await self.session_manager.invalidate("exchange rejected credentials")
            raise
        logger.info(f"🗑️ Order {order_id} cancelled")
        self.balances.invalidate(session.funding_address)
        return response

    async def get_open_orders(self, market: Optional[str] = None) -> List[Dict[str, Any]]:
        _, exchange = self.session_manager.require_ready()
        return await exchange.get_open_orders(market)
