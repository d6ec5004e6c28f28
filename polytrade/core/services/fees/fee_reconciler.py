"""
Fee Reconciler - background job collecting fees of resting orders once they fill
"""
import asyncio
from typing import List, Optional

from polytrade.core.models.trading_models import FeeRecord, FeeStatus
from polytrade.core.services.fees.fee_service import FeeService
from polytrade.core.services.session.trading_session_manager import TradingSessionManager
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

LIVE_STATUSES = {"LIVE", "OPEN", "UNMATCHED", "DELAYED"}


class FeeReconciler:
    """
    Walks pending_fill fee records and settles them against the exchange
    - Order still live: keep waiting
    - Order done with a matched size: collect the fee pro rata
    - Order done with nothing matched: no fee is owed
    """

    def __init__(
        self,
        fee_service: FeeService,
        session_manager: TradingSessionManager,
        check_interval: Optional[int] = None,
    ):
        self.fee_service = fee_service
        self.session_manager = session_manager
        self.check_interval = check_interval or settings.fees.reconcile_interval_seconds
        self.running = False
        self.reconcile_task: Optional[asyncio.Task] = None
        self._active_funding: Optional[str] = None

    async def start(self) -> None:
        if self.running:
            logger.warning("⚠️ Fee reconciler already running")
            return
        self.running = True
        self.reconcile_task = asyncio.create_task(self._reconcile_loop(), name="fee_reconciler")
        logger.info(f"🚀 Fee reconciler started (interval: {self.check_interval}s)")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self.reconcile_task and not self.reconcile_task.done():
            self.reconcile_task.cancel()
            try:
                await self.reconcile_task
            except asyncio.CancelledError:
                pass
        logger.info("🛑 Fee reconciler stopped")

    async def _reconcile_loop(self) -> None:
        while self.running:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Fee reconciliation error: {e}")
            await asyncio.sleep(self.check_interval)

    async def run_once(self) -> List[FeeRecord]:
        """
        One reconciliation pass

        Returns:
            Records settled (confirmed or failed) during this pass
        """
        if not self.session_manager.is_ready():
            return []

        session, exchange = self.session_manager.require_ready()
        wallet = self.session_manager.wallet
        funding = (session.funding_address or "").lower()
        if funding != self._active_funding:
            await self.fee_service.restore_pending(funding)
            self._active_funding = funding

        # Records of another funding address wait in the store for their session
        parked = self.fee_service.park_foreign(funding)
        if parked:
            logger.info(f"🧾 Parked {parked} pending fee(s) of another funding address")

        settled = []
        for record in list(self.fee_service.pending_fills):
            try:
                order = await exchange.get_order(record.order_id)
            except Exception as e:
                logger.warning(f"⚠️ Could not fetch order {record.order_id} for fee reconciliation: {e}")
                continue

            result = await self._settle(record, order, wallet, session.funding_address)
            if result is not None:
                await self.fee_service.resolve_pending(record)
                settled.append(result)

        if settled:
            logger.info(f"🧾 Reconciled {len(settled)} pending fee(s)")
        return settled

    async def _settle(self, record: FeeRecord, order, wallet, funding_address: str) -> Optional[FeeRecord]:
        if order is None:
            status, matched, original = "CANCELED", 0.0, 0.0
        else:
            status = str(order.get("status", "")).upper()
            matched = float(order.get("size_matched") or 0)
            original = float(order.get("original_size") or 0)

        if status in LIVE_STATUSES and (original == 0 or matched < original):
            return None

        if matched <= 0:
            logger.info(f"🧾 Order {record.order_id} closed unfilled, no fee owed")
            settled = record.model_copy(update={"status": FeeStatus.FAILED, "amount": 0.0})
            await self.fee_service.record(settled)
            return settled

        fill_ratio = min(matched / original, 1.0) if original else 1.0
        fee_amount = self.fee_service.calculate_fee(record.amount * fill_ratio, 100)
        success, message, tx_hash = await self.fee_service.collect_fee(
            wallet, funding_address, fee_amount, self.session_manager.signing_guard
        )
        settled = record.model_copy(update={
            "status": FeeStatus.CONFIRMED if success else FeeStatus.FAILED,
            "amount": fee_amount,
            "tx_hash": tx_hash,
        })
        if not success:
            logger.warning(f"⚠️ FEE: fill fee for {record.order_id} not collected: {message}")
        await self.fee_service.record(settled)
        return settled
