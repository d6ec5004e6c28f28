"""
Fee Service - platform fee calculation, collection and recording
Fee collection is a best-effort secondary transfer to the treasury; a failed
transfer is recorded and logged but never fails the trade it belongs to.
"""
from decimal import ROUND_DOWN, Decimal
from typing import Dict, List, Optional, Tuple

from polytrade.core.exceptions import FeeTransferFailedError
from polytrade.core.models.trading_models import FeeRecord, FeeStatus, OrderSide
from polytrade.core.services.api_client.companion_client import CompanionAPIClient, get_companion_client
from polytrade.core.services.chain.chain_reader import ChainReader, get_chain_reader
from polytrade.core.services.chain.contracts import USDC_E_ADDRESS, encode_transfer, to_base_units
from polytrade.core.services.fees.pending_fee_store import MemoryPendingFeeStore, PendingFeeStore
from polytrade.core.services.relayer.relayer_client import RelayerClient, RelayTransaction
from polytrade.core.services.signing.signing_guard import SigningGuard
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger, short_address

logger = get_logger(__name__)

MINIMUM_FEE_USD = Decimal(str(settings.fees.min_collectable_amount))


class FeeService:
    """
    Platform fees
    - Immediate orders: transfer attempted right after the order succeeds
    - Resting orders: recorded as pending_fill for FeeReconciler
    """

    def __init__(
        self,
        companion: Optional[CompanionAPIClient] = None,
        chain_reader: Optional[ChainReader] = None,
        relayer: Optional[RelayerClient] = None,
        pending_store: Optional[PendingFeeStore] = None,
    ):
        self.companion = companion or get_companion_client()
        self.chain_reader = chain_reader or get_chain_reader()
        self.relayer = relayer
        self.pending_store = pending_store or MemoryPendingFeeStore()
        self.pending_fills: List[FeeRecord] = []

    async def get_fee_config(self) -> Dict:
        return await self.companion.get_fee_config()

    async def get_fee_percentage(self) -> float:
        config = await self.get_fee_config()
        return config["fee_percentage"] if config.get("enabled") else 0.0

    @staticmethod
    def calculate_fee(amount: float, fee_percentage: float) -> float:
        """fee = amount x percentage / 100, truncated to USDC precision"""
        fee = Decimal(str(amount)) * Decimal(str(fee_percentage)) / Decimal("100")
        return float(fee.quantize(Decimal("0.000001"), rounding=ROUND_DOWN))

    async def collect_fee(
        self,
        wallet: WalletAdapter,
        funding_address: str,
        fee_amount: float,
        signing_guard: SigningGuard,
    ) -> Tuple[bool, str, Optional[str]]:
        """
        Transfer the fee from the funding address to the treasury

        Returns:
            (success, message, tx_hash)
        """
        config = await self.get_fee_config()
        treasury = config.get("treasury_address")
        if not config.get("enabled") or not treasury:
            return False, "Fees disabled or no treasury configured", None
        if Decimal(str(fee_amount)) < MINIMUM_FEE_USD:
            return False, f"Fee ${fee_amount:.6f} below collectable minimum", None

        data = encode_transfer(treasury, to_base_units(fee_amount))
        owner = await wallet.get_address()
        try:
            if owner.lower() == funding_address.lower():
                tx_hash = await signing_guard.run(
                    "Platform fee", lambda: wallet.send_transaction(USDC_E_ADDRESS, data)
                )
                receipt = await self.chain_reader.wait_for_receipt(tx_hash)
                if receipt.get("status", 1) != 1:
                    raise FeeTransferFailedError(f"Fee transfer reverted: {tx_hash}")
            else:
                if self.relayer is None:
                    raise FeeTransferFailedError("Fee transfer from a Safe needs the relayer")
                tx_hash = await signing_guard.run(
                    "Platform fee",
                    lambda: self.relayer.execute(wallet, [RelayTransaction(to=USDC_E_ADDRESS, data=data)]),
                )
        except Exception as e:
            logger.error(f"❌ FEE: transfer of ${fee_amount:.4f} failed: {e}")
            return False, str(e), None

        logger.info(f"💸 FEE: ${fee_amount:.4f} collected to treasury ({tx_hash})")
        return True, "Fee collected", tx_hash

    async def settle_immediate_fee(
        self,
        wallet: WalletAdapter,
        signing_guard: SigningGuard,
        funding_address: str,
        side: OrderSide,
        market: str,
        token_id: str,
        order_id: Optional[str],
        order_amount: float,
        fee_percentage: float,
    ) -> Optional[FeeRecord]:
        """Collect and record the fee of a filled immediate order; never raises"""
        fee_amount = self.calculate_fee(order_amount, fee_percentage)
        if fee_amount <= 0:
            return None

        try:
            success, message, tx_hash = await self.collect_fee(wallet, funding_address, fee_amount, signing_guard)
        except Exception as e:
            success, message, tx_hash = False, str(e), None

        record = FeeRecord(
            wallet_address=funding_address,
            side=side,
            market=market,
            amount=fee_amount,
            percentage=fee_percentage,
            status=FeeStatus.CONFIRMED if success else FeeStatus.FAILED,
            token_id=token_id,
            order_id=order_id,
            order_amount=order_amount,
            tx_hash=tx_hash,
        )
        if not success:
            logger.warning(f"⚠️ FEE: not collected for order {order_id}: {message}")
        await self.record(record)
        return record

    async def record_pending_fill(
        self,
        funding_address: str,
        side: OrderSide,
        market: str,
        token_id: str,
        order_id: Optional[str],
        order_amount: float,
        fee_percentage: float,
    ) -> Optional[FeeRecord]:
        """Record the fee of a resting order, collected once it fills"""
        fee_amount = self.calculate_fee(order_amount, fee_percentage)
        if fee_amount <= 0:
            return None

        record = FeeRecord(
            wallet_address=funding_address,
            side=side,
            market=market,
            amount=fee_amount,
            percentage=fee_percentage,
            status=FeeStatus.PENDING_FILL,
            token_id=token_id,
            order_id=order_id,
            order_amount=order_amount,
        )
        if order_id:
            self.pending_fills.append(record)
            await self.pending_store.add(record)
        else:
            logger.warning("⚠️ FEE: resting order without exchange id, fee cannot be reconciled")
        await self.record(record)
        return record

    async def restore_pending(self, funding_address: str) -> int:
        """
        Reload persisted pending_fill records of a funding address

        Returns:
            Number of records added to pending_fills
        """
        known = {record.order_id for record in self.pending_fills}
        restored = [
            record for record in await self.pending_store.load(funding_address)
            if record.order_id not in known
        ]
        self.pending_fills.extend(restored)
        if restored:
            logger.info(f"🧾 Restored {len(restored)} pending fee(s) for {short_address(funding_address)}")
        return len(restored)

    def park_foreign(self, funding_address: str) -> int:
        """Drop records of other funding addresses from memory; they stay persisted"""
        current = funding_address.lower()
        kept = [record for record in self.pending_fills if record.wallet_address.lower() == current]
        parked = len(self.pending_fills) - len(kept)
        self.pending_fills = kept
        return parked

    async def resolve_pending(self, record: FeeRecord) -> None:
        if record in self.pending_fills:
            self.pending_fills.remove(record)
        await self.pending_store.remove(record)

    async def record(self, record: FeeRecord) -> bool:
        return await self.companion.record_fee({
            "walletAddress": record.wallet_address,
            "orderType": record.side.value,
            "marketName": record.market,
            "tokenId": record.token_id,
            "polymarketOrderId": record.order_id,
            "orderAmount": record.order_amount,
            "feePercentage": record.percentage,
            "feeAmount": record.amount,
            "txHash": record.tx_hash,
            "status": record.status.value,
        })


# Global instance
_fee_service: Optional[FeeService] = None


def get_fee_service() -> FeeService:
    """Get or create FeeService instance"""
    global _fee_service
    if _fee_service is None:
        _fee_service = FeeService()
    return _fee_service
