"""
Trading runtime wiring and background workers.
Builds the services for one wallet connection and runs the refresher and the
fee reconciler next to it until shutdown.
"""

import asyncio
import logging
import signal
from contextlib import suppress
from typing import Optional

from polytrade.core.services.api_client import get_companion_client
from polytrade.core.services.approval import ApprovalOrchestrator
from polytrade.core.services.balance import BalanceService
from polytrade.core.services.chain import get_chain_reader
from polytrade.core.services.deposit import DepositWizard
from polytrade.core.services.fees import FeeReconciler, FeeService, build_pending_fee_store
from polytrade.core.services.funding import FundingAddressResolver
from polytrade.core.services.positions import PositionService
from polytrade.core.services.refresh import RefreshScheduler
from polytrade.core.services.relayer import RelayerClient
from polytrade.core.services.session import TradingSessionManager, build_session_store
from polytrade.core.services.signing import SigningGuard
from polytrade.core.services.trading import OrderExecutionEngine
from polytrade.core.services.wallet import WalletAdapter
from polytrade.infrastructure.logging.logger import setup_logging

logger = logging.getLogger(__name__)


class TradingRuntime:
    """Services of one wallet connection, wired together"""

    def __init__(self, wallet: WalletAdapter, signing_guard: Optional[SigningGuard] = None):
        self.wallet = wallet
        self.chain_reader = get_chain_reader()
        self.companion = get_companion_client()
        self.signing_guard = signing_guard or SigningGuard()
        self.resolver = FundingAddressResolver(self.chain_reader)
        self.relayer = RelayerClient(self.companion)

        self.session_manager = TradingSessionManager(
            store=build_session_store(),
            resolver=self.resolver,
            signing_guard=self.signing_guard,
        )
        self.approvals = ApprovalOrchestrator(
            wallet,
            wallet.backend_kind,
            chain_reader=self.chain_reader,
            relayer=self.relayer,
            signing_guard=self.signing_guard,
            resolver=self.resolver,
        )
        self.wizard = DepositWizard(self.approvals)
        self.positions = PositionService()
        self.balances = BalanceService(self.chain_reader)
        self.fee_service = FeeService(
            self.companion, self.chain_reader, self.relayer, pending_store=build_pending_fee_store()
        )
        self.engine = OrderExecutionEngine(
            self.session_manager,
            approvals=self.approvals,
            fee_service=self.fee_service,
            companion=self.companion,
            positions=self.positions,
            balances=self.balances,
        )
        self.refresher = RefreshScheduler(self.session_manager, self.positions, self.balances, self.fee_service)
        self.reconciler = FeeReconciler(self.fee_service, self.session_manager)
        self.session_manager.on_invalidated(self._on_session_invalidated)

    def _on_session_invalidated(self, reason: str) -> None:
        self.positions.invalidate()
        self.balances.invalidate()
        logger.info(f"🧹 Cached views cleared ({reason})")

    async def start_background(self) -> None:
        await self.refresher.start()
        await self.reconciler.start()

    async def stop_background(self) -> None:
        with suppress(Exception):
            await self.refresher.stop()
        with suppress(Exception):
            await self.reconciler.stop()


async def run_workers(runtime: TradingRuntime, stop_event: Optional[asyncio.Event] = None) -> None:
    """Initialize the session, run background jobs until a shutdown signal"""
    setup_logging()
    logger.info("🚀 Starting trading workers")

    await runtime.session_manager.initialize(runtime.wallet)
    await runtime.start_background()

    stop_event = stop_event or asyncio.Event()

    def _request_shutdown() -> None:
        logger.info("⚠️ Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown)

    try:
        logger.info("✅ Trading workers running")
        await stop_event.wait()
    finally:
        logger.info("🛑 Stopping trading workers")
        await runtime.stop_background()
        if runtime.session_manager.exchange_client is not None:
            with suppress(Exception):
                await runtime.session_manager.exchange_client.close()
