"""
Refresh Scheduler - periodic refresh of read-only trading views
Order books and midpoints, positions and fee configuration, opportunity data.
Jobs only read; they never wait on a wallet signature or an order flow.
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from polytrade.core.models.trading_models import OrderBook, Position
from polytrade.core.services.balance.balance_service import BalanceService
from polytrade.core.services.fees.fee_service import FeeService
from polytrade.core.services.positions.position_service import PositionService
from polytrade.core.services.session.trading_session_manager import TradingSessionManager
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

OpportunitiesLoader = Callable[[], Awaitable[Any]]


class RefreshScheduler:
    """
    Background refresher for the active session's read-only views
    - Order book + midpoint of watched tokens every orderbook_interval (5s)
    - Positions, balance and fee config every positions_interval (30s)
    - Opportunity data every opportunities_interval (60s), when a loader is given
    """

    def __init__(
        self,
        session_manager: TradingSessionManager,
        positions: PositionService,
        balances: BalanceService,
        fee_service: FeeService,
        opportunities_loader: Optional[OpportunitiesLoader] = None,
    ):
        self.session_manager = session_manager
        self.positions = positions
        self.balances = balances
        self.fee_service = fee_service
        self.opportunities_loader = opportunities_loader

        self.watched_tokens: Set[str] = set()
        self.order_books: Dict[str, OrderBook] = {}
        self.midpoints: Dict[str, Optional[float]] = {}
        self.current_positions: List[Position] = []
        self.opportunities: Any = None

        self.running = False
        self._tasks: List[asyncio.Task] = []

    def watch(self, token_id: str) -> None:
        self.watched_tokens.add(token_id)

    def unwatch(self, token_id: str) -> None:
        self.watched_tokens.discard(token_id)
        self.order_books.pop(token_id, None)
        self.midpoints.pop(token_id, None)

    async def start(self) -> None:
        if self.running:
            logger.warning("⚠️ Refresh scheduler already running")
            return
        self.running = True
        jobs = [
            ("refresh_orderbooks", settings.refresh.orderbook_interval, self.refresh_order_books),
            ("refresh_positions", settings.refresh.positions_interval, self.refresh_positions),
        ]
        if self.opportunities_loader is not None:
            jobs.append(("refresh_opportunities", settings.refresh.opportunities_interval, self.refresh_opportunities))

        for name, interval, job in jobs:
            self._tasks.append(asyncio.create_task(self._loop(name, interval, job), name=name))
        logger.info(f"🚀 Refresh scheduler started ({len(jobs)} jobs)")

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("🛑 Refresh scheduler stopped")

    async def _loop(self, name: str, interval: int, job: Callable[[], Awaitable[None]]) -> None:
        while self.running:
            try:
                await job()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ {name} failed: {e}")
            await asyncio.sleep(interval)

    async def refresh_order_books(self) -> None:
        if not self.watched_tokens or not self.session_manager.is_ready():
            return
        _, exchange = self.session_manager.require_ready()
        for token_id in list(self.watched_tokens):
            book, midpoint = await asyncio.gather(
                exchange.get_order_book(token_id),
                exchange.get_midpoint(token_id),
            )
            self.order_books[token_id] = book
            self.midpoints[token_id] = midpoint if midpoint is not None else book.midpoint

    async def refresh_positions(self) -> None:
        await self.fee_service.companion.get_fee_config(force_refresh=True)
        if not self.session_manager.is_ready():
            return
        session, exchange = self.session_manager.require_ready()
        self.current_positions = await self.positions.get_positions(
            session.funding_address, exchange.get_positions, use_cache=False
        )
        await self.balances.get_usdc_balance(session.funding_address, use_cache=False)

    async def refresh_opportunities(self) -> None:
        self.opportunities = await self.opportunities_loader()
