"""
Signing Guard - soft timeout and stale-signature handling for wallet requests

A wallet request cannot be retracted once it reaches the wallet app. The guard
therefore never cancels it: after the warning threshold it only surfaces
guidance, and when the user stops waiting the request's generation is retired so
a signature that arrives later is discarded instead of submitted.
"""
import asyncio
import inspect
from typing import Any, Awaitable, Callable, Optional, TypeVar

from polytrade.core.exceptions import SigningCancelledError, SigningTimeoutError
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SlowSigningCallback = Callable[[SigningTimeoutError], Any]


class SigningGuard:
    """Wraps every wallet signing/transaction request of one session"""

    def __init__(
        self,
        warning_seconds: Optional[float] = None,
        on_slow: Optional[SlowSigningCallback] = None,
    ):
        self.warning_seconds = (
            settings.trading.signing_warning_seconds if warning_seconds is None else warning_seconds
        )
        self.on_slow = on_slow
        self._generation = 0
        self._cancelled = asyncio.Event()
        self.discarded = 0

    @property
    def generation(self) -> int:
        return self._generation

    def cancel_pending(self) -> None:
        """Stop waiting for in-flight requests; their late results are discarded"""
        self._generation += 1
        self._cancelled.set()
        self._cancelled = asyncio.Event()
        logger.info(f"🛑 Signing requests cancelled by user (generation → {self._generation})")

    async def run(self, label: str, request: Callable[[], Awaitable[T]]) -> T:
        """
        Run a wallet request under the guard

        Args:
            label: Human readable action ("Sign order", "Approve USDC"...)
            request: Zero-arg coroutine factory performing the wallet call

        Returns:
            The request result, if it belongs to the current generation

        Raises:
            SigningCancelledError: the user stopped waiting (or the result is stale)
        """
        generation = self._generation
        cancelled = self._cancelled
        task = asyncio.ensure_future(request())
        cancel_waiter = asyncio.ensure_future(cancelled.wait())

        try:
            done, _ = await asyncio.wait(
                {task, cancel_waiter}, timeout=self.warning_seconds, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                warning = SigningTimeoutError(
                    f"{label} is waiting for your wallet. Check the wallet app for a pending request."
                )
                logger.warning(f"⏳ {label} still pending after {self.warning_seconds}s")
                await self._notify_slow(warning)
                await asyncio.wait({task, cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not cancel_waiter.done():
                cancel_waiter.cancel()

        if not task.done():
            task.add_done_callback(lambda t: self._discard(label, generation, t))
            raise SigningCancelledError(f"{label} cancelled; the wallet request may still be open")

        if generation != self._generation:
            self._discard(label, generation, task)
            raise SigningCancelledError(f"{label} completed after cancellation and was discarded")

        return task.result()

    async def _notify_slow(self, warning: SigningTimeoutError) -> None:
        if self.on_slow is None:
            return
        try:
            result = self.on_slow(warning)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"⚠️ Slow-signing callback failed: {e}")

    def _discard(self, label: str, generation: int, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        self.discarded += 1
        error = task.exception()
        if error is not None:
            logger.info(f"🗑️ Orphaned {label} (generation {generation}) ended with error: {error}")
        else:
            logger.warning(f"🗑️ Discarded orphaned {label} result from generation {generation}")
