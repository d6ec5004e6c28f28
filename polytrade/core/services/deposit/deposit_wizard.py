"""
Deposit Wizard - guided, resumable setup flow
Sequences approvals and the custodial deposit. State is always re-derived from
chain reads when the wizard opens; a pending_retry flag carries the order that
sent the user here across the wizard boundary.
"""
from enum import Enum
from typing import Optional

from polytrade.core.models.trading_models import ApprovalState, ApprovalStatus
from polytrade.core.services.approval.approval_orchestrator import ApprovalOrchestrator
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


class WizardStep(str, Enum):
    CHECK = "check"
    APPROVE_USDC = "approve_usdc"
    APPROVE_POSITION_TOKENS = "approve_position_tokens"
    DEPOSIT = "deposit"
    COMPLETE = "complete"
    REVOKE = "revoke"
    ERROR = "error"

    @property
    def display_name(self) -> str:
        return {
            WizardStep.CHECK: "Checking wallet",
            WizardStep.APPROVE_USDC: "Approve USDC",
            WizardStep.APPROVE_POSITION_TOKENS: "Approve position tokens",
            WizardStep.DEPOSIT: "Deposit",
            WizardStep.COMPLETE: "Ready to trade",
            WizardStep.REVOKE: "Reset approvals",
            WizardStep.ERROR: "Something went wrong",
        }[self]


_STATE_TO_STEP = {
    ApprovalState.CHECKING: WizardStep.CHECK,
    ApprovalState.NEEDS_USDC_APPROVAL: WizardStep.APPROVE_USDC,
    ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL: WizardStep.APPROVE_POSITION_TOKENS,
    ApprovalState.NEEDS_DEPOSIT: WizardStep.DEPOSIT,
    ApprovalState.COMPLETE: WizardStep.COMPLETE,
    ApprovalState.REVOKING: WizardStep.REVOKE,
    ApprovalState.ERROR: WizardStep.ERROR,
}

_STEP_TO_STATE = {step: state for state, step in _STATE_TO_STEP.items()}


def next_step(status: ApprovalStatus, is_custodial: bool) -> WizardStep:
    """
    Pure transition function from a live approval status

    Steps whose precondition is already satisfied are skipped; deposit is only
    reachable for custodial wallets with a low proxy balance and a funded owner.
    """
    if status.needs_usdc_approval:
        return WizardStep.APPROVE_USDC
    if status.needs_position_token_approval:
        return WizardStep.APPROVE_POSITION_TOKENS
    if is_custodial and status.needs_deposit:
        return WizardStep.DEPOSIT
    return WizardStep.COMPLETE


class DepositWizard:
    """Orchestration state machine driving ApprovalOrchestrator"""

    def __init__(self, orchestrator: ApprovalOrchestrator):
        self.orchestrator = orchestrator
        self.step = WizardStep.CHECK
        self.status: Optional[ApprovalStatus] = None
        self.error: Optional[str] = None
        self.pending_retry = False
        self.is_open = False

    @property
    def is_custodial(self) -> bool:
        return self.orchestrator.is_custodial

    async def open(self, pending_retry: bool = False) -> WizardStep:
        """
        Open (or reopen) the wizard

        Args:
            pending_retry: Set when opened from a failed order the user wants retried
        """
        self.is_open = True
        self.pending_retry = self.pending_retry or pending_retry
        return await self.recheck()

    def close(self) -> None:
        """Close the wizard; nothing but pending_retry survives reopening"""
        self.is_open = False
        self.status = None
        self.step = WizardStep.CHECK

    async def recheck(self) -> WizardStep:
        self.step = WizardStep.CHECK
        try:
            self.status = await self.orchestrator.check_status()
        except Exception as e:
            return self._fail(e)
        return self._advance(next_step(self.status, self.is_custodial))

    def skip(self) -> WizardStep:
        """User asserts the current step was completed elsewhere"""
        if self.step in (WizardStep.COMPLETE, WizardStep.ERROR, WizardStep.REVOKE, WizardStep.CHECK):
            return self.step
        state = self.orchestrator.skip(_STEP_TO_STATE[self.step])
        return self._advance(_STATE_TO_STEP[state])

    async def approve_usdc(self, use_fee_sponsored_path: bool = False) -> WizardStep:
        try:
            self.status = await self.orchestrator.approve_usdc(use_fee_sponsored_path)
        except Exception as e:
            return self._fail(e)
        return self._advance(next_step(self.status, self.is_custodial))

    async def approve_position_tokens(self, use_fee_sponsored_path: bool = False) -> WizardStep:
        try:
            self.status = await self.orchestrator.approve_position_tokens(use_fee_sponsored_path)
        except Exception as e:
            return self._fail(e)
        return self._advance(next_step(self.status, self.is_custodial))

    async def deposit(self, amount: float) -> WizardStep:
        try:
            await self.orchestrator.deposit(amount)
        except Exception as e:
            return self._fail(e)
        self.status = self.orchestrator.last_status
        if self.status is None:
            return await self.recheck()
        return self._advance(next_step(self.status, self.is_custodial))

    def request_revoke(self) -> WizardStep:
        self.step = WizardStep.REVOKE
        return self.step

    async def confirm_revoke(self) -> WizardStep:
        try:
            await self.orchestrator.revoke_all()
        except Exception as e:
            return self._fail(e)
        return await self.recheck()

    def take_pending_retry(self) -> bool:
        """Consume the retry flag once the wizard completed"""
        if self.step is not WizardStep.COMPLETE or not self.pending_retry:
            return False
        self.pending_retry = False
        logger.info("🔁 Setup complete, retrying the pending order")
        return True

    def _advance(self, step: WizardStep) -> WizardStep:
        if step is not self.step:
            logger.info(f"🧭 Deposit wizard: {self.step.value} → {step.value}")
        self.step = step
        self.error = None
        return step

    def _fail(self, error: Exception) -> WizardStep:
        self.step = WizardStep.ERROR
        self.error = str(error)
        logger.error(f"❌ Deposit wizard error: {error}")
        return self.step
