"""
Approval Orchestrator - Contract Approvals for Polymarket Trading
Reads live allowances for the funding address and drives the approval steps,
directly through the wallet or through the gasless relayer
"""
import asyncio
from typing import List, Optional, Tuple

from polytrade.core.exceptions import InsufficientBalanceError, InvalidAmountError, TradingError
from polytrade.core.models.trading_models import ApprovalState, ApprovalStatus, BackendKind
from polytrade.core.services.chain.chain_reader import ChainReader, get_chain_reader
from polytrade.core.services.chain.contracts import (
    CONDITIONAL_TOKENS_ADDRESS,
    MAX_UINT256,
    POSITION_TOKEN_OPERATORS,
    REVOKABLE_USDC_SPENDERS,
    USDC_E_ADDRESS,
    USDC_SPENDERS,
    encode_approve,
    encode_set_approval_for_all,
    encode_transfer,
    to_base_units,
)
from polytrade.core.services.funding.funding_resolver import FundingAddressResolver, derive_proxy_address
from polytrade.core.services.relayer.relayer_client import RelayerClient, RelayTransaction
from polytrade.core.services.signing.signing_guard import SigningGuard
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter
from polytrade.infrastructure.config.settings import settings
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

# Forced advancement order used by skip()
_STEP_ORDER = [
    ApprovalState.NEEDS_USDC_APPROVAL,
    ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL,
    ApprovalState.NEEDS_DEPOSIT,
    ApprovalState.COMPLETE,
]


def next_approval_state(status: ApprovalStatus, is_custodial: bool) -> ApprovalState:
    """Pure transition rule from a live status snapshot"""
    if status.needs_usdc_approval:
        return ApprovalState.NEEDS_USDC_APPROVAL
    if status.needs_position_token_approval:
        return ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL
    if is_custodial and status.needs_deposit:
        return ApprovalState.NEEDS_DEPOSIT
    return ApprovalState.COMPLETE


def state_after_skip(state: ApprovalState, is_custodial: bool) -> ApprovalState:
    """State reached when the user asserts the current step was done elsewhere"""
    if state not in _STEP_ORDER or state is ApprovalState.COMPLETE:
        return ApprovalState.COMPLETE
    following = _STEP_ORDER[_STEP_ORDER.index(state) + 1]
    if following is ApprovalState.NEEDS_DEPOSIT and not is_custodial:
        return ApprovalState.COMPLETE
    return following


class ApprovalOrchestrator:
    """
    Approval state machine for one wallet connection
    - Status is always recomputed from chain reads; cached copies are advisory
    - Every wallet request goes through the session's SigningGuard
    """

    def __init__(
        self,
        wallet: WalletAdapter,
        backend_kind: BackendKind,
        chain_reader: Optional[ChainReader] = None,
        relayer: Optional[RelayerClient] = None,
        signing_guard: Optional[SigningGuard] = None,
        resolver: Optional[FundingAddressResolver] = None,
    ):
        self.wallet = wallet
        self.backend_kind = backend_kind
        self.chain_reader = chain_reader or get_chain_reader()
        self.relayer = relayer
        self.signing_guard = signing_guard or SigningGuard()
        self.resolver = resolver or FundingAddressResolver(self.chain_reader)
        self.threshold = settings.trading.allowance_threshold_units
        self.state = ApprovalState.CHECKING
        self.last_status: Optional[ApprovalStatus] = None
        self.last_error: Optional[str] = None
        self.funding_address: Optional[str] = None
        self.owner_address: Optional[str] = None

    @property
    def is_custodial(self) -> bool:
        return self.backend_kind.is_custodial

    async def _addresses(self, funding_address: Optional[str]) -> Tuple[str, str]:
        owner = self.owner_address or await self.wallet.get_address()
        funding = funding_address or self.funding_address or self.resolver.derive(owner, self.backend_kind)
        self.owner_address, self.funding_address = owner, funding
        return owner, funding

    async def check_status(self, funding_address: Optional[str] = None) -> ApprovalStatus:
        """
        Read all approval gates and balances for the funding address

        Args:
            funding_address: Address to inspect (defaults to the derived one)

        Returns:
            ApprovalStatus with the next state applied to the orchestrator
        """
        self.state = ApprovalState.CHECKING
        owner, funding = await self._addresses(funding_address)

        holders = [funding] if owner.lower() == funding.lower() else [funding, owner]
        try:
            gates, balances = await asyncio.gather(
                asyncio.gather(*[self._read_gates(holder) for holder in holders]),
                self._read_balances(owner, funding),
            )
        except Exception as e:
            self.state = ApprovalState.ERROR
            self.last_error = str(e)
            logger.error(f"❌ Approval status check failed for {funding}: {e}")
            raise

        funding_balance, owner_balance, native_balance, proxy_address, proxy_balance = balances
        # A gate held by either the funding address or the owner counts as granted
        usdc_allowances = {
            name: max(int(allowances[i]) for allowances, _ in gates) for i, (name, _) in enumerate(USDC_SPENDERS)
        }
        position_approvals = {
            name: any(bool(approvals[i]) for _, approvals in gates)
            for i, (name, _) in enumerate(POSITION_TOKEN_OPERATORS)
        }

        remaining_usdc = [name for name, value in usdc_allowances.items() if value < self.threshold]
        remaining_position = [name for name, approved in position_approvals.items() if not approved]
        low = settings.trading.deposit_low_balance

        status = ApprovalStatus(
            funding_address=funding,
            usdc_allowances=usdc_allowances,
            position_token_approvals=position_approvals,
            funding_balance=funding_balance,
            owner_balance=owner_balance,
            native_usdc_balance=native_balance,
            deposit_proxy_address=proxy_address,
            deposit_proxy_balance=proxy_balance,
            needs_usdc_approval=bool(remaining_usdc),
            needs_position_token_approval=bool(remaining_position),
            needs_deposit=(
                self.is_custodial
                and proxy_balance is not None
                and proxy_balance < low
                and owner_balance >= low
            ),
            needs_swap=native_balance >= 1 and funding_balance < 0.01,
            remaining_usdc_grants=remaining_usdc,
            remaining_position_token_grants=remaining_position,
        )
        status.state = next_approval_state(status, self.is_custodial)

        self.state = status.state
        self.last_status = status
        self.last_error = None
        logger.info(f"🔍 Approval status for {funding}: {status.state.value} ({status.summary()})")
        return status

    async def _read_gates(self, holder: str) -> Tuple[List[int], List[bool]]:
        allowances, approvals = await asyncio.gather(
            asyncio.gather(*[self.chain_reader.get_usdc_allowance(holder, spender) for _, spender in USDC_SPENDERS]),
            asyncio.gather(*[
                self.chain_reader.is_approved_for_all(holder, operator) for _, operator in POSITION_TOKEN_OPERATORS
            ]),
        )
        return list(allowances), list(approvals)

    async def _read_balances(self, owner: str, funding: str):
        funding_balance, native_balance = await asyncio.gather(
            self.chain_reader.get_usdc_balance(funding),
            self.chain_reader.get_native_usdc_balance(owner),
        )
        owner_balance = funding_balance
        if owner.lower() != funding.lower():
            owner_balance = await self.chain_reader.get_usdc_balance(owner)

        proxy_address = proxy_balance = None
        if self.is_custodial:
            proxy_address = derive_proxy_address(owner)
            proxy_balance = await self.chain_reader.get_usdc_balance(proxy_address)
        return funding_balance, owner_balance, native_balance, proxy_address, proxy_balance

    async def _current_status(self) -> ApprovalStatus:
        # Approval decisions always come from a fresh read
        return await self.check_status()

    async def _send_direct(self, label: str, to: str, data: str) -> str:
        tx_hash = await self.signing_guard.run(label, lambda: self.wallet.send_transaction(to, data))
        receipt = await self.chain_reader.wait_for_receipt(tx_hash)
        if receipt.get("status", 1) != 1:
            raise TradingError(f"{label} transaction reverted: {tx_hash}")
        logger.info(f"✅ {label} confirmed: {tx_hash}")
        return tx_hash

    async def _send_sponsored(self, label: str, transactions: List[RelayTransaction]) -> str:
        if self.relayer is None or not await self.relayer.is_available():
            raise TradingError("Gasless approvals are not available right now", next_step="retry")
        tx_hash = await self.signing_guard.run(label, lambda: self.relayer.execute(self.wallet, transactions))
        logger.info(f"✅ {label} relayed: {tx_hash}")
        return tx_hash

    async def _run_step(self, label: str, transactions: List[Tuple[str, str, str]], sponsored: bool) -> List[str]:
        if sponsored:
            batch = [RelayTransaction(to=to, data=data) for _, to, data in transactions]
            return [await self._send_sponsored(label, batch)]

        if not self.is_custodial:
            logger.info("ℹ️ Direct approvals are sent from the owner wallet; owner grants count toward the gates")
        hashes = []
        for name, to, data in transactions:
            hashes.append(await self._send_direct(f"{label} ({name})", to, data))
        return hashes

    async def approve_usdc(self, use_fee_sponsored_path: bool = False) -> ApprovalStatus:
        """Grant every USDC.e allowance that is still below threshold, then re-check"""
        status = await self._current_status()
        missing = [
            (name, USDC_E_ADDRESS, encode_approve(spender, MAX_UINT256))
            for name, spender in USDC_SPENDERS
            if name in status.remaining_usdc_grants
        ]
        if not missing:
            logger.info("✅ USDC.e already approved for all spenders")
            return status

        try:
            await self._run_step("Approve USDC", missing, use_fee_sponsored_path)
        except Exception as e:
            self._fail(e)
            raise
        return await self.check_status()

    async def approve_position_tokens(self, use_fee_sponsored_path: bool = False) -> ApprovalStatus:
        """setApprovalForAll for each exchange operator still missing, then re-check"""
        status = await self._current_status()
        missing = [
            (name, CONDITIONAL_TOKENS_ADDRESS, encode_set_approval_for_all(operator, True))
            for name, operator in POSITION_TOKEN_OPERATORS
            if name in status.remaining_position_token_grants
        ]
        if not missing:
            logger.info("✅ Position tokens already approved for all operators")
            return status

        try:
            await self._run_step("Approve position tokens", missing, use_fee_sponsored_path)
        except Exception as e:
            self._fail(e)
            raise
        return await self.check_status()

    async def deposit(self, amount: float) -> str:
        """
        Move USDC.e from the owner wallet to the custodial deposit proxy

        Args:
            amount: USDC amount

        Returns:
            Transaction hash
        """
        if amount is None or amount <= 0:
            raise InvalidAmountError("Deposit amount must be greater than zero")

        owner, _ = await self._addresses(None)
        available = await self.chain_reader.get_usdc_balance(owner)
        if amount > available:
            raise InsufficientBalanceError(f"Deposit of ${amount:.2f} exceeds wallet balance ${available:.2f}")

        proxy = derive_proxy_address(owner)
        try:
            tx_hash = await self._send_direct(
                f"Deposit ${amount:.2f}", USDC_E_ADDRESS, encode_transfer(proxy, to_base_units(amount))
            )
        except Exception as e:
            self._fail(e)
            raise
        await self.check_status()
        return tx_hash

    async def revoke_all(self) -> List[str]:
        """Zero every known approval (diagnostic reset path, five transactions)"""
        self.state = ApprovalState.REVOKING
        transactions = [
            (name, USDC_E_ADDRESS, encode_approve(spender, 0)) for name, spender in REVOKABLE_USDC_SPENDERS
        ] + [
            (name, CONDITIONAL_TOKENS_ADDRESS, encode_set_approval_for_all(operator, False))
            for name, operator in POSITION_TOKEN_OPERATORS
        ]
        hashes = []
        try:
            for name, to, data in transactions:
                hashes.append(await self._send_direct(f"Revoke ({name})", to, data))
        except Exception as e:
            self._fail(e)
            raise
        logger.info(f"🧹 Revoked {len(hashes)} approvals")
        await self.check_status()
        return hashes

    def skip(self, step: Optional[ApprovalState] = None) -> ApprovalState:
        """Advance past a step the user completed through another path (no chain reads)"""
        current = step or self.state
        self.state = state_after_skip(current, self.is_custodial)
        logger.info(f"⏭️ Approval step {current.value} skipped → {self.state.value}")
        return self.state

    def _fail(self, error: Exception) -> None:
        self.state = ApprovalState.ERROR
        self.last_error = str(error)
        logger.error(f"❌ Approval step failed: {error}")
