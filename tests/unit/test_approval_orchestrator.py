"""Approval status reads and approval/deposit/revoke transactions"""
from unittest.mock import AsyncMock, Mock

import pytest

from polytrade.core.exceptions import InsufficientBalanceError, InvalidAmountError, TradingError
from polytrade.core.models.trading_models import ApprovalState, BackendKind
from polytrade.core.services.approval.approval_orchestrator import (
    ApprovalOrchestrator,
    next_approval_state,
    state_after_skip,
)
from polytrade.core.services.chain.contracts import (
    CONDITIONAL_TOKENS_ADDRESS,
    NEG_RISK_ADAPTER_ADDRESS,
    POSITION_TOKEN_OPERATORS,
    USDC_E_ADDRESS,
    USDC_SPENDERS,
)
from polytrade.core.services.funding.funding_resolver import derive_proxy_address, derive_safe_address
from polytrade.core.services.signing.signing_guard import SigningGuard

from tests.fixtures.mocks import OWNER, FakeWallet, make_chain_reader

APPROVED = 10 ** 12


def _orchestrator(wallet, reader, relayer=None) -> ApprovalOrchestrator:
    return ApprovalOrchestrator(
        wallet, wallet.backend_kind, chain_reader=reader, relayer=relayer, signing_guard=SigningGuard(5)
    )


class TestCheckStatus:
    async def test_three_of_four_allowances_leaves_one_grant(self) -> None:
        reader = make_chain_reader(allowances=[APPROVED, APPROVED, 0, APPROVED])
        status = await _orchestrator(FakeWallet(), reader).check_status()

        assert status.needs_usdc_approval is True
        assert status.remaining_usdc_grants == ["neg_risk_adapter"]
        assert status.summary().startswith("1 USDC grant(s)")
        assert status.state is ApprovalState.NEEDS_USDC_APPROVAL

    @pytest.mark.parametrize("allowances,expected", [
        ([APPROVED] * 4, False),
        ([APPROVED, APPROVED, APPROVED, 999_999], True),
        ([1_000_000] * 4, False),
        ([0] * 4, True),
    ])
    async def test_needs_usdc_approval_iff_any_allowance_below_threshold(self, allowances, expected) -> None:
        status = await _orchestrator(FakeWallet(), make_chain_reader(allowances=allowances)).check_status()
        assert status.needs_usdc_approval is expected
        assert status.needs_usdc_approval == any(v < 1_000_000 for v in status.usdc_allowances.values())

    async def test_position_tokens_after_usdc(self) -> None:
        reader = make_chain_reader(operator_approvals=[True, False])
        status = await _orchestrator(FakeWallet(), reader).check_status()
        assert status.remaining_position_token_grants == ["neg_risk_ctf_exchange"]
        assert status.state is ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL

    async def test_non_custodial_reads_the_safe(self) -> None:
        reader = make_chain_reader()
        status = await _orchestrator(FakeWallet(BackendKind.EXTENSION), reader).check_status()
        assert status.funding_address == derive_safe_address(OWNER)
        assert status.deposit_proxy_address is None
        assert status.state is ApprovalState.COMPLETE

    async def test_custodial_low_proxy_with_funded_owner_needs_deposit(self) -> None:
        reader = make_chain_reader()
        proxy = derive_proxy_address(OWNER)
        reader.get_usdc_balance = AsyncMock(side_effect=lambda address: 0.5 if address == proxy else 50.0)
        status = await _orchestrator(FakeWallet(), reader).check_status()
        assert status.deposit_proxy_address == proxy
        assert status.needs_deposit is True
        assert status.state is ApprovalState.NEEDS_DEPOSIT

    async def test_read_failure_sets_error_state(self) -> None:
        reader = make_chain_reader()
        reader.get_usdc_allowance = AsyncMock(side_effect=ConnectionError("rpc down"))
        orchestrator = _orchestrator(FakeWallet(), reader)
        with pytest.raises(ConnectionError):
            await orchestrator.check_status()
        assert orchestrator.state is ApprovalState.ERROR


class TestApprove:
    async def test_direct_usdc_approval_only_sends_missing_grants(self) -> None:
        reader = make_chain_reader(allowances=[APPROVED, APPROVED, 0, APPROVED])
        wallet = FakeWallet()
        orchestrator = _orchestrator(wallet, reader)

        async def confirm(tx_hash):
            reader.allowances[NEG_RISK_ADAPTER_ADDRESS] = APPROVED
            return {"status": 1}

        reader.wait_for_receipt = AsyncMock(side_effect=confirm)
        status = await orchestrator.approve_usdc()

        assert len(wallet.sent_transactions) == 1
        sent = wallet.sent_transactions[0]
        assert sent["to"] == USDC_E_ADDRESS
        assert sent["data"].startswith("0x095ea7b3")
        assert NEG_RISK_ADAPTER_ADDRESS[2:].lower() in sent["data"].lower()
        assert status.needs_usdc_approval is False
        assert orchestrator.state is ApprovalState.COMPLETE

    async def test_already_approved_sends_nothing(self) -> None:
        wallet = FakeWallet()
        await _orchestrator(wallet, make_chain_reader()).approve_usdc()
        assert wallet.sent_transactions == []

    async def test_sponsored_path_batches_through_relayer(self) -> None:
        reader = make_chain_reader(operator_approvals=[False, False])
        relayer = Mock()
        relayer.is_available = AsyncMock(return_value=True)
        relayer.execute = AsyncMock(return_value="0xrelayed")
        wallet = FakeWallet(BackendKind.EXTENSION)

        await _orchestrator(wallet, reader, relayer).approve_position_tokens(use_fee_sponsored_path=True)

        relayer.execute.assert_awaited_once()
        _, transactions = relayer.execute.await_args.args
        assert len(transactions) == 2
        assert all(tx.to == CONDITIONAL_TOKENS_ADDRESS for tx in transactions)
        assert wallet.sent_transactions == []

    async def test_reverted_receipt_fails_step(self) -> None:
        reader = make_chain_reader(allowances=[0] * 4)
        reader.wait_for_receipt = AsyncMock(return_value={"status": 0})
        orchestrator = _orchestrator(FakeWallet(), reader)
        with pytest.raises(TradingError):
            await orchestrator.approve_usdc()
        assert orchestrator.state is ApprovalState.ERROR


class TestDepositAndRevoke:
    @pytest.mark.parametrize("amount", [0, -1])
    async def test_deposit_rejects_non_positive(self, amount) -> None:
        with pytest.raises(InvalidAmountError):
            await _orchestrator(FakeWallet(), make_chain_reader()).deposit(amount)

    async def test_deposit_rejects_more_than_owner_balance(self) -> None:
        with pytest.raises(InsufficientBalanceError):
            await _orchestrator(FakeWallet(), make_chain_reader(usdc_balance=5.0)).deposit(10)

    async def test_deposit_transfers_to_proxy(self) -> None:
        wallet = FakeWallet()
        await _orchestrator(wallet, make_chain_reader(usdc_balance=50.0)).deposit(10)
        sent = wallet.sent_transactions[0]
        assert sent["data"].startswith("0xa9059cbb")
        assert derive_proxy_address(OWNER)[2:].lower() in sent["data"].lower()

    async def test_revoke_sends_five_transactions(self) -> None:
        wallet = FakeWallet()
        hashes = await _orchestrator(wallet, make_chain_reader()).revoke_all()
        assert len(hashes) == 5
        assert sum(tx["to"] == USDC_E_ADDRESS for tx in wallet.sent_transactions) == 3
        assert sum(tx["to"] == CONDITIONAL_TOKENS_ADDRESS for tx in wallet.sent_transactions) == 2
        assert not any(NEG_RISK_ADAPTER_ADDRESS[2:].lower() in tx["data"].lower() for tx in wallet.sent_transactions)


class TestTransitions:
    def test_skip_advances_without_reads(self) -> None:
        reader = make_chain_reader()
        orchestrator = _orchestrator(FakeWallet(BackendKind.EXTENSION), reader)
        assert orchestrator.skip(ApprovalState.NEEDS_USDC_APPROVAL) is ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL
        assert orchestrator.skip() is ApprovalState.COMPLETE
        reader.get_usdc_allowance.assert_not_called()

    def test_deposit_only_for_custodial(self) -> None:
        step = ApprovalState.NEEDS_POSITION_TOKEN_APPROVAL
        assert state_after_skip(step, is_custodial=True) is ApprovalState.NEEDS_DEPOSIT
        assert state_after_skip(step, is_custodial=False) is ApprovalState.COMPLETE

    async def test_next_state_ignores_deposit_for_non_custodial(self) -> None:
        status = await _orchestrator(FakeWallet(), make_chain_reader()).check_status()
        status.needs_deposit = True
        assert next_approval_state(status, is_custodial=False) is ApprovalState.COMPLETE
        assert next_approval_state(status, is_custodial=True) is ApprovalState.NEEDS_DEPOSIT


def test_spenders_cover_four_gates() -> None:
    assert len(USDC_SPENDERS) == 4


class OwnerGrantingWallet(FakeWallet):
    """Extension wallet whose approve transactions land on the owner's allowances"""

    def __init__(self, owner_allowances: dict):
        super().__init__(BackendKind.EXTENSION)
        self.owner_allowances = owner_allowances

    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        tx_hash = await super().send_transaction(to, data, value)
        if to == USDC_E_ADDRESS:
            spender = "0x" + data[34:74]
            self.owner_allowances[(self.address.lower(), spender.lower())] = APPROVED
        return tx_hash


def _holder_keyed_reader(allowances: dict, operator_approvals: dict) -> Mock:
    reader = make_chain_reader()
    reader.get_usdc_allowance = AsyncMock(
        side_effect=lambda holder, spender: allowances.get((holder.lower(), spender.lower()), 0)
    )
    reader.is_approved_for_all = AsyncMock(
        side_effect=lambda holder, operator: operator_approvals.get((holder.lower(), operator.lower()), False)
    )
    return reader


class TestOwnerAndSafeGates:
    async def test_owner_grants_count_for_extension_wallet(self) -> None:
        allowances: dict = {}
        wallet = OwnerGrantingWallet(allowances)
        operators = {(OWNER, operator.lower()): True for _, operator in POSITION_TOKEN_OPERATORS}
        reader = _holder_keyed_reader(allowances, operators)
        orchestrator = _orchestrator(wallet, reader)

        before = await orchestrator.check_status()
        assert before.state is ApprovalState.NEEDS_USDC_APPROVAL

        after = await orchestrator.approve_usdc(use_fee_sponsored_path=False)

        assert len(wallet.sent_transactions) == len(USDC_SPENDERS)
        assert after.needs_usdc_approval is False
        assert after.state is ApprovalState.COMPLETE
        holders = {call.args[0].lower() for call in reader.get_usdc_allowance.await_args_list}
        assert holders == {OWNER, derive_safe_address(OWNER).lower()}

    async def test_safe_grants_alone_are_enough(self) -> None:
        safe = derive_safe_address(OWNER).lower()
        allowances = {(safe, spender.lower()): APPROVED for _, spender in USDC_SPENDERS}
        reader = _holder_keyed_reader(allowances, {})
        status = await _orchestrator(FakeWallet(BackendKind.EXTENSION), reader).check_status()

        assert status.needs_usdc_approval is False
        assert status.remaining_position_token_grants == ["ctf_exchange", "neg_risk_ctf_exchange"]

    async def test_custodial_reads_a_single_holder(self) -> None:
        reader = make_chain_reader()
        await _orchestrator(FakeWallet(), reader).check_status()
        assert reader.get_usdc_allowance.await_count == len(USDC_SPENDERS)
