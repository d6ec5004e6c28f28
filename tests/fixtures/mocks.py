"""
Mock collaborators for trading core tests
Wallets, chain reads and the exchange are faked so no test touches the network
"""
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

from polytrade.core.models.trading_models import ApiCredentials, BackendKind, OrderBook, PriceLevel
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID, POSITION_TOKEN_OPERATORS, USDC_SPENDERS
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter

OWNER = "0x9d84ce0306f8551e02efef1680475fc0f1dc1344"
OTHER_OWNER = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
TOKEN_ID = "71321045679252212594626385532706912750332728571942532289631379312455583992563"
SIGNATURE = "0x" + "ab" * 65


class FakeWallet(WalletAdapter):
    """In-memory WalletAdapter recording every request"""

    def __init__(self, kind: BackendKind = BackendKind.CUSTODIAL, address: str = OWNER):
        super().__init__()
        self.backend_kind = kind
        self.address = address
        self.typed_data_requests: List[Dict[str, Any]] = []
        self.sent_transactions: List[Dict[str, Any]] = []
        self.tx_counter = 0

    async def get_address(self) -> str:
        return self.address

    async def get_network(self) -> int:
        return POLYGON_CHAIN_ID

    async def ensure_network(self, chain_id: int = POLYGON_CHAIN_ID) -> None:
        return None

    async def sign_message(self, message) -> str:
        return SIGNATURE

    async def sign_typed_data(self, domain, types, value) -> str:
        self.typed_data_requests.append({"domain": domain, "types": types, "value": value})
        return SIGNATURE

    async def send_transaction(self, to: str, data: str, value: int = 0) -> str:
        self.tx_counter += 1
        self.sent_transactions.append({"to": to, "data": data, "value": value})
        return "0x" + f"{self.tx_counter:064x}"

    async def switch_account(self, accounts: List[str]) -> None:
        await self._emit_accounts_changed(accounts)

    async def disconnect(self) -> None:
        await self._emit_disconnect()


def make_chain_reader(
    allowances: Optional[List[int]] = None,
    operator_approvals: Optional[List[bool]] = None,
    usdc_balance: float = 100.0,
    native_balance: float = 0.0,
) -> Mock:
    """
    ChainReader mock
    allowances follow USDC_SPENDERS order, operator_approvals POSITION_TOKEN_OPERATORS order;
    both are exposed as dicts on the mock so tests can change chain state between reads
    """
    allowances = allowances if allowances is not None else [10 ** 12] * len(USDC_SPENDERS)
    operator_approvals = operator_approvals if operator_approvals is not None else [True] * len(POSITION_TOKEN_OPERATORS)

    reader = Mock()
    reader.allowances = {spender: value for (_, spender), value in zip(USDC_SPENDERS, allowances)}
    reader.operator_approvals = {
        operator: value for (_, operator), value in zip(POSITION_TOKEN_OPERATORS, operator_approvals)
    }
    reader.get_usdc_allowance = AsyncMock(side_effect=lambda owner, spender: reader.allowances[spender])
    reader.is_approved_for_all = AsyncMock(side_effect=lambda owner, operator: reader.operator_approvals[operator])
    reader.get_usdc_balance = AsyncMock(return_value=usdc_balance)
    reader.get_native_usdc_balance = AsyncMock(return_value=native_balance)
    reader.has_code = AsyncMock(return_value=True)
    reader.wait_for_receipt = AsyncMock(return_value={"status": 1})
    return reader


def make_exchange_client(
    bids: Optional[List[float]] = None,
    asks: Optional[List[float]] = None,
    midpoint: Optional[float] = 0.5,
    post_response: Optional[Dict[str, Any]] = None,
) -> Mock:
    """ExchangeClient mock with a simple book"""
    bids = bids if bids is not None else [0.48, 0.49]
    asks = asks if asks is not None else [0.51, 0.52]

    client = Mock()
    client.get_midpoint = AsyncMock(return_value=midpoint)
    client.get_order_book = AsyncMock(return_value=OrderBook(
        token_id=TOKEN_ID,
        bids=[PriceLevel(price=p, size=100.0) for p in bids],
        asks=[PriceLevel(price=p, size=100.0) for p in asks],
    ))
    client.post_order = AsyncMock(return_value=post_response or {
        "success": True, "orderID": "0xorder1", "status": "matched",
    })
    client.cancel_order = AsyncMock(return_value={"canceled": ["0xorder1"]})
    client.get_open_orders = AsyncMock(return_value=[])
    client.get_order = AsyncMock(return_value=None)
    client.get_positions = AsyncMock(return_value=[])
    client.derive_api_key = AsyncMock(return_value=None)
    client.create_api_key = AsyncMock(return_value=ApiCredentials(key="key-1", secret="c2VjcmV0", passphrase="pass-1"))
    client.close = AsyncMock()
    return client


def make_companion(fee_percentage: float = 0.0, treasury: Optional[str] = OTHER_OWNER) -> Mock:
    companion = Mock()
    companion.get_fee_config = AsyncMock(return_value={
        "fee_percentage": fee_percentage,
        "treasury_address": treasury,
        "enabled": fee_percentage > 0,
    })
    companion.record_fee = AsyncMock(return_value=True)
    companion.record_order = AsyncMock(return_value=True)
    companion.is_relayer_available = AsyncMock(return_value=True)
    return companion


@pytest.fixture
def custodial_wallet():
    return FakeWallet(BackendKind.CUSTODIAL)


@pytest.fixture
def extension_wallet():
    return FakeWallet(BackendKind.EXTENSION)


@pytest.fixture
def chain_reader():
    return make_chain_reader()


@pytest.fixture
def exchange_client():
    return make_exchange_client()


@pytest.fixture
def companion():
    return make_companion()
