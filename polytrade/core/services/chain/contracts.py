"""
Polymarket contract registry for Polygon
Addresses, minimal ABIs and calldata helpers for approvals and transfers
"""
from decimal import Decimal, ROUND_DOWN
from typing import List, Tuple

from eth_abi import encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address
from py_clob_client.constants import POLYGON

POLYGON_CHAIN_ID = POLYGON
USDC_DECIMALS = 6
MAX_UINT256 = 2**256 - 1
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Contract addresses from official Polymarket docs
USDC_E_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"  # USDC.e (bridged) - exchange collateral
NATIVE_USDC_ADDRESS = "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359"  # Native USDC, not accepted by the exchange
CONDITIONAL_TOKENS_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"  # CTF (ERC1155 position tokens)
CTF_EXCHANGE_ADDRESS = "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E"
NEG_RISK_CTF_EXCHANGE_ADDRESS = "0xC5d563A36AE78145C45a50134d48A1215220f80a"
NEG_RISK_ADAPTER_ADDRESS = "0xd91E80cF2E7be2e162c6513ceD06f1dD0dA35296"

# Proxy wallet factories (CREATE2 deployers)
SAFE_FACTORY_ADDRESS = "0xaacFeEa03eb1561C4e67d661e40682Bd20E3541b"
SAFE_INIT_CODE_HASH = "0x2bce2127ff07fb632d16c8347c4ebf501f4841168bed00d9e6ef715ddb6fcecf"
PROXY_FACTORY_ADDRESS = "0xaB45c5A4B0c941a2F231C04C3f49182e1A254052"
PROXY_INIT_CODE_HASH = "0xd21df8dc65880a8606f09fe0ce3df9b8869287ab0b058be05aa9e8af6330a00b"

# USDC.e spenders that must each hold an allowance (order matters for display only)
USDC_SPENDERS: List[Tuple[str, str]] = [
    ("ctf_exchange", CTF_EXCHANGE_ADDRESS),
    ("neg_risk_ctf_exchange", NEG_RISK_CTF_EXCHANGE_ADDRESS),
    ("neg_risk_adapter", NEG_RISK_ADAPTER_ADDRESS),
    ("conditional_tokens", CONDITIONAL_TOKENS_ADDRESS),
]

# Operators that need setApprovalForAll on the conditional tokens contract
POSITION_TOKEN_OPERATORS: List[Tuple[str, str]] = [
    ("ctf_exchange", CTF_EXCHANGE_ADDRESS),
    ("neg_risk_ctf_exchange", NEG_RISK_CTF_EXCHANGE_ADDRESS),
]

# USDC allowances zeroed by the reset path
REVOKABLE_USDC_SPENDERS: List[Tuple[str, str]] = [
    ("ctf_exchange", CTF_EXCHANGE_ADDRESS),
    ("neg_risk_ctf_exchange", NEG_RISK_CTF_EXCHANGE_ADDRESS),
    ("conditional_tokens", CONDITIONAL_TOKENS_ADDRESS),
]

ERC20_ABI = [
    {
        "constant": True,
        "inputs": [{"name": "account", "type": "address"}],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [],
        "name": "decimals",
        "outputs": [{"name": "", "type": "uint8"}],
        "type": "function"
    },
    {
        "constant": True,
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "spender", "type": "address"}
        ],
        "name": "allowance",
        "outputs": [{"name": "", "type": "uint256"}],
        "type": "function"
    },
]

ERC1155_ABI = [
    {
        "constant": True,
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "operator", "type": "address"}
        ],
        "name": "isApprovedForAll",
        "outputs": [{"name": "", "type": "bool"}],
        "type": "function"
    },
]


def exchange_address(neg_risk: bool) -> str:
    """Exchange contract that verifies orders for the market type"""
    return NEG_RISK_CTF_EXCHANGE_ADDRESS if neg_risk else CTF_EXCHANGE_ADDRESS


def _calldata(signature: str, arg_types: List[str], args: list) -> str:
    selector = function_signature_to_4byte_selector(signature)
    return "0x" + (selector + encode(arg_types, args)).hex()


def encode_approve(spender: str, amount: int) -> str:
    return _calldata("approve(address,uint256)", ["address", "uint256"], [to_checksum_address(spender), amount])


def encode_set_approval_for_all(operator: str, approved: bool) -> str:
    return _calldata("setApprovalForAll(address,bool)", ["address", "bool"], [to_checksum_address(operator), approved])


def encode_transfer(recipient: str, amount: int) -> str:
    return _calldata("transfer(address,uint256)", ["address", "uint256"], [to_checksum_address(recipient), amount])


def to_base_units(amount: float, decimals: int = USDC_DECIMALS) -> int:
    """Convert a display amount to integer token units"""
    scaled = (Decimal(str(amount)) * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_base_units(units: int, decimals: int = USDC_DECIMALS) -> float:
    return units / (10 ** decimals)
