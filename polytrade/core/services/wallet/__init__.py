"""
Wallet Module
One adapter per wallet backend behind the WalletAdapter interface
"""
from typing import Any, Optional

from polytrade.core.models.trading_models import BackendKind

from .custodial_wallet import CustodialWalletAdapter
from .eip1193_wallet import (
    Eip1193Provider,
    ExtensionWalletAdapter,
    MobileWalletAdapter,
    ProviderRpcError,
    RelayWalletAdapter,
)
from .wallet_adapter import WalletAdapter

_EIP1193_ADAPTERS = {
    BackendKind.EXTENSION: ExtensionWalletAdapter,
    BackendKind.RELAY: RelayWalletAdapter,
    BackendKind.MOBILE: MobileWalletAdapter,
}


def build_wallet_adapter(
    kind: BackendKind,
    *,
    provider: Optional[Eip1193Provider] = None,
    account: Optional[Any] = None,
    rpc_url: Optional[str] = None,
) -> WalletAdapter:
    """
    Build the adapter for a backend kind

    Args:
        kind: Wallet backend
        provider: EIP-1193 bridge (extension, relay, mobile)
        account: eth_account LocalAccount exposed by the custody provider

    Returns:
        WalletAdapter instance
    """
    if kind is BackendKind.CUSTODIAL:
        if account is None:
            raise ValueError("Custodial wallets need the custody provider account")
        return CustodialWalletAdapter(account, rpc_url=rpc_url)
    if provider is None:
        raise ValueError(f"{kind.value} wallets need an EIP-1193 provider")
    return _EIP1193_ADAPTERS[kind](provider)


__all__ = [
    'WalletAdapter',
    'CustodialWalletAdapter',
    'ExtensionWalletAdapter',
    'RelayWalletAdapter',
    'MobileWalletAdapter',
    'Eip1193Provider',
    'ProviderRpcError',
    'build_wallet_adapter',
]
