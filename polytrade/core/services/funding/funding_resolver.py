"""
Funding Address Resolver
Derives the address that actually holds the tradable balance for a wallet
"""
from typing import Optional

from eth_abi import encode
from eth_utils import is_address, keccak, to_bytes, to_checksum_address

from polytrade.core.exceptions import WalletNotConnectedError
from polytrade.core.models.trading_models import BackendKind, FundingAddress, SignatureType
from polytrade.core.services.chain.chain_reader import ChainReader, get_chain_reader
from polytrade.core.services.chain.contracts import (
    PROXY_FACTORY_ADDRESS,
    PROXY_INIT_CODE_HASH,
    SAFE_FACTORY_ADDRESS,
    SAFE_INIT_CODE_HASH,
)
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)


def _checked(owner_address: str) -> str:
    if not owner_address or not is_address(owner_address):
        raise WalletNotConnectedError(f"Invalid owner address: {owner_address!r}")
    return to_checksum_address(owner_address)


def _create2_address(factory: str, salt: bytes, init_code_hash: str) -> str:
    digest = keccak(b"\xff" + to_bytes(hexstr=factory) + salt + to_bytes(hexstr=init_code_hash))
    return to_checksum_address(digest[12:])


def derive_safe_address(owner_address: str) -> str:
    """Gnosis Safe proxy address for an externally-owned wallet (pure)"""
    owner = _checked(owner_address)
    salt = keccak(encode(["address"], [owner]))
    return _create2_address(SAFE_FACTORY_ADDRESS, salt, SAFE_INIT_CODE_HASH)


def derive_proxy_address(owner_address: str) -> str:
    """Polymarket proxy wallet address used as the custodial deposit target (pure)"""
    owner = _checked(owner_address)
    salt = keccak(to_bytes(hexstr=owner))
    return _create2_address(PROXY_FACTORY_ADDRESS, salt, PROXY_INIT_CODE_HASH)


def signature_type_for(kind: BackendKind) -> SignatureType:
    """Order signature scheme for a wallet backend"""
    return SignatureType.EOA if kind.is_custodial else SignatureType.POLY_GNOSIS_SAFE


class FundingAddressResolver:
    """
    Resolves funding addresses
    - Custodial: the owner address itself, always deployed
    - Non-custodial: deterministic Safe address; deployment is best-effort
    """

    def __init__(self, chain_reader: Optional[ChainReader] = None):
        self._chain_reader = chain_reader

    @property
    def chain_reader(self) -> ChainReader:
        if self._chain_reader is None:
            self._chain_reader = get_chain_reader()
        return self._chain_reader

    def derive(self, owner_address: str, kind: BackendKind) -> str:
        """Funding address without any network access"""
        if kind.is_custodial:
            return _checked(owner_address)
        return derive_safe_address(owner_address)

    async def resolve(
        self,
        owner_address: str,
        kind: BackendKind,
        network_query: bool = True,
    ) -> FundingAddress:
        """
        Resolve the funding address for an owner

        Args:
            owner_address: Signer address of the connected wallet
            kind: Wallet backend
            network_query: Whether to check proxy deployment on chain

        Returns:
            FundingAddress (deployed=False when deployment cannot be confirmed)
        """
        address = self.derive(owner_address, kind)
        if kind.is_custodial:
            return FundingAddress(address=address, deployed=True, backend_kind=kind)

        deployed = False
        if network_query:
            try:
                deployed = await self.chain_reader.has_code(address)
            except Exception as e:
                logger.warning(f"⚠️ Could not check proxy deployment for {address}: {e}")

        return FundingAddress(address=address, deployed=deployed, backend_kind=kind)
