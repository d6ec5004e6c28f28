"""Funding address resolution per wallet backend"""
from unittest.mock import AsyncMock, Mock

import pytest
from eth_utils import is_checksum_address, to_checksum_address

from polytrade.core.exceptions import WalletNotConnectedError
from polytrade.core.models.trading_models import BackendKind, SignatureType
from polytrade.core.services.funding.funding_resolver import (
    FundingAddressResolver,
    derive_proxy_address,
    derive_safe_address,
    signature_type_for,
)

from tests.fixtures.mocks import OTHER_OWNER, OWNER, make_chain_reader

NON_CUSTODIAL = [BackendKind.EXTENSION, BackendKind.RELAY, BackendKind.MOBILE]


class TestDerivation:
    def test_safe_address_is_deterministic_checksummed(self) -> None:
        first = derive_safe_address(OWNER)
        assert first == derive_safe_address(to_checksum_address(OWNER))
        assert is_checksum_address(first)
        assert first.lower() != OWNER

    def test_safe_and_proxy_addresses_differ(self) -> None:
        assert derive_safe_address(OWNER) != derive_proxy_address(OWNER)

    def test_different_owners_get_different_addresses(self) -> None:
        assert derive_safe_address(OWNER) != derive_safe_address(OTHER_OWNER)

    @pytest.mark.parametrize("bad", ["", "0x123", "not-an-address", None])
    def test_invalid_owner_raises(self, bad) -> None:
        with pytest.raises(WalletNotConnectedError):
            derive_safe_address(bad)

    def test_signature_types(self) -> None:
        assert signature_type_for(BackendKind.CUSTODIAL) is SignatureType.EOA
        for kind in NON_CUSTODIAL:
            assert signature_type_for(kind) is SignatureType.POLY_GNOSIS_SAFE


class TestResolve:
    async def test_non_custodial_backends_share_the_funding_address(self) -> None:
        resolver = FundingAddressResolver(make_chain_reader())
        resolved = [await resolver.resolve(OWNER, kind) for kind in NON_CUSTODIAL]
        assert len({funding.address for funding in resolved}) == 1
        assert resolved[0].address == derive_safe_address(OWNER)
        assert all(funding.deployed for funding in resolved)

    async def test_custodial_funds_from_owner(self) -> None:
        reader = make_chain_reader()
        resolver = FundingAddressResolver(reader)
        funding = await resolver.resolve(OWNER, BackendKind.CUSTODIAL)
        assert funding.address.lower() == OWNER
        assert funding.deployed is True
        reader.has_code.assert_not_called()

    async def test_deployment_query_fails_soft(self) -> None:
        reader = Mock()
        reader.has_code = AsyncMock(side_effect=ConnectionError("rpc down"))
        funding = await FundingAddressResolver(reader).resolve(OWNER, BackendKind.EXTENSION)
        assert funding.address == derive_safe_address(OWNER)
        assert funding.deployed is False

    async def test_without_network_query(self) -> None:
        reader = make_chain_reader()
        funding = await FundingAddressResolver(reader).resolve(OWNER, BackendKind.RELAY, network_query=False)
        assert funding.deployed is False
        reader.has_code.assert_not_called()
