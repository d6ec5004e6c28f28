"""
Pytest configuration and shared fixtures
"""
import pytest

from polytrade.core.models.trading_models import ApiCredentials, BackendKind, SignatureType, TradingSession
from polytrade.core.services.session.session_store import MemorySessionStore
from polytrade.core.services.signing.signing_guard import SigningGuard

from tests.fixtures.mocks import (  # noqa: F401
    OWNER,
    chain_reader,
    companion,
    custodial_wallet,
    exchange_client,
    extension_wallet,
)


@pytest.fixture
def credentials():
    return ApiCredentials(key="key-1", secret="c2VjcmV0", passphrase="pass-1")


@pytest.fixture
def session_store():
    return MemorySessionStore()


@pytest.fixture
def signing_guard():
    return SigningGuard(warning_seconds=5)


@pytest.fixture
def ready_session(credentials):
    """Custodial session: funding address is the owner"""
    return TradingSession(
        owner_address=OWNER,
        backend_kind=BackendKind.CUSTODIAL,
        funding_address=OWNER,
        signature_type=SignatureType.EOA,
        proxy_deployed=True,
        credentials=credentials,
    )
