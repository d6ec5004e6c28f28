"""
Trading Session Manager
Derives exchange API credentials through a wallet signature, binds them to the
resolved funding address, and persists/invalidates the resulting session.
Owns the session's ExchangeClient; no other component writes session state.
"""
import time
from typing import Callable, List, Optional, Tuple

from polytrade.core.exceptions import (
    CredentialDerivationFailedError,
    SessionIncompleteError,
    SetupRequiredError,
)
from polytrade.core.models.trading_models import ApiCredentials, FundingAddress, TradingSession, utc_now
from polytrade.core.services.chain.contracts import POLYGON_CHAIN_ID
from polytrade.core.services.clob.exchange_client import ExchangeClient, l1_headers
from polytrade.core.services.clob.order_builder import CLOB_AUTH_DOMAIN, CLOB_AUTH_TYPES, build_clob_auth_message
from polytrade.core.services.funding.funding_resolver import FundingAddressResolver, signature_type_for
from polytrade.core.services.session.session_store import MemorySessionStore, SessionStore
from polytrade.core.services.signing.signing_guard import SigningGuard
from polytrade.core.services.wallet.wallet_adapter import WalletAdapter
from polytrade.infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

ExchangeClientFactory = Callable[[str, Optional[ApiCredentials]], ExchangeClient]


class TradingSessionManager:
    """
    Trading session state machine for the single active wallet connection

    initialize():
        1. reuse a persisted session when it has credentials and a funding address
        2. otherwise sign ClobAuth, derive existing credentials, create only if none
        3. resolve the funding address; persist a partial session and raise
           SetupRequiredError when it cannot be resolved
        4. persist the complete session under session:<owner>
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        resolver: Optional[FundingAddressResolver] = None,
        signing_guard: Optional[SigningGuard] = None,
        exchange_client_factory: Optional[ExchangeClientFactory] = None,
    ):
        self.store = store or MemorySessionStore()
        self.resolver = resolver or FundingAddressResolver()
        self.signing_guard = signing_guard or SigningGuard()
        self._exchange_client_factory = exchange_client_factory or (
            lambda owner, credentials: ExchangeClient(owner, credentials)
        )
        self.wallet: Optional[WalletAdapter] = None
        self.session: Optional[TradingSession] = None
        self.exchange_client: Optional[ExchangeClient] = None
        self._invalidation_listeners: List[Callable[[str], None]] = []

    def is_ready(self) -> bool:
        return self.session is not None and self.session.is_ready() and self.exchange_client is not None

    def on_invalidated(self, listener: Callable[[str], None]) -> None:
        """Notified (with the reason) whenever the session is torn down"""
        self._invalidation_listeners.append(listener)

    def require_ready(self) -> Tuple[TradingSession, ExchangeClient]:
        """Session and exchange client, or SessionIncompleteError"""
        if not self.is_ready():
            raise SessionIncompleteError("Trading session is not ready. Connect and sign in to trade.")
        return self.session, self.exchange_client

    async def attach_wallet(self, wallet: WalletAdapter) -> None:
        """Make `wallet` the active connection, tearing down anything derived from another one"""
        if self.wallet is wallet:
            return
        if self.wallet is not None:
            previous_kind = self.wallet.backend_kind
            await self._teardown(
                "wallet switched",
                clear_persisted=previous_kind is not wallet.backend_kind,
            )
        self.wallet = wallet
        wallet.on_accounts_changed(self._handle_accounts_changed)
        wallet.on_disconnect(self.disconnect)

    async def initialize(self, wallet: WalletAdapter) -> TradingSession:
        """
        Initialize (or reuse) the trading session for a wallet

        Returns:
            Ready TradingSession

        Raises:
            SetupRequiredError: funding address could not be resolved
            CredentialDerivationFailedError: exchange credentials unavailable
            SigningRejectedError / SigningCancelledError: user declined or stopped waiting
        """
        await self.attach_wallet(wallet)
        owner = await wallet.get_address()
        kind = wallet.backend_kind
        await wallet.ensure_network(POLYGON_CHAIN_ID)

        if self.is_ready() and self.session.owner_address.lower() == owner.lower():
            return self.session

        derived_funding = self.resolver.derive(owner, kind)
        persisted = await self._load_validated(owner, kind, derived_funding)
        if persisted and persisted.credentials and (kind.is_custodial or persisted.funding_address):
            logger.info(f"♻️ Reusing persisted trading session for {owner}")
            return self._activate(persisted)

        credentials = await self._derive_credentials(wallet, owner)

        funding = await self._resolve_funding(owner, kind)
        session = TradingSession(
            owner_address=owner,
            backend_kind=kind,
            funding_address=funding.address if funding else None,
            signature_type=signature_type_for(kind),
            proxy_deployed=funding.deployed if funding else False,
            credentials=credentials,
            last_checked_at=utc_now(),
        )
        await self.store.save(session)

        if funding is None:
            self.session = session
            raise SetupRequiredError("Trading wallet is not set up yet. Complete setup to continue.")

        logger.info(f"✅ Trading session ready for {owner} (funding {funding.address}, deployed={funding.deployed})")
        return self._activate(session)

    async def _load_validated(self, owner: str, kind, derived_funding: str) -> Optional[TradingSession]:
        persisted = await self.store.load(owner)
        if persisted is None:
            return None

        reason = None
        if persisted.owner_address.lower() != owner.lower():
            reason = "owner mismatch"
        elif persisted.backend_kind is not kind:
            reason = f"backend changed {persisted.backend_kind.value} → {kind.value}"
        elif persisted.funding_address and persisted.funding_address.lower() != derived_funding.lower():
            reason = "funding address mismatch"

        if reason:
            logger.warning(f"⚠️ Discarding persisted session for {owner}: {reason}")
            await self.store.clear(owner)
            return None
        return persisted

    async def _derive_credentials(self, wallet: WalletAdapter, owner: str) -> ApiCredentials:
        timestamp = int(time.time())
        nonce = 0
        message = build_clob_auth_message(owner, timestamp, nonce)
        signature = await self.signing_guard.run(
            "Sign in to the exchange",
            lambda: wallet.sign_typed_data(CLOB_AUTH_DOMAIN, CLOB_AUTH_TYPES, message),
        )
        headers = l1_headers(owner, signature, timestamp, nonce)
        client = self._exchange_client_factory(owner, None)

        try:
            credentials = await client.derive_api_key(headers)
            if credentials is None:
                logger.info(f"🔑 Creating new exchange API key for {owner}")
                credentials = await client.create_api_key(headers)
            else:
                logger.info(f"🔑 Derived existing exchange API key for {owner}")
        except CredentialDerivationFailedError:
            await self.invalidate("credential derivation failed")
            raise
        except Exception as e:
            await self.invalidate("credential derivation failed")
            raise CredentialDerivationFailedError(f"Could not derive exchange credentials: {e}") from e
        finally:
            await client.close()

        return credentials

    async def _resolve_funding(self, owner: str, kind) -> Optional[FundingAddress]:
        try:
            return await self.resolver.resolve(owner, kind, network_query=True)
        except Exception as e:
            logger.warning(f"⚠️ Funding address unresolved for {owner}: {e}")
            return None

    def _activate(self, session: TradingSession) -> TradingSession:
        self.session = session
        self.exchange_client = self._exchange_client_factory(session.owner_address, session.credentials)
        return session

    async def invalidate(self, reason: str = "explicit reset") -> None:
        """Clear persisted and in-memory session state; next initialize re-derives"""
        await self._teardown(reason, clear_persisted=True)

    async def reset(self) -> None:
        await self.invalidate("user reset")

    async def disconnect(self) -> None:
        await self._teardown("wallet disconnected", clear_persisted=True)
        self.wallet = None

    async def _handle_accounts_changed(self, accounts: List[str]) -> None:
        if not accounts:
            await self.disconnect()
            return
        if self.session and accounts[0].lower() != self.session.owner_address.lower():
            await self._teardown("account changed", clear_persisted=False)

    async def _teardown(self, reason: str, clear_persisted: bool) -> None:
        owner = self.session.owner_address if self.session else None
        if owner is None and self.wallet is not None:
            try:
                owner = await self.wallet.get_address()
            except Exception as e:
                logger.debug(f"Wallet address unavailable during teardown: {e}")
                owner = None

        if clear_persisted and owner:
            await self.store.clear(owner)
        if self.exchange_client is not None:
            await self.exchange_client.close()

        self.session = None
        self.exchange_client = None
        logger.info(f"🧹 Trading session torn down ({reason})")
        for listener in list(self._invalidation_listeners):
            listener(reason)
