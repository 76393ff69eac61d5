# src/status_board/flow.py

import logging
import secrets
import typing
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

from pydantic import ValidationError

from .errors import (
    AuthorizationCallbackError,
    InvalidAuthStateError,
    ProviderError,
    TokenExchangeError,
)
from .identity import IdentityVerifier
from .models import Identity, PendingAuthState
from .provider import ProviderClient, generate_code_verifier
from .session import Session
from .token_store import TokenStore

logger = logging.getLogger(__name__)

PENDING_AUTH_KEY = "pending_auth"

NOT_LOGGED_IN = "not logged in"
INVALID_SESSION = "invalid session"


@dataclass(frozen=True)
class IdentityResolution:
    identity: typing.Optional[Identity] = None
    failure: typing.Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.identity is not None


class FlowCoordinator:
    """
    Drives the authorization-code + PKCE login for one browser:
    start_login -> handle_callback -> resolve_identity (with a single refresh) -> logout.
    """

    def __init__(self, provider: ProviderClient, verifier: IdentityVerifier):
        self.provider = provider
        self.verifier = verifier

    def start_login(self, session: Session) -> str:
        """Stores a fresh PKCE verifier in the session and returns the provider's authorize URI."""
        pending = PendingAuthState(
            code_verifier=generate_code_verifier(),
            state=secrets.token_urlsafe(16),
        )
        session.flash(PENDING_AUTH_KEY, pending.model_dump())
        logger.info("Login started; redirecting to the identity provider")
        return self.provider.build_authorization_uri(
            state=pending.state, code_verifier=pending.code_verifier
        )

    async def handle_callback(self, session: Session, request_url: str, token_store: TokenStore) -> None:
        """
        Exchanges the authorization code in request_url for tokens and persists them.
        A missing or malformed pending state is a protocol violation, not an auth failure.
        """
        pending = self._take_pending(session)

        query = parse_qs(urlsplit(str(request_url)).query)
        returned_error = _first(query, "error")
        if returned_error:
            logger.warning("Identity provider returned an error: %s", returned_error)
            raise AuthorizationCallbackError(f"authorization failed: {returned_error}")
        if pending.state is not None and _first(query, "state") != pending.state:
            logger.warning("Callback state mismatch")
            raise AuthorizationCallbackError("state mismatch")
        code = _first(query, "code")
        if not code:
            raise AuthorizationCallbackError("missing authorization code")

        try:
            bundle = await self.provider.exchange_code(code, pending.code_verifier)
        except ProviderError as e:
            logger.warning("Authorization code exchange failed: %s", e.message)
            raise TokenExchangeError() from e

        token_store.persist(bundle)
        logger.info("Login completed")

    async def resolve_identity(self, token_store: TokenStore) -> IdentityResolution:
        tokens = token_store.retrieve()
        if tokens is None:
            return IdentityResolution(failure=NOT_LOGGED_IN)

        identity = await self.verifier.verify(tokens.access_token)
        if identity is not None:
            return IdentityResolution(identity=identity)

        # At most one refresh per request; a revoked refresh token must not loop.
        if not await token_store.refresh(tokens.refresh_token):
            logger.info("Session could not be refreshed; clearing credentials")
            token_store.clear()
            return IdentityResolution(failure=INVALID_SESSION)

        refreshed = token_store.retrieve()
        identity = await self.verifier.verify(refreshed.access_token) if refreshed else None
        if identity is None:
            logger.info("Refreshed token was rejected; clearing credentials")
            token_store.clear()
            return IdentityResolution(failure=INVALID_SESSION)
        return IdentityResolution(identity=identity)

    def logout(self, session: Session, token_store: TokenStore) -> None:
        token_store.clear()
        session.delete()
        logger.info("Logged out")

    @staticmethod
    def _take_pending(session: Session) -> PendingAuthState:
        raw = session.take_flash(PENDING_AUTH_KEY)
        if not isinstance(raw, dict):
            logger.error("Callback without a pending login in the session")
            raise InvalidAuthStateError()
        try:
            return PendingAuthState.model_validate(raw, strict=True)
        except ValidationError:
            logger.error("Pending login state in the session is malformed")
            raise InvalidAuthStateError()


def _first(query: typing.Dict[str, typing.List[str]], name: str) -> typing.Optional[str]:
    values = query.get(name)
    return values[0] if values else None
