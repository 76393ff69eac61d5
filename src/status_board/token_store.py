# src/status_board/token_store.py

import abc
import json
import logging
import typing

from itsdangerous import BadSignature, URLSafeTimedSerializer
from pydantic import ValidationError
from starlette.responses import Response

from .config import Settings
from .errors import ProviderError
from .models import CredentialBundle
from .provider import ProviderClient

logger = logging.getLogger(__name__)

TOKEN_COOKIE_NAME = "tokens"
TOKEN_COOKIE_SALT = "status-board-tokens-v1"


class TokenStore(abc.ABC):
    """
    Client-held credential transport. Subclasses decide where the bundle lives;
    refreshing against the provider is shared.
    """

    def __init__(self, provider: ProviderClient):
        self.provider = provider

    @abc.abstractmethod
    def persist(self, bundle: CredentialBundle) -> None:
        ...

    @abc.abstractmethod
    def retrieve(self) -> typing.Optional[CredentialBundle]:
        ...

    @abc.abstractmethod
    def clear(self) -> None:
        ...

    async def refresh(self, refresh_token: str) -> bool:
        """
        Exchanges the refresh token for a new bundle and persists it.
        Returns False on any provider failure and leaves the stored value untouched.
        """
        try:
            bundle = await self.provider.refresh(refresh_token)
        except ProviderError as e:
            logger.warning("Token refresh failed: %s", e.message)
            return False
        self.persist(bundle)
        logger.info("Token refresh succeeded")
        return True


class CookieTokenSerializer:
    """Signs and verifies the cookie value. Shared by every request of one app."""

    def __init__(self, settings: Settings):
        self._serializer = URLSafeTimedSerializer(
            secret_key=settings.SESSION_SECRET_KEY, salt=TOKEN_COOKIE_SALT
        )
        self.max_age = settings.TOKEN_COOKIE_MAX_AGE
        self.secure = settings.cookie_secure

    def dumps(self, bundle: CredentialBundle) -> str:
        raw = json.dumps(bundle.model_dump(by_alias=True), separators=(",", ":"), sort_keys=True)
        return self._serializer.dumps(raw)

    def loads(self, value: typing.Optional[str]) -> typing.Optional[CredentialBundle]:
        if not value:
            return None
        try:
            raw = self._serializer.loads(value, max_age=self.max_age)
            return CredentialBundle.model_validate(json.loads(raw))
        except BadSignature:
            # BadTimeSignature and SignatureExpired are subclasses
            logger.info("Ignoring token cookie with a bad or expired signature")
            return None
        except (ValueError, TypeError, ValidationError):
            logger.info("Ignoring malformed token cookie")
            return None


_UNSET = object()


class SignedCookieTokenStore(TokenStore):
    """
    Request-scoped store backed by a signed, HttpOnly cookie.
    Writes are staged and copied onto the outgoing response by apply(), so a
    bundle persisted during this request is what retrieve() returns afterwards.
    """

    def __init__(
        self,
        provider: ProviderClient,
        serializer: CookieTokenSerializer,
        cookies: typing.Mapping[str, str],
    ):
        super().__init__(provider)
        self.serializer = serializer
        self._inbound = cookies.get(TOKEN_COOKIE_NAME)
        self._staged = _UNSET  # _UNSET: untouched, None: cleared, str: new value

    def persist(self, bundle: CredentialBundle) -> None:
        self._staged = self.serializer.dumps(bundle)

    def retrieve(self) -> typing.Optional[CredentialBundle]:
        value = self._inbound if self._staged is _UNSET else self._staged
        return self.serializer.loads(value)

    def clear(self) -> None:
        self._staged = None

    def apply(self, response: Response) -> Response:
        if self._staged is _UNSET:
            return response
        if self._staged is None:
            response.delete_cookie(
                TOKEN_COOKIE_NAME,
                path="/",
                secure=self.serializer.secure,
                httponly=True,
                samesite="strict",
            )
        else:
            response.set_cookie(
                TOKEN_COOKIE_NAME,
                self._staged,
                max_age=self.serializer.max_age,
                path="/",
                secure=self.serializer.secure,
                httponly=True,
                samesite="strict",
            )
        return response
