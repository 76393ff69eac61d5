# src/status_board/provider.py

import logging
import typing

import httpx
from authlib.common.security import generate_token
from authlib.integrations.base_client import OAuthError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from pydantic import ValidationError

from .config import Settings
from .errors import ProviderError
from .models import CredentialBundle

logger = logging.getLogger(__name__)


def generate_code_verifier() -> str:
    # 64 characters, inside the 43..128 range RFC 7636 allows
    return generate_token(64)


def _reject_error_status(response: httpx.Response) -> httpx.Response:
    # Avoid leaking the provider's error body; the status is enough context.
    if response.status_code >= 400:
        raise ProviderError(f"token request returned {response.status_code}")
    return response


class ProviderClient:
    """
    OAuth2 client for the identity provider's authorize, token and profile endpoints.
    Every call carries the configured timeout and is never retried here.
    """

    def __init__(self, settings: Settings):
        self.client_id = settings.CLIENT_ID
        self.client_secret = settings.CLIENT_SECRET
        self.redirect_uri = str(settings.REDIRECT_URI)
        self.authorization_endpoint = str(settings.AUTHORIZATION_ENDPOINT)
        self.token_endpoint = str(settings.TOKEN_ENDPOINT)
        self.profile_endpoint = str(settings.PROFILE_ENDPOINT)
        self.scopes = list(settings.OAUTH_SCOPES)
        self.timeout = httpx.Timeout(settings.HTTP_TIMEOUT_SECONDS)

    def _oauth_client(self) -> AsyncOAuth2Client:
        """
        A fresh client per call: authlib keeps the last token on the client,
        so one instance must never be shared between browsers.
        """
        client = AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
            scope=" ".join(self.scopes) or None,
            token_endpoint=self.token_endpoint,
            token_endpoint_auth_method="client_secret_post",
            code_challenge_method="S256",
            timeout=self.timeout,
        )
        client.register_compliance_hook("access_token_response", _reject_error_status)
        client.register_compliance_hook("refresh_token_response", _reject_error_status)
        return client

    def build_authorization_uri(self, state: str, code_verifier: str) -> str:
        # URL building makes no request, so the client is never opened
        authorization_url, _ = self._oauth_client().create_authorization_url(
            self.authorization_endpoint,
            state=state,
            code_verifier=code_verifier,
        )
        return authorization_url

    async def exchange_code(self, code: str, code_verifier: str) -> CredentialBundle:
        async with self._oauth_client() as client:
            try:
                token = await client.fetch_token(
                    self.token_endpoint,
                    code=code,
                    code_verifier=code_verifier,
                )
            except (httpx.HTTPError, OAuthError, ValueError, TypeError) as e:
                raise ProviderError(f"token request failed: {type(e).__name__}") from e
        return self._parse_bundle(token)

    async def refresh(self, refresh_token: str) -> CredentialBundle:
        # authlib keeps the old refresh token when the provider does not rotate it
        async with self._oauth_client() as client:
            try:
                token = await client.refresh_token(self.token_endpoint, refresh_token=refresh_token)
            except (httpx.HTTPError, OAuthError, ValueError, TypeError) as e:
                raise ProviderError(f"refresh request failed: {type(e).__name__}") from e
        return self._parse_bundle(token)

    async def get_profile(self, access_token: str) -> typing.Dict[str, typing.Any]:
        """
        Fetches the "who am I" document for the bearer token.
        Raises ProviderError for anything but a 200 with a JSON object.
        """
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.profile_endpoint, headers=headers)
        except httpx.HTTPError as e:
            raise ProviderError(f"profile request failed: {type(e).__name__}") from e

        if response.status_code != 200:
            raise ProviderError(f"profile request returned {response.status_code}")
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("profile response is not JSON") from e
        if not isinstance(data, dict):
            raise ProviderError("profile response is not an object")
        return data

    @staticmethod
    def _parse_bundle(token: typing.Any) -> CredentialBundle:
        try:
            return CredentialBundle.model_validate(token)
        except ValidationError as e:
            raise ProviderError("token response is missing required fields") from e
