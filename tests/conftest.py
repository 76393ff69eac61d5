"""Pytest configuration and fixtures."""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from status_board.config import Settings
from status_board.main import create_app
from status_board.models import CredentialBundle
from status_board.provider import ProviderClient
from status_board.token_store import TOKEN_COOKIE_NAME, CookieTokenSerializer, SignedCookieTokenStore

PROVIDER_URL = "https://provider.test"
TOKEN_PATH = "/oauth/token"
PROFILE_PATH = "/api/v1/profiles/me"


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a fake provider and a throwaway status file."""
    return Settings(
        _env_file=None,
        CLIENT_ID="test-client",
        CLIENT_SECRET="test-secret",
        REDIRECT_URI="http://testserver/api/callback",
        SESSION_SECRET_KEY="test-secret-key-for-testing-purposes-only",
        AUTHORIZATION_ENDPOINT=f"{PROVIDER_URL}/oauth/authorize",
        TOKEN_ENDPOINT=f"{PROVIDER_URL}{TOKEN_PATH}",
        PROFILE_ENDPOINT=f"{PROVIDER_URL}{PROFILE_PATH}",
        STATUS_FILE_PATH=tmp_path / "data" / "status.json",
        STATIC_DIR=tmp_path / "no-static",
    )


@pytest.fixture
def provider(settings):
    return ProviderClient(settings)


@pytest.fixture
def serializer(settings):
    return CookieTokenSerializer(settings)


@pytest.fixture
def bundle():
    return CredentialBundle(
        access_token="access-1",
        token_type="Bearer",
        expires_in=7200,
        refresh_token="refresh-1",
    )


@pytest.fixture
def make_token_store(provider, serializer):
    """Builds a request-scoped token store, optionally carrying an inbound cookie."""

    def _make(bundle=None):
        cookies = {}
        if bundle is not None:
            cookies[TOKEN_COOKIE_NAME] = serializer.dumps(bundle)
        return SignedCookieTokenStore(provider=provider, serializer=serializer, cookies=cookies)

    return _make


@pytest.fixture
def provider_mock():
    """Mocks the identity provider; any unmocked outbound request fails the test."""
    with respx.mock(base_url=PROVIDER_URL, assert_all_called=False) as mock:
        yield mock


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def login_as(client, serializer):
    """Puts a signed credential cookie into the test client's jar."""

    def _login(bundle):
        client.cookies.set(TOKEN_COOKIE_NAME, serializer.dumps(bundle))

    return _login


def profile_for(valid_tokens):
    """Profile endpoint side effect that accepts only the given access tokens."""

    def _respond(request):
        token = request.headers["Authorization"].removeprefix("Bearer ")
        if token in valid_tokens:
            return httpx.Response(200, json={"first_name": "Ada"})
        return httpx.Response(401, json={"error": "invalid_token"})

    return _respond
