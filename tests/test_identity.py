"""Tests for the identity verifier."""

import httpx
import pytest

from status_board.identity import IdentityVerifier
from status_board.models import Identity

from .conftest import PROFILE_PATH


@pytest.fixture
def verifier(provider):
    return IdentityVerifier(provider)


@pytest.mark.asyncio
async def test_valid_token_returns_first_name(verifier, provider_mock):
    route = provider_mock.get(PROFILE_PATH).mock(
        return_value=httpx.Response(200, json={"first_name": "Ada", "last_name": "Lovelace"})
    )

    identity = await verifier.verify("access-1")

    assert identity == Identity(first_name="Ada")
    assert identity.model_dump(by_alias=True) == {"firstName": "Ada"}
    assert route.calls.last.request.headers["Authorization"] == "Bearer access-1"
    assert route.call_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(401, json={"error": "invalid_token"}),
    httpx.Response(403),
    httpx.Response(503),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json=["Ada"]),
    httpx.Response(200, json={"last_name": "Lovelace"}),
    httpx.Response(200, json={"first_name": 42}),
])
async def test_anything_but_a_good_profile_is_invalid(verifier, provider_mock, response):
    provider_mock.get(PROFILE_PATH).mock(return_value=response)

    assert await verifier.verify("access-1") is None


@pytest.mark.asyncio
async def test_network_error_is_invalid(verifier, provider_mock):
    route = provider_mock.get(PROFILE_PATH).mock(side_effect=httpx.ConnectError("refused"))

    assert await verifier.verify("access-1") is None
    assert route.call_count == 1
