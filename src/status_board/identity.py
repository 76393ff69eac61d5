# src/status_board/identity.py

import logging
import typing

from pydantic import ValidationError

from .errors import ProviderError
from .models import Identity
from .provider import ProviderClient

logger = logging.getLogger(__name__)


class IdentityVerifier:
    """
    Proves an access token is still good by asking the provider who it belongs to.
    Does not say why a token was rejected; refreshing is the caller's business.
    """

    def __init__(self, provider: ProviderClient):
        self.provider = provider

    async def verify(self, access_token: str) -> typing.Optional[Identity]:
        try:
            profile = await self.provider.get_profile(access_token)
        except ProviderError as e:
            logger.info("Access token rejected: %s", e.message)
            return None
        try:
            return Identity(first_name=profile.get("first_name"))
        except ValidationError:
            logger.warning("Profile response has no usable first_name")
            return None
