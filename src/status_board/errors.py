# src/status_board/errors.py

from fastapi import status


class StatusBoardError(Exception):
    """Base error. Carries the short message and status code shown to the client."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "internal server error"

    def __init__(self, message: str = None, status_code: int = None):
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ProviderError(StatusBoardError):
    """The identity provider could not be reached or answered with something unusable."""

    status_code = status.HTTP_502_BAD_GATEWAY
    message = "identity provider error"


class InvalidAuthStateError(StatusBoardError):
    # Missing or malformed pending login state at the callback: a broken or replayed callback.
    message = "invalid code verifier"


class AuthorizationCallbackError(StatusBoardError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "authorization failed"


class TokenExchangeError(StatusBoardError):
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "token exchange failed"


class InvalidStatusKeyError(StatusBoardError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "invalid key"

    def __init__(self, key: str):
        super().__init__()
        self.key = key


class InvalidTimestampError(StatusBoardError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "invalid timestamp"


class StatusStoreError(StatusBoardError):
    """The persisted status record exists but cannot be used."""
