# src/status_board/models.py

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialBundle(BaseModel):
    """
    Tokens issued by the identity provider.
    Lives only in the browser's signed cookie; the server never stores it.
    Accepts the provider's snake_case token response and is written to the
    cookie with camelCase keys.
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(alias="accessToken")
    token_type: str = Field(default="Bearer", alias="tokenType")
    expires_in: int = Field(default=0, alias="expiresIn")
    refresh_token: str = Field(alias="refreshToken")


class PendingAuthState(BaseModel):
    """
    Server-side state for one in-flight login attempt, consumed at the callback.
    """
    code_verifier: str
    state: Optional[str] = None


class Identity(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: str = Field(alias="firstName")
