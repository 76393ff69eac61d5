# src/status_board/config.py

import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger(__name__)

# .env is at the project root, two levels up from src/status_board/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    logger.info("Loaded .env file from %s", ENV_FILE_PATH)
else:
    logger.debug(".env file not found at %s. Relying on environment variables.", ENV_FILE_PATH)


def _split_csv(value: Any, field_name: str) -> List[str]:
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise TypeError(f"{field_name}: Expected a comma-separated string or a list.")


class Settings(BaseSettings):
    # === Identity provider (OAuth2 client registration) ===
    CLIENT_ID: str
    CLIENT_SECRET: Optional[str] = None
    REDIRECT_URI: AnyHttpUrl
    AUTHORIZATION_ENDPOINT: AnyHttpUrl = "https://www.recurse.com/oauth/authorize"
    TOKEN_ENDPOINT: AnyHttpUrl = "https://www.recurse.com/oauth/token"
    PROFILE_ENDPOINT: AnyHttpUrl = "https://www.recurse.com/api/v1/profiles/me"
    # Comma-separated in the env; NoDecode skips JSON parsing so the validator below splits it
    OAUTH_SCOPES: Annotated[List[str], NoDecode] = []
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # === Cookies and sessions ===
    SESSION_SECRET_KEY: str
    TOKEN_COOKIE_MAX_AGE: int = 60 * 60 * 24 * 30  # 30 days
    SESSION_MAX_AGE: int = 60 * 10  # 10 minutes, long enough to finish a login

    # === Status record ===
    STATUS_FILE_PATH: Path = Path("/data/status.json")
    STATUS_KEYS: Annotated[List[str], NoDecode] = ["last_emptied", "last_cleaned"]
    STATUS_UPDATE_TIMESTAMP: Optional[str] = None

    # === Server ===
    STATIC_DIR: Path = CONFIG_FILE_DIR / "static"
    HOST: str = "0.0.0.0"
    PORT: int = 5353
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    @property
    def cookie_secure(self) -> bool:
        # Only mark cookies Secure when the deployment itself is served over https
        return self.REDIRECT_URI.scheme == "https"

    @field_validator("OAUTH_SCOPES", mode="before")
    @classmethod
    def parse_scopes(cls, v: Any) -> List[str]:
        if v is None:
            return []
        return _split_csv(v, "OAUTH_SCOPES")

    @field_validator("STATUS_KEYS", mode="before")
    @classmethod
    def parse_status_keys(cls, v: Any) -> List[str]:
        return _split_csv(v, "STATUS_KEYS")

    @field_validator("STATUS_UPDATE_TIMESTAMP")
    @classmethod
    def check_update_timestamp(cls, v: Optional[str]) -> Optional[str]:
        if v:
            # Raises ValueError, which pydantic reports against this field
            datetime.fromisoformat(v.strip())
        return v or None

    @model_validator(mode="after")
    def check_lists(self) -> "Settings":
        if not self.STATUS_KEYS:
            raise ValueError("STATUS_KEYS must name at least one key.")
        if len(set(self.STATUS_KEYS)) != len(self.STATUS_KEYS):
            raise ValueError("STATUS_KEYS must not contain duplicates.")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from the environment (and .env) once per process."""
    try:
        return Settings()
    except Exception:
        logger.exception("Error instantiating Settings")
        raise
