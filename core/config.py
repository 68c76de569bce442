"""
Pydantic-based configuration for the redirect auditor.

All knobs are exposed via environment variables (prefix REDIRECT_AUDIT_)
or a .env file. The fetcher never reads these globals directly: callers
build an immutable FetchConfig from them and hand it over.
"""

from functools import lru_cache
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/128.0.0.0 Safari/537.36"
)

VARIANTS = {"full", "basic"}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REDIRECT_AUDIT_", case_sensitive=False, env_file=".env")

    # Per-request transport knobs
    http_timeout_s: float = Field(1.0, gt=0, description="per-request timeout in seconds")
    user_agent: str = Field(DEFAULT_USER_AGENT, description="browser-like User-Agent header")
    accept_language: str = Field("en-US,en;q=0.9")
    verify_tls: bool = Field(True, description="verify server certificates on https hops")

    # Navigation
    max_hops: int = Field(25, ge=1, le=25, description="hard cap on hops per chain")
    variant: str = Field("full", description="full (four policies) or basic (http/https only)")

    log_level: str = Field("INFO")

    @field_validator("variant")
    @classmethod
    def validate_variant(cls, v: str) -> str:
        v = v.lower()
        if v not in VARIANTS:
            raise ValueError("variant must be full or basic")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.upper()


class FetchConfig(BaseModel):
    """Immutable request settings handed to the single-hop fetcher."""

    model_config = ConfigDict(frozen=True)

    timeout_s: float = 1.0
    user_agent: str = DEFAULT_USER_AGENT
    accept_language: str = "en-US,en;q=0.9"
    verify_tls: bool = True

    @classmethod
    def from_settings(cls, s: Settings) -> "FetchConfig":
        return cls(
            timeout_s=s.http_timeout_s,
            user_agent=s.user_agent,
            accept_language=s.accept_language,
            verify_tls=s.verify_tls,
        )

    def headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, "Accept-Language": self.accept_language}


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
