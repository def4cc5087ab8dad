"""Application configuration and settings management."""

from __future__ import annotations

import json
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, Field, HttpUrl, model_validator
from pydantic.functional_validators import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ONEGRAPH_BASE_URL = "https://serve.onegraph.com"


class CollectionSettings(BaseModel):
    """A remote collection served over HTTP."""

    name: str
    base_url: HttpUrl
    id_field: str = Field(
        default="_id",
        description="Record field holding the id used by loaders",
    )


class Settings(BaseSettings):
    """Environment-driven configuration for the context builder."""

    api_key: str | None = Field(
        default=None,
        description="Static pre-shared key granting admin context through the apikey header",
        alias="API_KEY",
    )
    auth_header: str = Field(
        default="og_authorization",
        description="Request header carrying the session token",
        alias="AUTH_HEADER",
    )
    verifier_app_id: str | None = Field(
        default=None,
        description="Application identity the token verifier checks tokens against",
        alias="VERIFIER_APP_ID",
    )
    verifier_shared_secret: str | None = Field(
        default=None,
        description="Shared HS256 secret; when unset tokens are verified with the JWKS keys",
        alias="VERIFIER_SHARED_SECRET",
    )
    verifier_issuer: str = Field(
        default=ONEGRAPH_BASE_URL,
        alias="VERIFIER_ISSUER",
    )
    verifier_audience: str | None = Field(
        default=None,
        description="Expected token audience, derived from the app id when unset",
        alias="VERIFIER_AUDIENCE",
    )
    verifier_jwks_url: str | None = Field(
        default=None,
        description="JWKS endpoint, derived from the app id when unset",
        alias="VERIFIER_JWKS_URL",
    )
    service_auth_token: str | None = Field(
        default=None,
        description="Bearer token added to requests sent to the collection and user services",
        alias="SERVICE_AUTH_TOKEN",
    )
    user_store_url: HttpUrl | None = Field(
        default=None,
        description="Base URL of the user store service",
        alias="USER_STORE_URL",
    )
    collections: list[CollectionSettings] = Field(
        default_factory=list,
        description="Collections registered at startup",
        alias="COLLECTIONS",
    )
    require_collections: bool = Field(
        default=True,
        description="Refuse to start when no collection is registered",
        alias="REQUIRE_COLLECTIONS",
    )
    default_locale: str = Field(default="en-US", alias="DEFAULT_LOCALE")
    available_locales: list[str] = Field(
        default_factory=list,
        description="Locales the application ships; empty accepts any negotiated locale",
        alias="AVAILABLE_LOCALES",
    )
    loader_max_batch_size: int | None = Field(
        default=None,
        description="Upper bound on ids per batched fetch",
        alias="LOADER_MAX_BATCH_SIZE",
    )
    log_level: str = Field(
        default="INFO",
        description="Root logger level",
        alias="LOG_LEVEL",
    )
    log_format: str = Field(
        default="console",
        description="Either 'console' or 'json'",
        alias="LOG_FORMAT",
    )

    @field_validator("collections", "available_locales", mode="before")
    @classmethod
    def _parse_json_list(cls, value: object) -> object:
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as exc:  # pragma: no cover - env misconfiguration
                raise ValueError("Value must be a valid JSON list") from exc
        return value

    @model_validator(mode="after")
    def _derive_verifier_urls(self) -> Settings:
        if self.verifier_app_id:
            if self.verifier_audience is None:
                self.verifier_audience = f"{ONEGRAPH_BASE_URL}/dashboard/app/{self.verifier_app_id}"
            if self.verifier_jwks_url is None:
                self.verifier_jwks_url = f"{ONEGRAPH_BASE_URL}/app/{self.verifier_app_id}/.well-known/jwks.json"
        return self

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a setting by field name, falling back to ``default`` when unset."""
        value = getattr(self, key, None)
        return default if value is None else value

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        populate_by_name=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance.

    Using LRU caching keeps a single settings object per process.
    """

    return Settings()  # type: ignore[call-arg]
