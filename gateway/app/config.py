"""
Configuration module for the Generation Gateway.

This module uses Pydantic Settings to load environment variables once at
process start, and turns them into an immutable ``GatewayConfig`` that is
injected into the request handler.

Secrets (the upstream API key and the identity service account bundle) are
never required at load time. When they are missing or unparsable the gateway
starts anyway in degraded mode and rejects requests with
``ServiceMisconfigured`` until it is restarted with a valid configuration.
"""

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ServiceMisconfigured
from .proxy.upstream import RetryPolicy

logger = logging.getLogger("gateway.config")


API_KEY_MISSING_MESSAGE = "Server key not configured."
IDENTITY_MISSING_MESSAGE = "Identity verification not configured on server."


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields have defaults so that a missing secret degrades the service
    instead of preventing it from starting.
    """

    # =========================================================================
    # Upstream Generation API
    # =========================================================================

    GEMINI_API_KEY: Optional[str] = Field(
        None,
        description="API key for the upstream generation service",
    )

    GEMINI_API_BASE_URL: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/models",
        description="Base URL of the upstream models endpoint",
        min_length=1,
    )

    GEMINI_MODEL: str = Field(
        default="gemini-2.5-flash-preview-09-2025",
        description="Model identifier used in the generateContent URL",
        min_length=1,
    )

    UPSTREAM_MAX_ATTEMPTS: int = Field(
        default=3,
        description="Total number of upstream attempts per request",
        ge=1,
        le=10,
    )

    UPSTREAM_BASE_DELAY_MS: int = Field(
        default=1000,
        description="Base backoff delay in milliseconds (doubles per attempt)",
        ge=0,
    )

    UPSTREAM_TIMEOUT_SECONDS: float = Field(
        default=60.0,
        description="Transport timeout applied to outbound HTTP calls",
        gt=0,
    )

    # =========================================================================
    # Identity Verification (Firebase ID tokens)
    # =========================================================================

    REQUIRE_AUTH: bool = Field(
        default=True,
        description="Require a verified bearer token before forwarding",
    )

    FIREBASE_SERVICE_ACCOUNT_KEY: Optional[str] = Field(
        None,
        description="JSON-encoded Firebase service account bundle",
    )

    FIREBASE_JWKS_URL: str = Field(
        default="https://www.googleapis.com/service_accounts/v1/jwk/securetoken@system.gserviceaccount.com",
        description="JWKS endpoint publishing Firebase ID token signing keys",
    )

    JWKS_CACHE_SECONDS: int = Field(
        default=3600,
        description="Time to cache signing keys in seconds",
        ge=0,
        le=86400,
    )

    # =========================================================================
    # Server Configuration
    # =========================================================================

    GATEWAY_HOST: str = Field(default="0.0.0.0")

    GATEWAY_PORT: int = Field(default=8080, ge=1, le=65535)

    ALLOWED_ORIGINS: Optional[str] = Field(
        None,
        description="Comma-separated list of allowed CORS origins (leave empty for no CORS)",
    )

    LOG_LEVEL: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def allowed_origins_list(self) -> List[str]:
        if not self.ALLOWED_ORIGINS:
            return []

        return [
            origin.strip()
            for origin in self.ALLOWED_ORIGINS.split(",")
            if origin.strip()
        ]

    @property
    def upstream_url(self) -> str:
        base = self.GEMINI_API_BASE_URL.rstrip("/")
        return f"{base}/{self.GEMINI_MODEL}:generateContent"

    @field_validator("GEMINI_API_KEY")
    @classmethod
    def sanitize_api_key(cls, v: Optional[str]) -> Optional[str]:
        """Strip whitespace and stray quotes pasted into dashboards."""
        if v is None:
            return None
        v = v.strip().strip(" \"'`")
        return v or None

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v = v.upper()
        if v not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}, got: {v}")
        return v


class ServiceAccountCredentials(BaseModel):
    """The subset of a Firebase service account bundle the gateway relies on."""

    model_config = ConfigDict(extra="allow", frozen=True)

    project_id: str = Field(..., min_length=1)
    type: Optional[str] = None
    client_email: Optional[str] = None
    private_key_id: Optional[str] = None


def parse_service_account(raw: Optional[str]) -> Tuple[Optional[ServiceAccountCredentials], Optional[str]]:
    """
    Parse the JSON-encoded service account bundle.

    Returns:
        ``(credentials, None)`` on success, ``(None, reason)`` otherwise.
    """
    if not raw or not raw.strip():
        return None, "FIREBASE_SERVICE_ACCOUNT_KEY is missing"

    try:
        data = json.loads(raw)
    except ValueError as e:
        return None, f"FIREBASE_SERVICE_ACCOUNT_KEY is not valid JSON: {e}"

    if not isinstance(data, dict):
        return None, "FIREBASE_SERVICE_ACCOUNT_KEY must be a JSON object"

    try:
        return ServiceAccountCredentials.model_validate(data), None
    except ValidationError as e:
        return None, f"FIREBASE_SERVICE_ACCOUNT_KEY is incomplete: {e.error_count()} invalid field(s)"


@dataclass(frozen=True)
class GatewayConfig:
    """
    Process-wide configuration, built once at startup and never mutated.

    ``problems`` lists every misconfiguration found while building it; a
    non-empty list means the gateway is running in degraded mode.
    """

    api_key: Optional[str]
    upstream_url: str
    model: str
    retry_policy: RetryPolicy
    upstream_timeout: float
    auth_required: bool
    identity: Optional[ServiceAccountCredentials]
    jwks_url: str
    jwks_cache_seconds: int
    problems: Tuple[str, ...] = ()

    @property
    def degraded(self) -> bool:
        return bool(self.problems)

    def ensure_ready(self) -> None:
        """
        Fail closed when a mandatory secret is unavailable.

        Raises:
            ServiceMisconfigured: If the API key is missing, or auth is
                required and the identity service is not configured.
        """
        if not self.api_key:
            raise ServiceMisconfigured(
                API_KEY_MISSING_MESSAGE,
                reason="GEMINI_API_KEY is not set",
            )

        if self.auth_required and self.identity is None:
            raise ServiceMisconfigured(
                IDENTITY_MISSING_MESSAGE,
                reason="identity service credentials unavailable",
            )


def build_gateway_config(settings: Settings) -> GatewayConfig:
    """
    Validate secrets once and produce the immutable gateway configuration.

    Misconfiguration is logged here, at startup, rather than on every
    request.
    """
    problems: List[str] = []

    if not settings.GEMINI_API_KEY:
        problems.append("GEMINI_API_KEY is missing")

    identity: Optional[ServiceAccountCredentials] = None
    if settings.REQUIRE_AUTH:
        identity, reason = parse_service_account(settings.FIREBASE_SERVICE_ACCOUNT_KEY)
        if reason:
            problems.append(reason)

    for problem in problems:
        logger.error(f"Configuration problem: {problem}")

    return GatewayConfig(
        api_key=settings.GEMINI_API_KEY,
        upstream_url=settings.upstream_url,
        model=settings.GEMINI_MODEL,
        retry_policy=RetryPolicy(
            max_attempts=settings.UPSTREAM_MAX_ATTEMPTS,
            base_delay=settings.UPSTREAM_BASE_DELAY_MS / 1000.0,
        ),
        upstream_timeout=settings.UPSTREAM_TIMEOUT_SECONDS,
        auth_required=settings.REQUIRE_AUTH,
        identity=identity,
        jwks_url=settings.FIREBASE_JWKS_URL,
        jwks_cache_seconds=settings.JWKS_CACHE_SECONDS,
        problems=tuple(problems),
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get or create a singleton Settings instance.

    Returns:
        Settings instance loaded from the environment and ``.env``.
    """
    return Settings()
