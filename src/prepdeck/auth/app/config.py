"""
Configuration Module for the PrepDeck Auth Service

This module defines the configuration system for the service, using Pydantic for settings
validation and dependency injection through AppKeys.

The configuration follows these principles:
1. Environment-based configuration with sensible defaults
2. Strong validation and typing through Pydantic
3. Dependency injection pattern using aiohttp's app context
4. Token lifetimes are configuration, never constants in code

The Settings class serves as the central configuration point, loaded from environment variables
with defaults suitable for development environments. All application components access settings
and shared resources through typed AppKeys.

Key configuration areas include:
- Service identification and networking
- Database and cache connections
- Token signing and lifetimes
- Google sign-in
- Background processing configuration
- Monitoring and observability
"""

import asyncio
import logging
from typing import Final, Optional

from aiohttp import ClientSession, web
from pydantic import AliasChoices, Field, PostgresDsn, RedisDsn, SecretStr, field_validator
from pydantic_settings import BaseSettings
from redis import asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from prepdeck.auth.app.metrics import MetricsClient
from prepdeck.auth.credentials.service import AuthService
from prepdeck.auth.model.health import HealthGauge
from prepdeck.auth.store.sessions import RefreshSessionStore


logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Application settings for the PrepDeck auth service.

    This class uses Pydantic's BaseSettings to automatically load values from environment
    variables. Environment variables map to field names; aliases are provided where the
    deployment uses a different conventional name (for example DATABASE_URL for pg_dsn).
    """

    # Environment and debugging settings
    debug: bool = False
    """
    Enable debug mode for verbose logging and development features.
    Set with DEBUG=true environment variable.
    """

    # Network settings
    http_port: int = Field(alias="port", default=5100)
    """
    HTTP port for the service to listen on.
    Set with PORT environment variable.
    """

    # Monitoring and error reporting
    sentry_dsn: Optional[str] = None
    """
    Sentry DSN for error reporting. Optional, no error reporting if not set.
    Set with SENTRY_DSN environment variable.
    """

    # Database and cache connections
    redis_dsn: RedisDsn = Field(
        "redis://valkey:6379/1?decode_responses=True",
        validation_alias=AliasChoices("redis_dsn", "redis_url"),
    )  # type: ignore
    """
    Redis connection string used to coordinate background tasks between workers.
    Set with REDIS_DSN or REDIS_URL environment variables.
    """

    pg_dsn: PostgresDsn = Field(
        "postgresql+asyncpg://postgres:password@db/prepdeck",
        validation_alias=AliasChoices("pg_dsn", "database_url"),
    )  # type: ignore
    """
    PostgreSQL connection string for the identity and session tables.
    Set with PG_DSN or DATABASE_URL environment variables.
    """

    # Token signing and lifetimes
    jwt_secret: Optional[SecretStr] = None
    """
    Symmetric secret for signing access tokens (HS256). Required; the service refuses to start
    without it.
    Set with JWT_SECRET environment variable.
    """

    access_token_expiry: int = 900  # 15 minutes
    """
    Lifetime in seconds of access tokens.
    Set with ACCESS_TOKEN_EXPIRY environment variable.
    Default: 900 (15 minutes)
    """

    refresh_token_expiry: int = 604800  # 7 days
    """
    Lifetime in seconds of refresh sessions.
    Set with REFRESH_TOKEN_EXPIRY environment variable.
    Default: 604800 (7 days)
    """

    bcrypt_rounds: int = 12
    """
    bcrypt cost factor for password hashes. Recalculate per deployment hardware.
    Set with BCRYPT_ROUNDS environment variable.
    """

    # Google sign-in
    google_client_id: Optional[str] = None
    """
    OAuth client id the mobile app uses for Google Sign-In. ID tokens must carry it as their
    audience. Google sign-in answers 503 when unset.
    Set with GOOGLE_CLIENT_ID environment variable.
    """

    google_certs_url: str = "https://www.googleapis.com/oauth2/v3/certs"
    """
    JWKS endpoint publishing Google's ID token signing keys.
    Set with GOOGLE_CERTS_URL environment variable.
    """

    google_certs_ttl: int = 3600
    """
    Seconds to cache Google's signing keys.
    Set with GOOGLE_CERTS_TTL environment variable.
    """

    # Worker identification
    worker_id: str
    """
    Unique identifier for this worker instance (required, no default).
    Used as the owner of the session cleanup lock.
    Set with WORKER_ID environment variable.
    """

    # Background processing configuration
    session_cleanup_interval: int = 3600
    """
    Seconds between purges of expired refresh sessions.
    Set with SESSION_CLEANUP_INTERVAL environment variable.
    """

    # Monitoring and observability settings
    metrics_backend: str = "telegraf"
    """
    Metrics backend, either "telegraf" or "none".
    Set with METRICS_BACKEND environment variable.
    """

    statsd_host: str = Field(alias="TELEGRAF_HOST", default="telegraf")
    """
    StatsD/Telegraf host for metrics collection.
    Set with TELEGRAF_HOST environment variable.
    """

    statsd_port: int = Field(alias="TELEGRAF_PORT", default=8125)
    """
    StatsD/Telegraf port for metrics collection.
    Set with TELEGRAF_PORT environment variable.
    """

    @field_validator("access_token_expiry", "refresh_token_expiry", "session_cleanup_interval")
    @classmethod
    def positive_duration(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("durations must be a positive number of seconds")
        return v

    @field_validator("bcrypt_rounds")
    @classmethod
    def bcrypt_cost_range(cls, v: int) -> int:
        if v < 4 or v > 31:
            raise ValueError("bcrypt_rounds must be between 4 and 31")
        return v

    def signing_secret(self) -> Optional[str]:
        if self.jwt_secret is None:
            return None
        return self.jwt_secret.get_secret_value()


# Background task constants
SESSION_CLEANUP_LOCK = "auth_session:cleanup:lock"
"""
Redis key holding the id of the worker that owns the current cleanup interval.
"""

# Request context keys
IDENTITY_REQUEST_KEY = "identity"
"""Request key under which the authenticated identity is attached"""

# Application context keys for dependency injection
SettingsAppKey: Final = web.AppKey("settings", Settings)
"""AppKey for accessing the application settings"""

DatabaseAppKey: Final = web.AppKey("database", AsyncEngine)
"""AppKey for accessing the SQLAlchemy async database engine"""

DatabaseSessionMakerAppKey: Final = web.AppKey(
    "database_session_maker", async_sessionmaker[AsyncSession]
)
"""AppKey for accessing the SQLAlchemy async session factory"""

SessionAppKey: Final = web.AppKey("http_session", ClientSession)
"""AppKey for accessing the shared aiohttp client session"""

RedisClientAppKey: Final = web.AppKey("redis_client", redis.Redis)
"""AppKey for accessing the Redis client"""

HealthGaugeAppKey: Final = web.AppKey("health_gauge", HealthGauge)
"""AppKey for accessing the health monitoring gauge"""

MetricsClientAppKey: Final = web.AppKey("metrics_client", MetricsClient)
"""AppKey for the metrics client"""

AuthServiceAppKey: Final = web.AppKey("auth_service", AuthService)
"""AppKey for the credential issuance and session service"""

RefreshSessionStoreAppKey: Final = web.AppKey(
    "refresh_session_store", RefreshSessionStore
)
"""AppKey for the refresh session store, used by the cleanup task"""

SessionCleanupTaskAppKey: Final = web.AppKey("session_cleanup_task", asyncio.Task[None])
"""AppKey for the background task that purges expired refresh sessions"""

TickHealthTaskAppKey: Final = web.AppKey("tick_health_task", asyncio.Task[None])
"""AppKey for the background task that decays the health gauge"""
