import asyncio
import contextlib
import logging
from time import time
from typing import Optional

import aiohttp
from aiohttp import web
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
import sentry_sdk
from sentry_sdk.integrations.aiohttp import AioHttpIntegration

from prepdeck.auth.app.config import (
    AuthServiceAppKey,
    DatabaseAppKey,
    DatabaseSessionMakerAppKey,
    HealthGaugeAppKey,
    MetricsClientAppKey,
    RedisClientAppKey,
    RefreshSessionStoreAppKey,
    SessionAppKey,
    SessionCleanupTaskAppKey,
    Settings,
    SettingsAppKey,
    TickHealthTaskAppKey,
)
from prepdeck.auth.app.handlers.auth import (
    handle_google_mobile,
    handle_profile,
    handle_refresh,
    handle_signin,
    handle_signout,
    handle_signup,
    handle_verify,
)
from prepdeck.auth.app.handlers.helpers import envelope, failure_envelope
from prepdeck.auth.app.handlers.internal import handle_internal_alive, handle_internal_ready
from prepdeck.auth.app.handlers.user import (
    handle_delete_profile,
    handle_index,
    handle_update_profile,
)
from prepdeck.auth.app.metrics import create_metrics_client
from prepdeck.auth.app.tasks import session_cleanup_task, tick_health_task
from prepdeck.auth.credentials.errors import AuthFailure, ConfigurationFault
from prepdeck.auth.credentials.federated import (
    FederatedIdentityBridge,
    GoogleAssertionVerifier,
)
from prepdeck.auth.credentials.passwords import PasswordHasher
from prepdeck.auth.credentials.service import AuthService
from prepdeck.auth.credentials.tokens import (
    AccessTokenVerifier,
    TokenIssuer,
    signing_key_from_secret,
)
from prepdeck.auth.model.health import HealthGauge
from prepdeck.auth.store.identities import CredentialStore
from prepdeck.auth.store.sessions import RefreshSessionStore

logger = logging.getLogger(__name__)


def build_auth_service(
    settings: Settings,
    database_session: async_sessionmaker[AsyncSession],
    http_session: Optional[aiohttp.ClientSession] = None,
) -> AuthService:
    """
    Wire the stores, hasher, token issuer and verifier, and (when configured) the Google bridge.

    Raises:
        ConfigurationFault: JWT_SECRET is not set
    """
    signing_key = signing_key_from_secret(settings.signing_secret())

    credential_store = CredentialStore(database_session)
    session_store = RefreshSessionStore(database_session)
    token_issuer = TokenIssuer(
        signing_key,
        session_store,
        access_token_expiry=settings.access_token_expiry,
        refresh_token_expiry=settings.refresh_token_expiry,
    )

    federated_bridge = None
    if settings.google_client_id and http_session is not None:
        federated_bridge = FederatedIdentityBridge(
            GoogleAssertionVerifier(
                http_session,
                settings.google_client_id,
                certs_url=settings.google_certs_url,
                certs_ttl=settings.google_certs_ttl,
            ),
            credential_store,
            token_issuer,
        )
    else:
        logger.warning("Google sign-in is disabled, GOOGLE_CLIENT_ID is not set")

    return AuthService(
        credential_store,
        session_store,
        PasswordHasher(rounds=settings.bcrypt_rounds),
        token_issuer,
        AccessTokenVerifier(signing_key),
        federated_bridge=federated_bridge,
    )


async def background_tasks(app):
    logger.info("Starting up")
    settings: Settings = app[SettingsAppKey]

    engine = create_async_engine(str(settings.pg_dsn))
    app[DatabaseAppKey] = engine
    database_session = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    app[DatabaseSessionMakerAppKey] = database_session

    app[SessionAppKey] = aiohttp.ClientSession()

    app[RedisClientAppKey] = redis.Redis.from_url(str(settings.redis_dsn))

    metrics_client = create_metrics_client(
        settings.metrics_backend,
        host=settings.statsd_host,
        port=settings.statsd_port,
        debug=settings.debug,
    )
    await metrics_client.connect()
    app[MetricsClientAppKey] = metrics_client

    try:
        auth_service = build_auth_service(
            settings, database_session, app[SessionAppKey]
        )
    except ConfigurationFault as e:
        logger.critical("Refusing to start: %s", e.message)
        await engine.dispose()
        await app[SessionAppKey].close()
        await app[RedisClientAppKey].aclose()
        await metrics_client.close()
        raise

    app[AuthServiceAppKey] = auth_service
    app[RefreshSessionStoreAppKey] = auth_service.session_store

    logger.info("Startup complete")

    app[TickHealthTaskAppKey] = asyncio.create_task(tick_health_task(app))
    app[SessionCleanupTaskAppKey] = asyncio.create_task(session_cleanup_task(app))

    yield

    logger.info("Shutting down background tasks")

    app[TickHealthTaskAppKey].cancel()
    app[SessionCleanupTaskAppKey].cancel()

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[TickHealthTaskAppKey]

    with contextlib.suppress(asyncio.exceptions.CancelledError):
        await app[SessionCleanupTaskAppKey]

    await app[DatabaseAppKey].dispose()
    await app[SessionAppKey].close()
    await app[RedisClientAppKey].aclose()
    await app[MetricsClientAppKey].close()


@web.middleware
async def envelope_middleware(request: web.Request, handler):
    """
    Render `AuthFailure` as the uniform failure envelope and hide everything else behind a 500.

    aiohttp's own HTTP exceptions (404, 405) pass through untouched.
    """
    try:
        return await handler(request)
    except AuthFailure as e:
        if isinstance(e, ConfigurationFault):
            logger.error("%s %s: %s", request.method, request.path, e.message)
        return failure_envelope(e)
    except web.HTTPException:
        raise
    except Exception as e:
        sentry_sdk.capture_exception(e)
        logger.exception("unhandled exception on %s %s", request.method, request.path)
        await request.app[HealthGaugeAppKey].womp()
        return envelope("Internal server error", status=500, success=False)


@web.middleware
async def statsd_middleware(request: web.Request, handler):
    metrics_client = request.app[MetricsClientAppKey]
    request_method: str = request.method
    request_path = request.path

    start_time: float = time()
    response_status_code = 0

    try:
        response = await handler(request)
        response_status_code = response.status
        return response
    except Exception as e:
        metrics_client.increment(
            "prepdeck.server.request.exception",
            1,
            tag_dict={
                "exception": type(e).__name__,
                "path": request_path,
                "method": request_method,
            },
        )
        raise e
    finally:
        metrics_client.timer(
            "prepdeck.server.request.time",
            time() - start_time,
            tag_dict={"path": request_path, "method": request_method},
        )
        metrics_client.increment(
            "prepdeck.server.request.count",
            1,
            tag_dict={
                "path": request_path,
                "method": request_method,
                "status": response_status_code,
            },
        )


def create_app(settings: Settings) -> web.Application:
    """
    Build the application with its routes and middlewares.

    Resources (database, Redis, metrics, `AuthService`) are attached by `background_tasks`, which
    `start_web_server` registers as a cleanup context.
    """
    app = web.Application(middlewares=[statsd_middleware, envelope_middleware])

    app[SettingsAppKey] = settings
    app[HealthGaugeAppKey] = HealthGauge()

    app.add_routes([web.get("/", handle_index)])

    app.add_routes(
        [
            web.post("/api/auth/signup", handle_signup),
            web.post("/api/auth/signin", handle_signin),
            web.post("/api/auth/refresh", handle_refresh),
            web.post("/api/auth/signout", handle_signout),
            web.post("/api/auth/google/mobile", handle_google_mobile),
            web.get("/api/auth/verify", handle_verify),
            web.get("/api/auth/profile", handle_profile),
        ]
    )

    app.add_routes(
        [
            web.put("/api/user/profile", handle_update_profile),
            web.delete("/api/user/profile", handle_delete_profile),
        ]
    )

    app.add_routes(
        [
            web.get("/internal/alive", handle_internal_alive),
            web.get("/internal/ready", handle_internal_ready),
        ]
    )

    return app


async def start_web_server(settings: Optional[Settings] = None):

    if settings is None:
        settings = Settings()  # type: ignore
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            send_default_pii=False,
            integrations=[AioHttpIntegration()],
        )

    app = create_app(settings)
    app.cleanup_ctx.append(background_tasks)

    return app
