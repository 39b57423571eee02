import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Type, TypeVar

from aiohttp import web
from pydantic import BaseModel, ValidationError
import sentry_sdk

from prepdeck.auth.app.config import (
    IDENTITY_REQUEST_KEY,
    AuthServiceAppKey,
)
from prepdeck.auth.credentials.errors import AuthFailure, ValidationFailure
from prepdeck.auth.credentials.service import AuthenticatedIdentity

logger = logging.getLogger(__name__)

BodyT = TypeVar("BodyT", bound=BaseModel)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def envelope(
    message: str,
    data: Optional[Dict[str, Any]] = None,
    status: int = 200,
    success: bool = True,
    error: Optional[str] = None,
) -> web.Response:
    """
    Build the uniform response body: `{success, message, data?, error?}`.

    `data` and `error` are omitted entirely when not given.
    """
    body: Dict[str, Any] = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    return web.json_response(body, status=status)


def failure_envelope(failure: AuthFailure) -> web.Response:
    return envelope(
        failure.message, status=failure.status, success=False, error=failure.detail
    )


async def read_body(request: web.Request, model: Type[BodyT]) -> BodyT:
    """Parse the JSON request body into `model`. An empty body parses as `{}`."""
    try:
        data = await request.read()
        return model.model_validate_json(data or b"{}")
    except (OSError, ValidationError):
        raise ValidationFailure.invalid_body() from None


def bearer_token(request: web.Request) -> Optional[str]:
    authorizations: Optional[str] = request.headers.getone("Authorization", None)
    if (
        authorizations is None
        or not authorizations.startswith("Bearer ")
        or len(authorizations) < 8
    ):
        return None
    return authorizations[7:].strip()


async def auth_identity_helper(request: web.Request) -> AuthenticatedIdentity:
    """
    Authenticate a request from its `Authorization: Bearer <access token>` header.

    On success the minimal identity (id, email, name) is attached to the request under
    `IDENTITY_REQUEST_KEY` and returned.

    Raises:
        AuthenticationFailure: the header is missing, or the token is invalid or expired
        IdentityNotFound: the token is valid but its subject no longer exists
    """
    auth_service = request.app[AuthServiceAppKey]
    identity = await auth_service.authenticate(bearer_token(request))
    request[IDENTITY_REQUEST_KEY] = identity
    return identity


async def optional_identity_helper(
    request: web.Request,
) -> Optional[AuthenticatedIdentity]:
    """
    Authenticate a request when it carries credentials, never failing.

    Any failure leaves the request anonymous.
    """
    try:
        return await auth_identity_helper(request)
    except AuthFailure:
        return None
    except Exception as e:
        sentry_sdk.capture_exception(e)
        logger.exception("optional_identity_helper: Exception")
        return None


def require_identity(handler: Handler) -> Handler:
    """Handler decorator that rejects the request unless `auth_identity_helper` succeeds."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        await auth_identity_helper(request)
        return await handler(request)

    return wrapper


def request_identity(request: web.Request) -> AuthenticatedIdentity:
    return request[IDENTITY_REQUEST_KEY]
