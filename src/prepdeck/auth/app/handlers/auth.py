"""
Authentication Handlers

This module implements the web request handlers for the mobile client's authentication API.

The handlers in this module provide the following endpoints:
- POST /api/auth/signup - Register with name, email and password
- POST /api/auth/signin - Sign in with email and password
- POST /api/auth/refresh - Exchange a refresh token for a new token pair
- POST /api/auth/signout - Revoke a refresh token
- POST /api/auth/google/mobile - Sign in or register with a Google ID token
- GET /api/auth/verify - Check an access token
- GET /api/auth/profile - Read the caller's profile

Handlers only parse input and shape output. Failures are raised as `AuthFailure` and rendered
by the envelope middleware in `server.py`.
"""

import logging
from typing import Optional

from aiohttp import web
from pydantic import BaseModel, ConfigDict, Field

from prepdeck.auth.app.config import AuthServiceAppKey, MetricsClientAppKey
from prepdeck.auth.app.handlers.helpers import (
    envelope,
    read_body,
    request_identity,
    require_identity,
)
from prepdeck.auth.credentials.errors import AuthFailure

logger = logging.getLogger(__name__)


class SignUpBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    email: str = ""
    password: str = ""
    confirm_password: str = Field(default="", alias="confirmPassword")


class SignInBody(BaseModel):
    email: str = ""
    password: str = ""


class RefreshTokenBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")


class IdTokenBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id_token: Optional[str] = Field(default=None, alias="idToken")


async def handle_signup(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    body = await read_body(request, SignUpBody)

    result = await auth_service.sign_up(
        body.name, body.email, body.password, body.confirm_password
    )
    request.app[MetricsClientAppKey].increment("prepdeck.auth.signup.count", 1)

    return envelope(
        "User registered successfully",
        data={"user": result.identity.public_view(), **result.pair.as_response()},
        status=201,
    )


async def handle_signin(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    metrics_client = request.app[MetricsClientAppKey]
    body = await read_body(request, SignInBody)

    try:
        result = await auth_service.sign_in(body.email, body.password)
    except AuthFailure as e:
        metrics_client.increment(
            "prepdeck.auth.signin.failure", 1, tag_dict={"code": e.code}
        )
        raise

    metrics_client.increment("prepdeck.auth.signin.success", 1)
    return envelope(
        "Sign in successful",
        data={"user": result.identity.public_view(), **result.pair.as_response()},
    )


async def handle_refresh(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    metrics_client = request.app[MetricsClientAppKey]
    body = await read_body(request, RefreshTokenBody)

    try:
        pair = await auth_service.refresh(body.refresh_token)
    except AuthFailure as e:
        metrics_client.increment(
            "prepdeck.auth.refresh.failure", 1, tag_dict={"code": e.code}
        )
        raise

    metrics_client.increment("prepdeck.auth.refresh.success", 1)
    return envelope("Token refreshed successfully", data=pair.as_response())


async def handle_signout(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    body = await read_body(request, RefreshTokenBody)

    await auth_service.sign_out(body.refresh_token)
    return envelope("Signed out successfully")


async def handle_google_mobile(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    body = await read_body(request, IdTokenBody)

    result = await auth_service.federated_sign_in(body.id_token)
    request.app[MetricsClientAppKey].increment(
        "prepdeck.auth.federated.count",
        1,
        tag_dict={"identity": "new" if result.created else "existing"},
    )

    message = "Google sign up successful" if result.created else "Google sign in successful"
    return envelope(
        message,
        data={"user": result.identity.public_view(), **result.pair.as_response()},
    )


@require_identity
async def handle_verify(request: web.Request) -> web.Response:
    identity = request_identity(request)
    return envelope("Token is valid", data={"user": identity.as_dict()})


@require_identity
async def handle_profile(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    identity = await auth_service.profile(request_identity(request).id)
    return envelope("User profile retrieved successfully", data=identity.public_view())
