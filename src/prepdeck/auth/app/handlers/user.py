"""
User Handlers

This module implements the web request handlers for the signed-in user's account:
- GET / - Service banner, reporting whether the caller presented a valid access token
- PUT /api/user/profile - Rename the caller
- DELETE /api/user/profile - Delete the caller's account and every refresh session it owns
"""

from aiohttp import web
from pydantic import BaseModel

from prepdeck.auth.app.config import AuthServiceAppKey
from prepdeck.auth.app.handlers.helpers import (
    envelope,
    optional_identity_helper,
    read_body,
    request_identity,
    require_identity,
)


class ProfileUpdateBody(BaseModel):
    name: str = ""


async def handle_index(request: web.Request) -> web.Response:
    identity = await optional_identity_helper(request)
    if identity is None:
        return envelope("PrepDeck auth service", data={"authenticated": False})
    return envelope(
        "PrepDeck auth service",
        data={"authenticated": True, "user": identity.as_dict()},
    )


@require_identity
async def handle_update_profile(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    body = await read_body(request, ProfileUpdateBody)

    identity = await auth_service.rename(request_identity(request).id, body.name)
    return envelope("User profile updated successfully", data=identity.public_view())


@require_identity
async def handle_delete_profile(request: web.Request) -> web.Response:
    auth_service = request.app[AuthServiceAppKey]
    await auth_service.delete_account(request_identity(request).id)
    return envelope("Account deleted successfully")
