"""
Sign-up, sign-in, refresh, sign-out and request authentication flows.

`AuthService` strings the stores, the password hasher, the token issuer and verifier, and the
federated bridge together. Every method either returns a result or raises an `AuthFailure`
subclass; the HTTP layer is responsible for turning those into responses.

Each password flow runs as a small state machine over one request:

    Validating -> Authenticating -> Issuing -> Done

and can abort in any state with a typed failure.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from prepdeck.auth.credentials.errors import (
    AuthenticationFailure,
    ConfigurationFault,
    IdentityNotFound,
    SessionExpired,
    ValidationFailure,
)
from prepdeck.auth.credentials.federated import FederatedIdentityBridge, FederatedResult
from prepdeck.auth.credentials.passwords import PasswordHasher, password_policy_violations
from prepdeck.auth.credentials.tokens import AccessTokenVerifier, TokenIssuer, TokenPair
from prepdeck.auth.model.identity import Identity
from prepdeck.auth.store.identities import CredentialStore, IdentityExists
from prepdeck.auth.store.sessions import RefreshSessionStore

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NAME_PATTERN = re.compile(r"^[a-zA-Z\s]{2,50}$")


def is_valid_email(email: str) -> bool:
    return EMAIL_PATTERN.match(email) is not None


def is_valid_name(name: str) -> bool:
    return NAME_PATTERN.match(name.strip()) is not None


def sanitize_name(name: str) -> str:
    return name.strip().replace("<", "").replace(">", "")


@dataclass
class AuthResult:
    """An identity together with the token pair just issued for it."""

    identity: Identity
    pair: TokenPair


@dataclass(frozen=True)
class AuthenticatedIdentity:
    """The minimal identity attached to an authenticated request."""

    id: str
    email: str
    name: Optional[str]

    def as_dict(self):
        return {"id": self.id, "email": self.email, "name": self.name}


class AuthService:
    def __init__(
        self,
        credential_store: CredentialStore,
        session_store: RefreshSessionStore,
        password_hasher: PasswordHasher,
        token_issuer: TokenIssuer,
        token_verifier: AccessTokenVerifier,
        federated_bridge: Optional[FederatedIdentityBridge] = None,
    ) -> None:
        self.credential_store = credential_store
        self.session_store = session_store
        self.password_hasher = password_hasher
        self.token_issuer = token_issuer
        self.token_verifier = token_verifier
        self.federated_bridge = federated_bridge

    async def _hash_password(self, password: str) -> str:
        return await asyncio.to_thread(self.password_hasher.hash, password)

    async def _verify_password(self, password: str, digest: Optional[str]) -> bool:
        if digest is None:
            return await asyncio.to_thread(self.password_hasher.burn, password)
        return await asyncio.to_thread(self.password_hasher.verify, password, digest)

    async def sign_up(
        self, name: str, email: str, password: str, confirm_password: str
    ) -> AuthResult:
        # Validating
        if not is_valid_email(email):
            raise ValidationFailure.invalid_email()

        if not is_valid_name(name):
            raise ValidationFailure.invalid_name()

        if password != confirm_password:
            raise ValidationFailure.passwords_do_not_match()

        violations = password_policy_violations(password)
        if violations:
            raise ValidationFailure.weak_password(violations)

        # Authenticating
        if await self.credential_store.find_by_email(email) is not None:
            raise ValidationFailure.already_registered()

        # Issuing
        password_hash = await self._hash_password(password)
        try:
            identity = await self.credential_store.create(
                email=email, name=sanitize_name(name), password_hash=password_hash
            )
        except IdentityExists:
            # Lost a race with a concurrent sign-up for the same address.
            raise ValidationFailure.already_registered() from None

        pair = await self.token_issuer.issue(identity)
        return AuthResult(identity=identity, pair=pair)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        # Validating
        if not is_valid_email(email):
            raise ValidationFailure.invalid_email()

        if not password:
            raise ValidationFailure.password_required()

        # Authenticating. Unknown account, password-less account and wrong password all end in
        # the same failure after the same amount of hashing work.
        identity = await self.credential_store.find_by_email(email)
        digest = identity.password_hash if identity is not None else None

        password_ok = await self._verify_password(password, digest)
        if identity is None or not password_ok:
            if identity is not None:
                logger.info("sign-in rejected for %s", identity.guid)
            raise AuthenticationFailure.invalid_credentials()

        # Issuing
        pair = await self.token_issuer.issue(identity)
        return AuthResult(identity=identity, pair=pair)

    async def refresh(
        self, refresh_token: Optional[str], now: Optional[datetime] = None
    ) -> TokenPair:
        if not refresh_token:
            raise ValidationFailure.refresh_token_required()

        if now is None:
            now = datetime.now(timezone.utc)

        refresh_session = await self.session_store.find_by_token(refresh_token)
        if refresh_session is None:
            raise AuthenticationFailure.refresh_token_invalid()

        if refresh_session.expires_at < now:
            await self.session_store.delete(refresh_token)
            raise SessionExpired.refresh_token_expired()

        identity = await self.credential_store.find_by_id(refresh_session.guid)
        if identity is None:
            await self.session_store.delete(refresh_token)
            raise AuthenticationFailure.refresh_token_invalid()

        pair = await self.token_issuer.reissue(refresh_token, identity, now)
        if pair is None:
            raise AuthenticationFailure.refresh_token_invalid()
        return pair

    async def sign_out(self, refresh_token: Optional[str]) -> None:
        if refresh_token:
            await self.session_store.delete(refresh_token)

    async def federated_sign_in(self, id_token: Optional[str]) -> FederatedResult:
        if not id_token:
            raise ValidationFailure.id_token_required()

        if self.federated_bridge is None:
            raise ConfigurationFault.federated_not_configured()

        return await self.federated_bridge.authenticate(id_token)

    async def authenticate(self, serialized_access_token: Optional[str]) -> AuthenticatedIdentity:
        """
        Resolve a presented access token to a live identity.

        A missing token, an invalid or expired token, and a token for an identity that no longer
        exists are three distinct failures; the last two look identical at the boundary.
        """
        if not serialized_access_token:
            raise AuthenticationFailure.token_missing()

        claims = self.token_verifier.verify(serialized_access_token)

        identity = await self.credential_store.find_by_id(claims.subject)
        if identity is None:
            raise IdentityNotFound.subject_vanished()

        return AuthenticatedIdentity(id=identity.guid, email=identity.email, name=identity.name)

    async def profile(self, guid: str) -> Identity:
        identity = await self.credential_store.find_by_id(guid)
        if identity is None:
            raise IdentityNotFound.subject_vanished()
        return identity

    async def rename(self, guid: str, name: str) -> Identity:
        if not is_valid_name(name):
            raise ValidationFailure.invalid_name()

        identity = await self.credential_store.update(guid, name=sanitize_name(name))
        if identity is None:
            raise IdentityNotFound.subject_vanished()
        return identity

    async def delete_account(self, guid: str) -> None:
        if not await self.credential_store.delete(guid):
            raise IdentityNotFound.subject_vanished()
