"""
Access token signing and verification, and refresh token issuing.

Access tokens are HS256 JWTs signed with the server-held secret. They carry the subject guid,
email, display name, issued-at and expiry, and are verified statelessly. Refresh tokens are opaque
random strings whose only meaning is as a lookup key in the refresh session store.
"""

import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jwcrypto import jwk, jwt

from prepdeck.auth.credentials.errors import AuthenticationFailure, ConfigurationFault
from prepdeck.auth.model.identity import Identity
from prepdeck.auth.store.sessions import RefreshSessionStore

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ALG = "HS256"

# 32 random bytes, url-safe encoded to 43 characters.
REFRESH_TOKEN_BYTES = 32


@dataclass(frozen=True)
class TokenPair:
    """An access token and a refresh token issued together."""

    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    refresh_token_expires_at: datetime

    def as_response(self) -> Dict[str, str]:
        return {"accessToken": self.access_token, "refreshToken": self.refresh_token}


@dataclass(frozen=True)
class AccessClaims:
    """Verified contents of an access token."""

    subject: str
    email: str
    name: Optional[str]
    issued_at: datetime
    expires_at: datetime


def signing_key_from_secret(secret: Optional[str]) -> jwk.JWK:
    """
    Build the symmetric signing key.

    A missing or blank secret is a deployment error, not a request error, and is raised as
    `ConfigurationFault` so that startup aborts.
    """
    if secret is None or len(secret.strip()) == 0:
        raise ConfigurationFault.signing_secret_missing()
    return jwk.JWK.from_password(secret)


def generate_refresh_token() -> str:
    return secrets.token_urlsafe(REFRESH_TOKEN_BYTES)


class TokenIssuer:
    """
    Mints token pairs and records the refresh half in the refresh session store.

    The issuer itself is stateless; the session store is the only thing it writes to.
    """

    def __init__(
        self,
        signing_key: jwk.JWK,
        session_store: RefreshSessionStore,
        access_token_expiry: int = 900,
        refresh_token_expiry: int = 604800,
    ) -> None:
        self.signing_key = signing_key
        self.session_store = session_store
        self.access_token_ttl = timedelta(seconds=access_token_expiry)
        self.refresh_token_ttl = timedelta(seconds=refresh_token_expiry)

    def mint_access_token(self, identity: Identity, now: datetime) -> str:
        issued_at = int(now.timestamp())
        claims: Dict[str, Any] = {
            "sub": identity.guid,
            "email": identity.email,
            "name": identity.name,
            "iat": issued_at,
            "exp": issued_at + int(self.access_token_ttl.total_seconds()),
        }
        token = jwt.JWT(header={"alg": ACCESS_TOKEN_ALG, "typ": "JWT"}, claims=claims)
        token.make_signed_token(self.signing_key)
        return token.serialize()

    def _mint_pair(self, identity: Identity, now: datetime) -> TokenPair:
        return TokenPair(
            access_token=self.mint_access_token(identity, now),
            refresh_token=generate_refresh_token(),
            access_token_expires_at=now + self.access_token_ttl,
            refresh_token_expires_at=now + self.refresh_token_ttl,
        )

    async def issue(
        self, identity: Identity, now: Optional[datetime] = None
    ) -> TokenPair:
        """Mint a fresh pair and persist a new refresh session for it."""
        if now is None:
            now = datetime.now(timezone.utc)

        pair = self._mint_pair(identity, now)
        await self.session_store.create(
            pair.refresh_token, identity.guid, now, pair.refresh_token_expires_at
        )
        return pair

    async def reissue(
        self, old_refresh_token: str, identity: Identity, now: Optional[datetime] = None
    ) -> Optional[TokenPair]:
        """
        Rotate a refresh session onto a fresh pair.

        The old refresh token stops being valid in the same statement that makes the new one
        valid. Returns None when the old token was rotated or revoked concurrently, in which case
        the freshly minted pair is discarded without ever being handed out. A session that
        expires before `now` is never rotated either.
        """
        if now is None:
            now = datetime.now(timezone.utc)

        pair = self._mint_pair(identity, now)
        rotated = await self.session_store.rotate(
            old_refresh_token, pair.refresh_token, pair.refresh_token_expires_at, now
        )
        if not rotated:
            logger.info("refresh session for %s was rotated concurrently", identity.guid)
            return None
        return pair


class AccessTokenVerifier:
    """
    Stateless signature and expiry check for access tokens.

    This is on the hot path of every protected request and must stay cheap: one HMAC, no I/O.
    Clock tolerance is zero.
    """

    def __init__(self, signing_key: jwk.JWK) -> None:
        self.signing_key = signing_key

    def verify(self, serialized: str) -> AccessClaims:
        try:
            token = jwt.JWT(
                algs=[ACCESS_TOKEN_ALG],
                check_claims={"sub": None, "exp": None, "iat": None},
                expected_type="JWS",
            )
            token.leeway = 0
            token.deserialize(serialized, self.signing_key)
            claims: Dict[str, Any] = json.loads(token.claims)

            return AccessClaims(
                subject=str(claims["sub"]),
                email=str(claims["email"]),
                name=claims.get("name"),
                issued_at=datetime.fromtimestamp(int(claims["iat"]), timezone.utc),
                expires_at=datetime.fromtimestamp(int(claims["exp"]), timezone.utc),
            )
        except Exception:
            # Bad signature, wrong algorithm, expiry, malformed input: all the same to the caller.
            raise AuthenticationFailure.token_invalid() from None
