"""
Google Identity Bridge

This module verifies Google-issued ID tokens presented by the mobile client and maps them onto
local identities.

Flow:
1. The mobile client completes Google Sign-In and receives an ID token
2. The client posts the ID token to the service
3. The token's RS256 signature is checked against Google's published certificates, and its
   audience against this service's registered client id
4. The verified email is looked up; an existing identity is reused, otherwise a new verified
   identity without a password is created
5. A token pair is issued for the resolved identity

Verification fails closed: any error while fetching certificates or checking the token is an
authentication failure.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from time import time
from typing import Any, Dict, Optional, Protocol, Sequence, Tuple

from aiohttp import ClientSession, ClientTimeout
from jwcrypto import jwk, jwt
from pydantic import BaseModel

from prepdeck.auth.credentials.errors import AuthenticationFailure
from prepdeck.auth.credentials.tokens import TokenIssuer, TokenPair
from prepdeck.auth.model.identity import Identity
from prepdeck.auth.store.identities import CredentialStore, IdentityExists

logger = logging.getLogger(__name__)

GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

DEFAULT_FEDERATED_NAME = "Google User"


class VerifiedAssertion(BaseModel):
    """Claims extracted from a verified third-party ID token."""

    subject: str
    email: Optional[str] = None
    email_verified: Optional[bool] = None
    name: Optional[str] = None
    picture: Optional[str] = None


class AssertionVerifier(Protocol):
    async def verify_assertion(self, raw: str) -> VerifiedAssertion: ...


class GoogleAssertionVerifier:
    """
    Verifies Google ID tokens.

    Google's signing certificates are fetched once and cached for `certs_ttl` seconds. The cache
    is the only state this object holds; a lock keeps concurrent requests from fetching at the
    same time.
    """

    def __init__(
        self,
        http_session: ClientSession,
        client_id: str,
        certs_url: str = "https://www.googleapis.com/oauth2/v3/certs",
        certs_ttl: int = 3600,
        issuers: Sequence[str] = GOOGLE_ISSUERS,
    ) -> None:
        self.http_session = http_session
        self.client_id = client_id
        self.certs_url = certs_url
        self.certs_ttl = certs_ttl
        self.issuers = tuple(issuers)

        self._keys: Optional[jwk.JWKSet] = None
        self._keys_fetched_at: float = 0.0
        self._lock = asyncio.Lock()

    async def _fetch_keys(self) -> jwk.JWKSet:
        async with self.http_session.get(
            self.certs_url, timeout=ClientTimeout(total=5)
        ) as resp:
            resp.raise_for_status()
            body = await resp.text()
        return jwk.JWKSet.from_json(body)

    async def signing_keys(self) -> jwk.JWKSet:
        async with self._lock:
            if self._keys is None or time() - self._keys_fetched_at > self.certs_ttl:
                logger.debug("fetching Google certificates from %s", self.certs_url)
                self._keys = await self._fetch_keys()
                self._keys_fetched_at = time()
            return self._keys

    async def verify_assertion(self, raw: str) -> VerifiedAssertion:
        try:
            keys = await self.signing_keys()

            token = jwt.JWT(
                algs=["RS256"],
                check_claims={"aud": self.client_id, "exp": None, "iss": None, "sub": None},
                expected_type="JWS",
            )
            token.deserialize(raw, keys)
            claims: Dict[str, Any] = json.loads(token.claims)

            if claims["iss"] not in self.issuers:
                raise ValueError("unexpected issuer")

            return VerifiedAssertion(
                subject=str(claims["sub"]),
                email=claims.get("email"),
                email_verified=claims.get("email_verified"),
                name=claims.get("name"),
                picture=claims.get("picture"),
            )
        except Exception as e:
            logger.info("rejected Google ID token: %s", type(e).__name__)
            raise AuthenticationFailure.assertion_rejected() from None


@dataclass
class FederatedResult:
    identity: Identity
    pair: TokenPair
    created: bool


class FederatedIdentityBridge:
    """Maps verified third-party assertions to local identities and issues tokens for them."""

    def __init__(
        self,
        verifier: AssertionVerifier,
        credential_store: CredentialStore,
        token_issuer: TokenIssuer,
    ) -> None:
        self.verifier = verifier
        self.credential_store = credential_store
        self.token_issuer = token_issuer

    async def _resolve(
        self, assertion: VerifiedAssertion
    ) -> Tuple[Identity, bool]:
        email: str = assertion.email  # type: ignore

        identity = await self.credential_store.find_by_email(email)
        if identity is not None:
            if identity.federated_subject is None:
                try:
                    linked = await self.credential_store.update(
                        identity.guid, federated_subject=assertion.subject
                    )
                except IdentityExists:
                    logger.warning(
                        "Google subject already linked elsewhere, not linking %s",
                        identity.guid,
                    )
                    linked = None
                if linked is not None:
                    identity = linked
            return identity, False

        try:
            identity = await self.credential_store.create(
                email=email,
                name=assertion.name or DEFAULT_FEDERATED_NAME,
                federated_subject=assertion.subject,
                is_verified=True,
            )
            return identity, True
        except IdentityExists:
            # Either a concurrent request won the insert, or the Google account is linked to an
            # identity registered under its previous email.
            identity = await self.credential_store.find_by_email(email)
            if identity is None:
                identity = await self.credential_store.find_by_federated_subject(
                    assertion.subject
                )
            if identity is None:
                logger.warning("could not resolve Google subject after a conflicting insert")
                raise AuthenticationFailure.assertion_rejected()
            return identity, False

    async def authenticate(self, raw_assertion: str) -> FederatedResult:
        assertion = await self.verifier.verify_assertion(raw_assertion)

        if not assertion.email:
            raise AuthenticationFailure.assertion_missing_email()

        if assertion.email_verified is False:
            logger.info("rejected Google ID token with unverified email")
            raise AuthenticationFailure.assertion_rejected()

        identity, created = await self._resolve(assertion)
        pair = await self.token_issuer.issue(identity)
        return FederatedResult(identity=identity, pair=pair, created=created)
