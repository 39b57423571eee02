"""
Password hashing and acceptance policy.

Hashing uses bcrypt with a configurable cost factor (12 rounds by default). bcrypt is slow on
purpose, so request handlers run it off the event loop (see `AuthService`) and it never shares a
code path with access token verification.
"""

import logging
import re
from typing import List

import bcrypt

logger = logging.getLogger(__name__)

PASSWORD_MIN_LENGTH = 8

# bcrypt ignores (or, in newer releases, refuses) input past this many bytes.
PASSWORD_MAX_BYTES = 72

PASSWORD_SYMBOLS = "@$!%*?&"

_LOWERCASE = re.compile(r"[a-z]")
_UPPERCASE = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile("[" + re.escape(PASSWORD_SYMBOLS) + "]")


def password_policy_violations(password: str) -> List[str]:
    """
    Check a candidate password against the acceptance policy.

    Every violated rule is reported, in a fixed order, so the client can show all of them at once.
    An empty list means the password is acceptable.
    """
    errors: List[str] = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        )

    if len(password.encode("utf-8")) > PASSWORD_MAX_BYTES:
        errors.append(f"Password must be at most {PASSWORD_MAX_BYTES} bytes long")

    if not _LOWERCASE.search(password):
        errors.append("Password must contain at least one lowercase letter")

    if not _UPPERCASE.search(password):
        errors.append("Password must contain at least one uppercase letter")

    if not _DIGIT.search(password):
        errors.append("Password must contain at least one number")

    if not _SYMBOL.search(password):
        errors.append(
            f"Password must contain at least one special character ({PASSWORD_SYMBOLS})"
        )

    return errors


class PasswordHasher:
    """Salted bcrypt hashing and verification of user secrets."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_digest = None

    def hash(self, secret: str) -> str:
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(secret.encode("utf-8"), salt).decode("utf-8")

    def verify(self, secret: str, digest: str) -> bool:
        """Return whether `secret` matches `digest`. A wrong or unusable secret is simply False."""
        try:
            return bcrypt.checkpw(secret.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            # Malformed digest or over-long secret.
            logger.debug("bcrypt rejected the comparison input")
            return False

    def burn(self, secret: str) -> bool:
        """
        Spend the same time as a real verification without a stored digest.

        Used when the account does not exist (or has no password) so that response timing does
        not reveal which case occurred. Always returns False.
        """
        if self._dummy_digest is None:
            self._dummy_digest = self.hash("prepdeck-dummy-secret")
        self.verify(secret, self._dummy_digest)
        return False
