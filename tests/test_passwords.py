"""
Unit tests for password hashing and the password acceptance policy.
"""

import pytest

from prepdeck.auth.credentials.passwords import (
    PasswordHasher,
    password_policy_violations,
)
from tests.test_helpers import STRONG_PASSWORD, TEST_BCRYPT_ROUNDS


class TestPasswordPolicy:
    """Test the rules a new password must satisfy."""

    def test_strong_password_accepted(self):
        assert password_policy_violations(STRONG_PASSWORD) == []

    def test_all_violations_reported(self):
        """A password breaking several rules reports every one of them, in order."""
        assert password_policy_violations("abc") == [
            "Password must be at least 8 characters long",
            "Password must contain at least one uppercase letter",
            "Password must contain at least one number",
            "Password must contain at least one special character (@$!%*?&)",
        ]

    def test_missing_lowercase(self):
        assert password_policy_violations("STR0NG!PASS") == [
            "Password must contain at least one lowercase letter"
        ]

    def test_special_character_must_come_from_the_allowed_set(self):
        assert password_policy_violations("Str0ng#Pass") == [
            "Password must contain at least one special character (@$!%*?&)"
        ]

    @pytest.mark.parametrize("symbol", list("@$!%*?&"))
    def test_each_allowed_special_character(self, symbol):
        assert password_policy_violations(f"Str0ngPass{symbol}") == []

    def test_exactly_minimum_length(self):
        assert password_policy_violations("Abcde1!x") == []

    def test_over_72_bytes_rejected(self):
        """bcrypt only consumes 72 bytes, so longer passwords are refused outright."""
        password = "Aa1!" + "x" * 69
        assert len(password.encode("utf-8")) == 73
        assert password_policy_violations(password) == [
            "Password must be at most 72 bytes long"
        ]

    def test_byte_length_counts_multibyte_characters(self):
        password = "Aa1!" + "é" * 35
        assert len(password) < 72
        assert "Password must be at most 72 bytes long" in password_policy_violations(
            password
        )


class TestPasswordHasher:
    """Test bcrypt hashing and verification."""

    @pytest.fixture
    def hasher(self):
        return PasswordHasher(rounds=TEST_BCRYPT_ROUNDS)

    def test_hash_is_bcrypt_with_configured_cost(self, hasher):
        digest = hasher.hash(STRONG_PASSWORD)
        assert digest.startswith("$2b$04$")
        assert STRONG_PASSWORD not in digest

    def test_hash_is_salted(self, hasher):
        assert hasher.hash(STRONG_PASSWORD) != hasher.hash(STRONG_PASSWORD)

    def test_verify_matching_secret(self, hasher):
        digest = hasher.hash(STRONG_PASSWORD)
        assert hasher.verify(STRONG_PASSWORD, digest) is True

    def test_verify_wrong_secret(self, hasher):
        digest = hasher.hash(STRONG_PASSWORD)
        assert hasher.verify("Wr0ng!Pass", digest) is False

    def test_verify_malformed_digest(self, hasher):
        assert hasher.verify(STRONG_PASSWORD, "not-a-bcrypt-digest") is False

    def test_burn_always_fails(self, hasher):
        assert hasher.burn(STRONG_PASSWORD) is False
        assert hasher.burn("prepdeck-dummy-secret") is False
