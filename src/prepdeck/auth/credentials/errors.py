"""
Failure taxonomy for the credential subsystem.

Services raise these exceptions and the HTTP boundary turns them into the uniform response
envelope. Each failure carries a stable error code (for logs and metrics), a human-readable
message that is safe to show to the client, and the HTTP status the boundary should use.
"""

from typing import Iterable, Optional


class AuthFailure(Exception):
    """Base class for every failure the credential subsystem reports to a caller."""

    status: int = 400

    def __init__(
        self, code: str, message: str, detail: Optional[str] = None
    ) -> None:
        super().__init__(f"{code} {message}")
        self.code = code
        self.message = message
        self.detail = detail


class ValidationFailure(AuthFailure):
    """Malformed or unacceptable input. User-correctable."""

    status = 400

    @staticmethod
    def invalid_body() -> "ValidationFailure":
        return ValidationFailure("error-auth-1000", "Invalid request body")

    @staticmethod
    def invalid_email() -> "ValidationFailure":
        return ValidationFailure("error-auth-1001", "Invalid email format")

    @staticmethod
    def invalid_name() -> "ValidationFailure":
        return ValidationFailure(
            "error-auth-1002",
            "Name must be between 2-50 characters and contain only letters and spaces",
        )

    @staticmethod
    def passwords_do_not_match() -> "ValidationFailure":
        return ValidationFailure("error-auth-1003", "Passwords do not match")

    @staticmethod
    def weak_password(violations: Iterable[str]) -> "ValidationFailure":
        return ValidationFailure(
            "error-auth-1004", "Password validation failed", ", ".join(violations)
        )

    @staticmethod
    def password_required() -> "ValidationFailure":
        return ValidationFailure("error-auth-1005", "Password is required")

    @staticmethod
    def already_registered() -> "ValidationFailure":
        return ValidationFailure(
            "error-auth-1006", "User with this email already exists"
        )

    @staticmethod
    def refresh_token_required() -> "ValidationFailure":
        return ValidationFailure("error-auth-1007", "Refresh token is required")

    @staticmethod
    def id_token_required() -> "ValidationFailure":
        return ValidationFailure("error-auth-1008", "Google ID token is required")


class AuthenticationFailure(AuthFailure):
    """
    A credential was wrong or could not be verified.

    Messages are deliberately generic; callers must not be able to tell an unknown account from a
    wrong password, or a bad signature from an expired token.
    """

    status = 401

    @staticmethod
    def invalid_credentials() -> "AuthenticationFailure":
        return AuthenticationFailure("error-auth-2000", "Invalid email or password")

    @staticmethod
    def token_missing() -> "AuthenticationFailure":
        return AuthenticationFailure("error-auth-2001", "Access token is required")

    @staticmethod
    def token_invalid() -> "AuthenticationFailure":
        return AuthenticationFailure("error-auth-2002", "Invalid or expired token")

    @staticmethod
    def refresh_token_invalid() -> "AuthenticationFailure":
        return AuthenticationFailure("error-auth-2003", "Invalid refresh token")

    @staticmethod
    def assertion_rejected() -> "AuthenticationFailure":
        return AuthenticationFailure(
            "error-auth-2004", "Failed to authenticate with Google"
        )

    @staticmethod
    def assertion_missing_email() -> "AuthenticationFailure":
        return AuthenticationFailure("error-auth-2005", "Invalid Google token payload")


class SessionExpired(AuthFailure):
    """The refresh session outlived its TTL. Terminal: the client must sign in again."""

    status = 401

    @staticmethod
    def refresh_token_expired() -> "SessionExpired":
        return SessionExpired("error-auth-3000", "Refresh token expired")


class IdentityNotFound(AuthFailure):
    """
    The identity behind an otherwise valid credential no longer exists.

    The boundary presents this exactly like an invalid token.
    """

    status = 401

    @staticmethod
    def subject_vanished() -> "IdentityNotFound":
        return IdentityNotFound("error-auth-4000", "Invalid or expired token")


class ConfigurationFault(AuthFailure):
    """
    The deployment is missing something the subsystem cannot work without.

    Raised at startup for the signing secret. Per-feature faults (federated sign-in without a
    registered client id) reach the boundary as 503.
    """

    status = 503

    @staticmethod
    def signing_secret_missing() -> "ConfigurationFault":
        return ConfigurationFault(
            "error-auth-5000", "JWT_SECRET environment variable is required"
        )

    @staticmethod
    def federated_not_configured() -> "ConfigurationFault":
        return ConfigurationFault(
            "error-auth-5001", "Google sign-in is not configured"
        )
