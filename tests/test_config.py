"""
Tests for settings loading and application wiring.
"""

from unittest.mock import Mock

import pytest
from pydantic import ValidationError

from prepdeck.auth.app.config import Settings
from prepdeck.auth.app.server import build_auth_service
from prepdeck.auth.credentials.errors import ConfigurationFault


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("WORKER_ID", "worker-1")
        monkeypatch.delenv("JWT_SECRET", raising=False)

        settings = Settings()  # type: ignore

        assert settings.worker_id == "worker-1"
        assert settings.access_token_expiry == 900
        assert settings.refresh_token_expiry == 604800
        assert settings.bcrypt_rounds == 12
        assert settings.session_cleanup_interval == 3600
        assert settings.signing_secret() is None

    def test_environment(self, monkeypatch):
        monkeypatch.setenv("WORKER_ID", "worker-1")
        monkeypatch.setenv("JWT_SECRET", "from-the-environment")
        monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://auth:secret@pg/auth")
        monkeypatch.setenv("ACCESS_TOKEN_EXPIRY", "300")
        monkeypatch.setenv("GOOGLE_CLIENT_ID", "prepdeck-mobile.apps.googleusercontent.com")

        settings = Settings()  # type: ignore

        assert settings.signing_secret() == "from-the-environment"
        assert "from-the-environment" not in repr(settings)
        assert settings.pg_dsn.hosts()[0]["host"] == "pg"
        assert settings.access_token_expiry == 300
        assert settings.google_client_id == "prepdeck-mobile.apps.googleusercontent.com"

    def test_worker_id_required(self, monkeypatch):
        monkeypatch.delenv("WORKER_ID", raising=False)

        with pytest.raises(ValidationError):
            Settings()  # type: ignore

    @pytest.mark.parametrize(
        "field", ["access_token_expiry", "refresh_token_expiry", "session_cleanup_interval"]
    )
    def test_durations_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            Settings(worker_id="worker-1", **{field: 0})  # type: ignore

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_bcrypt_rounds_range(self, rounds):
        with pytest.raises(ValidationError):
            Settings(worker_id="worker-1", bcrypt_rounds=rounds)  # type: ignore


class TestBuildAuthService:
    def test_missing_secret_aborts(self, database_session_maker, monkeypatch):
        monkeypatch.delenv("JWT_SECRET", raising=False)
        settings = Settings(worker_id="worker-1")  # type: ignore

        with pytest.raises(ConfigurationFault):
            build_auth_service(settings, database_session_maker)

    def test_google_disabled_without_client_id(self, settings, database_session_maker):
        auth_service = build_auth_service(settings, database_session_maker, Mock())

        assert auth_service.federated_bridge is None
        assert auth_service.password_hasher.rounds == settings.bcrypt_rounds

    def test_google_enabled_with_client_id(self, database_session_maker):
        settings = Settings(
            worker_id="worker-1",
            jwt_secret="secret",
            google_client_id="prepdeck-mobile.apps.googleusercontent.com",
        )  # type: ignore

        auth_service = build_auth_service(settings, database_session_maker, Mock())

        assert auth_service.federated_bridge is not None
        assert (
            auth_service.federated_bridge.verifier.client_id
            == "prepdeck-mobile.apps.googleusercontent.com"
        )
