"""Tests for application configuration.

Defaults for session signing, hashing and mail settings, and the
security validation run at construction time.
"""

import pytest
from pydantic import ValidationError

from credential_service.core.config import _INSECURE_DEFAULT_PASSWORD, Settings

# Reusable test constants
_SECURE_DB_PASSWORD = "my-secure-production-password-123!"
_TEST_AUTH_SECRET = "a" * 64
_PRODUCTION = "production"


class TestProductionSecurityValidation:
    """Tests for production security requirements."""

    def test_allows_default_password_in_development(self):
        """Default password is allowed in development environment."""
        s = Settings(
            environment="development",
            database_password=_INSECURE_DEFAULT_PASSWORD,
        )
        assert s.database_password == _INSECURE_DEFAULT_PASSWORD

    def test_rejects_default_password_in_production(self):
        """Default password is rejected in production environment."""
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_INSECURE_DEFAULT_PASSWORD,
                auth_secret=_TEST_AUTH_SECRET,
            )

        assert "Cannot use default database password in production" in str(
            exc_info.value
        )

    def test_database_url_override_skips_password_check(self):
        s = Settings(
            environment=_PRODUCTION,
            database_url_override="postgresql+asyncpg://u:p@db/credentials",
            auth_secret=_TEST_AUTH_SECRET,
        )
        assert s.database_url == "postgresql+asyncpg://u:p@db/credentials"

    def test_rejects_missing_auth_secret_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_secret="",
            )

        assert "AUTH_SECRET must be set in production" in str(exc_info.value)

    def test_rejects_short_auth_secret_in_production(self):
        with pytest.raises(ValidationError) as exc_info:
            Settings(
                environment=_PRODUCTION,
                database_password=_SECURE_DB_PASSWORD,
                auth_secret="too-short",
            )

        assert "at least 32 characters" in str(exc_info.value)

    def test_accepts_secure_production_settings(self):
        s = Settings(
            environment=_PRODUCTION,
            database_password=_SECURE_DB_PASSWORD,
            auth_secret=_TEST_AUTH_SECRET,
        )
        assert s.auth_secret.get_secret_value() == _TEST_AUTH_SECRET

    def test_rejects_wildcard_cors_origin(self):
        with pytest.raises(ValidationError):
            Settings(allowed_origins=["*"])

    @pytest.mark.parametrize("rounds", [3, 32])
    def test_rejects_out_of_range_bcrypt_rounds(self, rounds: int):
        with pytest.raises(ValidationError):
            Settings(bcrypt_rounds=rounds)


class TestDefaults:
    """Defaults match the documented behavior."""

    def test_session_and_lockout_defaults(self):
        s = Settings()
        assert s.session_ttl_days == 7
        assert s.bcrypt_rounds == 12
        assert s.verification_token_ttl_hours == 24

    def test_database_url_uses_asyncpg(self):
        s = Settings(
            database_user="u",
            database_password="p",
            database_host="db",
            database_port=5433,
            database_name="creds",
        )
        assert s.database_url == "postgresql+asyncpg://u:p@db:5433/creds"

    def test_mail_defaults(self):
        s = Settings()
        assert s.email_from_name == "Mon App"
        assert s.mail_timeout == 10.0
