"""Tests for AccountRepository.

Single-statement transitions: token consumption, failed-attempt counting
with threshold locking, and the post-login reset.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.models.account import Account
from credential_service.repositories.account_repository import (
    AccountRepository,
    normalize_email,
)

_MISSING_UUID = uuid.UUID("99999999-9999-9999-9999-999999999999")
_NOW = datetime(2026, 1, 15, 9, 0, tzinfo=UTC)


async def _create(
    db: AsyncSession, email: str = "ana@example.com", **kwargs
) -> Account:
    fields = {
        "name": "Ana",
        "email": email,
        "password_hash": "$2b$04$notarealhashnotarealhashnotarealhashnotarealhashnot",
        "verification_token": uuid.uuid4().hex * 2,
        "verification_expires": _NOW + timedelta(hours=24),
    }
    fields.update(kwargs)
    return await AccountRepository.create(db, **fields)


def test_normalize_email_strips_and_lowercases():
    assert normalize_email("  Ana@Example.COM ") == "ana@example.com"


class TestCreate:
    """Test AccountRepository.create()."""

    async def test_creates_unverified_account(self, db_session: AsyncSession):
        """New accounts start unverified with a clean lockout state."""
        account = await _create(db_session, device_id="phone-1")

        assert account.id is not None
        assert account.verified is False
        assert account.failed_attempts == 0
        assert account.locked_until is None
        assert account.device_id == "phone-1"

    async def test_stores_email_lowercased(self, db_session: AsyncSession):
        account = await _create(db_session, email="Ana@Example.com")

        assert account.email == "ana@example.com"

    async def test_rejects_duplicate_email_in_any_casing(
        self, db_session: AsyncSession
    ):
        """The unique constraint sees the normalized form."""
        await _create(db_session, email="ana@example.com")

        with pytest.raises(IntegrityError):
            await _create(db_session, email="ANA@example.com")


class TestGetByEmail:
    """Test AccountRepository.get_by_email()."""

    async def test_lookup_is_case_insensitive(self, db_session: AsyncSession):
        created = await _create(db_session)

        found = await AccountRepository.get_by_email(db_session, " ANA@EXAMPLE.COM")

        assert found is not None
        assert found.id == created.id

    async def test_unknown_email_returns_none(self, db_session: AsyncSession):
        assert await AccountRepository.get_by_email(db_session, "x@y.z") is None


class TestConsumeVerificationToken:
    """Test AccountRepository.consume_verification_token()."""

    async def test_live_token_verifies_and_clears(self, db_session: AsyncSession):
        account = await _create(db_session, verification_token="a" * 64)

        name = await AccountRepository.consume_verification_token(
            db_session, "a" * 64, now=_NOW
        )
        await db_session.refresh(account)

        assert name == "Ana"
        assert account.verified is True
        assert account.verification_token is None
        assert account.verification_expires is None

    async def test_token_matches_only_once(self, db_session: AsyncSession):
        await _create(db_session, verification_token="b" * 64)

        first = await AccountRepository.consume_verification_token(
            db_session, "b" * 64, now=_NOW
        )
        second = await AccountRepository.consume_verification_token(
            db_session, "b" * 64, now=_NOW
        )

        assert first == "Ana"
        assert second is None

    async def test_expired_token_does_not_match(self, db_session: AsyncSession):
        await _create(
            db_session,
            verification_token="c" * 64,
            verification_expires=_NOW - timedelta(seconds=1),
        )

        name = await AccountRepository.consume_verification_token(
            db_session, "c" * 64, now=_NOW
        )

        assert name is None


class TestIncrementFailedAttempts:
    """Test AccountRepository.increment_failed_attempts()."""

    async def test_counts_without_locking_below_threshold(
        self, db_session: AsyncSession
    ):
        account = await _create(db_session)
        lock_until = _NOW + timedelta(minutes=15)

        outcome = await AccountRepository.increment_failed_attempts(
            db_session, account.id, threshold=5, lock_until=lock_until
        )

        assert outcome is not None
        count, locked_until = outcome
        assert count == 1
        assert locked_until is None

    async def test_locks_when_threshold_reached(self, db_session: AsyncSession):
        account = await _create(db_session)
        lock_until = _NOW + timedelta(minutes=15)

        for _ in range(4):
            await AccountRepository.increment_failed_attempts(
                db_session, account.id, threshold=5, lock_until=lock_until
            )
        outcome = await AccountRepository.increment_failed_attempts(
            db_session, account.id, threshold=5, lock_until=lock_until
        )

        assert outcome is not None
        count, locked_until = outcome
        assert count == 5
        assert locked_until is not None
        assert locked_until.replace(tzinfo=UTC) == lock_until

    async def test_missing_account_returns_none(self, db_session: AsyncSession):
        outcome = await AccountRepository.increment_failed_attempts(
            db_session, _MISSING_UUID, threshold=5, lock_until=_NOW
        )

        assert outcome is None


class TestResetAfterLogin:
    """Test AccountRepository.reset_after_login()."""

    async def test_clears_lockout_and_records_login(self, db_session: AsyncSession):
        account = await _create(db_session)
        for _ in range(5):
            await AccountRepository.increment_failed_attempts(
                db_session,
                account.id,
                threshold=5,
                lock_until=_NOW + timedelta(minutes=15),
            )

        await AccountRepository.reset_after_login(
            db_session, account.id, now=_NOW, device_id="tablet"
        )
        await db_session.refresh(account)

        assert account.failed_attempts == 0
        assert account.locked_until is None
        assert account.last_login.replace(tzinfo=UTC) == _NOW
        assert account.device_id == "tablet"
