"""Account state machine.

Owns the transition rules of an account:

- Verification: ``unverified -> verified``, one-way, driven by a single-use
  token consumed in one conditional UPDATE.
- Lockout: orthogonal sub-state for verified accounts. Failed logins are
  counted in SQL; at MAX_FAILED_ATTEMPTS the account is locked for
  LOCKOUT_DURATION. Lock state is evaluated lazily by comparing
  ``locked_until`` with the current time; nothing sweeps expired locks.

Only this module (through AccountRepository) mutates account rows.
"""

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from credential_service.core.config import settings
from credential_service.core.errors import (
    DuplicateEmailError,
    InvalidTokenError,
    ValidationError,
)
from credential_service.core.passwords import MAX_PASSWORD_BYTES, hash_password
from credential_service.core.tokens import generate_token
from credential_service.models.account import Account
from credential_service.repositories.account_repository import (
    AccountRepository,
    normalize_email,
)

logger = logging.getLogger(__name__)

MAX_FAILED_ATTEMPTS = 5
LOCKOUT_DURATION = timedelta(minutes=15)
MIN_PASSWORD_LENGTH = 6
MAX_NAME_LENGTH = 100

_MISSING_FIELDS_MSG = "Tous les champs sont requis (nom, email, mot de passe)"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store.

    Timestamps are always written in UTC; some drivers (SQLite) return
    them without tzinfo.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def is_locked(account: Account, now: datetime) -> bool:
    """Whether login is currently refused for this account.

    A locked_until in the past means "not locked", even though the stored
    value is only cleared by the next successful login.
    """
    locked_until = as_utc(account.locked_until)
    return locked_until is not None and locked_until > now


def lock_remaining(account: Account, now: datetime) -> timedelta:
    """Time left in the lock window (zero when not locked)."""
    if not is_locked(account, now):
        return timedelta(0)
    return as_utc(account.locked_until) - now  # type: ignore[operator]


def lock_remaining_minutes(account: Account, now: datetime) -> int:
    """Whole minutes left in the lock window, rounded up, at least 1."""
    seconds = lock_remaining(account, now).total_seconds()
    return max(1, math.ceil(seconds / 60))


def remaining_attempts(account: Account) -> int:
    """Failed attempts left before the account locks."""
    return max(0, MAX_FAILED_ATTEMPTS - account.failed_attempts)


def _validate_registration(username: str, email: str, password: str) -> str:
    """Validate signup fields.

    Returns:
        The normalized email.

    Raises:
        ValidationError: On any empty field, short or oversized password,
            overlong name, or malformed email.
    """
    if not username or not username.strip() or not email or not email.strip():
        raise ValidationError(_MISSING_FIELDS_MSG)
    if not password:
        raise ValidationError(_MISSING_FIELDS_MSG)
    if len(username.strip()) > MAX_NAME_LENGTH:
        raise ValidationError(
            f"Le nom ne peut pas dépasser {MAX_NAME_LENGTH} caractères"
        )
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            "Le mot de passe doit contenir au moins "
            f"{MIN_PASSWORD_LENGTH} caractères"
        )
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Le mot de passe ne peut pas dépasser {MAX_PASSWORD_BYTES} octets"
        )

    normalized = normalize_email(email)
    try:
        validate_email(normalized, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(
            "Adresse email invalide",
            details=[{"field": "email", "error": "INVALID_EMAIL"}],
        ) from exc
    return normalized


class AccountStateMachine:
    """Transition rules for account verification and lockout.

    Args:
        db: Async database session. The caller owns the transaction and
            decides when to commit.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(self, db: AsyncSession, *, clock: Clock = utcnow) -> None:
        self._db = db
        self._clock = clock

    async def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email."""
        if not email or not email.strip():
            return None
        return await AccountRepository.get_by_email(self._db, email)

    async def register(
        self,
        *,
        username: str,
        email: str,
        password: str,
        device_id: str | None = None,
    ) -> Account:
        """Create an unverified account with a fresh verification token.

        The existence check is only an optimization for a friendlier error;
        the unique constraint on accounts.email is what actually prevents
        duplicates when two signups race.

        Args:
            username: Display name.
            email: Email address (any casing).
            password: Plain-text password.
            device_id: Device the signup came from, if known.

        Returns:
            The created Account (flushed, not committed).

        Raises:
            ValidationError: Missing/short/oversized fields or bad email.
            DuplicateEmailError: Email already registered.
        """
        normalized = _validate_registration(username, email, password)

        if await AccountRepository.get_by_email(self._db, normalized) is not None:
            raise DuplicateEmailError()

        password_hash = hash_password(password)
        expires = self._clock() + timedelta(
            hours=settings.verification_token_ttl_hours
        )

        try:
            account = await AccountRepository.create(
                self._db,
                name=username.strip(),
                email=normalized,
                password_hash=password_hash,
                verification_token=generate_token(),
                verification_expires=expires,
                device_id=device_id,
            )
        except IntegrityError as exc:
            await self._db.rollback()
            raise DuplicateEmailError() from exc

        return account

    async def consume_verification_token(self, token: str) -> str:
        """Verify the account holding ``token`` and clear the token.

        Unknown, already-consumed and expired tokens are indistinguishable.

        Args:
            token: Verification token from the emailed link.

        Returns:
            The verified account's display name.

        Raises:
            InvalidTokenError: If no live unverified account holds the token.
        """
        if not token or not token.strip():
            raise InvalidTokenError()

        name = await AccountRepository.consume_verification_token(
            self._db, token.strip(), now=self._clock()
        )
        if name is None:
            raise InvalidTokenError()

        logger.info("Email verified")
        return name

    async def record_failed_login(self, account: Account) -> Account:
        """Count one failed login and lock at the threshold.

        Args:
            account: Account whose password did not match.

        Returns:
            The same Account with failed_attempts/locked_until refreshed.
        """
        now = self._clock()
        outcome = await AccountRepository.increment_failed_attempts(
            self._db,
            account.id,
            threshold=MAX_FAILED_ATTEMPTS,
            lock_until=now + LOCKOUT_DURATION,
        )
        if outcome is None:
            return account

        failed_attempts, locked_until = outcome
        locked_until = as_utc(locked_until)
        set_committed_value(account, "failed_attempts", failed_attempts)
        set_committed_value(account, "locked_until", locked_until)

        if failed_attempts >= MAX_FAILED_ATTEMPTS:
            logger.warning(
                "Account %s locked after %d failed logins until %s",
                account.id,
                failed_attempts,
                locked_until,
            )
        return account

    async def record_successful_login(
        self, account: Account, device_id: str | None
    ) -> Account:
        """Reset the lockout sub-state and record login time and device.

        Runs in the caller's transaction, which also persists the session.

        Args:
            account: Account that just authenticated.
            device_id: Device identifier sent by the client.

        Returns:
            The same Account with the reset values applied.
        """
        now = self._clock()
        await AccountRepository.reset_after_login(
            self._db, account.id, now=now, device_id=device_id
        )
        set_committed_value(account, "failed_attempts", 0)
        set_committed_value(account, "locked_until", None)
        set_committed_value(account, "last_login", now)
        set_committed_value(account, "device_id", device_id)
        return account
