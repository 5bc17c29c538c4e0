"""Repository for Account row operations.

Provides database access for the accounts table. Every state-changing
method is a single SQL statement so the transition is atomic on one row,
even under concurrent requests.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, case, literal, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.models.account import Account


def normalize_email(email: str) -> str:
    """Canonical stored form of an email address."""
    return email.strip().lower()


class AccountRepository:
    """Stateless repository for Account table operations.

    All methods are static — no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_email(db: AsyncSession, email: str) -> Account | None:
        """Fetch an account by email address (case-insensitive).

        Args:
            db: Async database session.
            email: Email address to look up.

        Returns:
            Account if found, None otherwise.
        """
        # State transitions are bulk UPDATEs; always read the stored row
        stmt = (
            select(Account)
            .where(Account.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        name: str,
        email: str,
        password_hash: str,
        verification_token: str,
        verification_expires: datetime | None,
        device_id: str | None = None,
    ) -> Account:
        """Create a new unverified account.

        Email is normalized to lowercase before storage.

        Args:
            db: Async database session.
            name: Display name.
            email: Email address.
            password_hash: bcrypt digest.
            verification_token: Fresh single-use verification token.
            verification_expires: When the token stops working.
            device_id: Device the signup came from.

        Returns:
            Created Account with database-generated fields populated.

        Raises:
            sqlalchemy.exc.IntegrityError: If email already exists.
        """
        account = Account(
            name=name,
            email=normalize_email(email),
            password_hash=password_hash,
            verified=False,
            verification_token=verification_token,
            verification_expires=verification_expires,
            failed_attempts=0,
            locked_until=None,
            device_id=device_id,
        )
        db.add(account)
        await db.flush()
        await db.refresh(account)
        return account

    @staticmethod
    async def consume_verification_token(
        db: AsyncSession, token: str, *, now: datetime
    ) -> str | None:
        """Mark the account holding ``token`` verified and clear the token.

        One conditional UPDATE: matches only an unverified account whose
        token is still live. Concurrent callers racing on the same token
        cannot both match.

        Args:
            db: Async database session.
            token: Plain verification token.
            now: Current time, compared against verification_expires.

        Returns:
            The account's display name, or None if no row matched.
        """
        stmt = (
            update(Account)
            .where(
                Account.verification_token == token,
                Account.verified.is_(False),
                or_(
                    Account.verification_expires.is_(None),
                    Account.verification_expires > now,
                ),
            )
            .values(
                verified=True,
                verification_token=None,
                verification_expires=None,
            )
            .returning(Account.name)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def increment_failed_attempts(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        threshold: int,
        lock_until: datetime,
    ) -> tuple[int, datetime | None] | None:
        """Atomically count one failed login.

        The increment happens in SQL (no read-modify-write in Python).
        When the new count reaches ``threshold``, locked_until is set to
        ``lock_until``; otherwise it is left as stored.

        Args:
            db: Async database session.
            account_id: Account to update.
            threshold: Count at which the account locks.
            lock_until: Lock expiry to store if the threshold is reached.

        Returns:
            (failed_attempts, locked_until) after the update, or None if
            the account does not exist.
        """
        new_count = Account.failed_attempts + 1
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(
                failed_attempts=new_count,
                locked_until=case(
                    (
                        new_count >= threshold,
                        literal(lock_until, DateTime(timezone=True)),
                    ),
                    else_=Account.locked_until,
                ),
            )
            .returning(Account.failed_attempts, Account.locked_until)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row = result.one_or_none()
        if row is None:
            return None
        return row.failed_attempts, row.locked_until

    @staticmethod
    async def reset_after_login(
        db: AsyncSession,
        account_id: uuid.UUID,
        *,
        now: datetime,
        device_id: str | None,
    ) -> None:
        """Clear the lockout sub-state and record the successful login.

        Args:
            db: Async database session.
            account_id: Account to update.
            now: Login timestamp.
            device_id: Device identifier sent by the client.
        """
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(
                failed_attempts=0,
                locked_until=None,
                last_login=now,
                device_id=device_id,
            )
            .execution_options(synchronize_session=False)
        )
        await db.execute(stmt)
