"""Repository for Session row operations."""

import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.models.session import Session


class SessionRepository:
    """Stateless repository for Session table operations.

    All methods are static — no instance state.
    """

    @staticmethod
    async def create(
        db: AsyncSession,
        *,
        session_token: str,
        account_id: uuid.UUID,
        device_id: str | None,
        created_at: datetime,
        expires_at: datetime,
    ) -> Session:
        """Store a newly issued session.

        Args:
            db: Async database session.
            session_token: Signed token handed to the client.
            account_id: Owning account.
            device_id: Device identifier, if any.
            created_at: Issuance time (matches the token's iat).
            expires_at: Expiry time (matches the token's exp).

        Returns:
            Created Session.

        Raises:
            sqlalchemy.exc.IntegrityError: If the token already exists.
        """
        record = Session(
            session_token=session_token,
            account_id=account_id,
            device_id=device_id,
            created_at=created_at,
            expires_at=expires_at,
            active=True,
        )
        db.add(record)
        await db.flush()
        return record

    @staticmethod
    async def get_by_token(db: AsyncSession, session_token: str) -> Session | None:
        """Look up a session by its token.

        Args:
            db: Async database session.
            session_token: Signed token.

        Returns:
            Session if found, None otherwise.
        """
        # deactivate() bypasses the identity map; always read the stored row
        stmt = (
            select(Session)
            .where(Session.session_token == session_token)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def deactivate(db: AsyncSession, session_token: str) -> int:
        """Mark a session inactive (logout).

        Args:
            db: Async database session.
            session_token: Signed token.

        Returns:
            Number of rows changed (0 for unknown or already inactive).
        """
        stmt = (
            update(Session)
            .where(Session.session_token == session_token, Session.active.is_(True))
            .values(active=False)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        row_count: int = result.rowcount  # type: ignore[attr-defined]
        return row_count
