"""Account model - identity, credential, verification and lockout state.

Verification sub-state: ``verified`` flag plus a single-use token that
exists only while unverified. Lockout sub-state: ``failed_attempts``
counter plus an optional ``locked_until`` timestamp evaluated lazily.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, CheckConstraint, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credential_service.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from credential_service.models.session import Session


class Account(Base, TimestampMixin):
    """Registered account.

    Attributes:
        id: UUID primary key.
        name: Display name given at signup.
        email: Unique email address, stored lower-cased.
        password_hash: bcrypt digest. Never the plaintext.
        verified: Whether email ownership has been proven. One-way.
        verification_token: Live single-use token while unverified.
        verification_expires: When the verification token stops working.
        failed_attempts: Consecutive failed logins since the last success.
        locked_until: Login refused until this time. A past value means
            "not locked".
        last_login: Timestamp of the last successful login.
        device_id: Device identifier of the last successful login.
        created_at: Account creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "accounts"
    __table_args__ = (
        # A verified account never holds a verification token
        CheckConstraint(
            "NOT verified OR verification_token IS NULL",
            name="ck_accounts_verified_token_cleared",
        ),
        CheckConstraint("failed_attempts >= 0", name="ck_accounts_failed_attempts"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    verification_token: Mapped[str | None] = mapped_column(
        String(128),
        unique=True,
        nullable=True,
    )
    verification_expires: Mapped[datetime | None] = mapped_column(nullable=True)
    failed_attempts: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
    locked_until: Mapped[datetime | None] = mapped_column(nullable=True)
    last_login: Mapped[datetime | None] = mapped_column(nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    sessions: Mapped[list["Session"]] = relationship(
        "Session",
        back_populates="account",
        cascade="all, delete-orphan",
    )
