"""Session model - one authenticated device-login.

Rows are deactivated on logout, never deleted, so a signed token can be
checked for revocation until it expires.
"""

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    String,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from credential_service.models.base import Base

if TYPE_CHECKING:
    from credential_service.models.account import Account


class Session(Base):
    """Issued session token record.

    Attributes:
        id: UUID primary key.
        session_token: The signed token handed to the client. Unique.
        account_id: FK to accounts table (owner).
        device_id: Device the login came from, if the client sent one.
        created_at: Issuance timestamp.
        expires_at: Issuance + session TTL.
        active: False once the session has been logged out.
    """

    __tablename__ = "sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=uuid.uuid4,
    )
    session_token: Mapped[str] = mapped_column(
        String(1024),
        unique=True,
        nullable=False,
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False, index=True)
    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("true"),
        default=True,
    )

    # Relationships
    account: Mapped["Account"] = relationship("Account", back_populates="sessions")
