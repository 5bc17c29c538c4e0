"""Session manager: issue, invalidate and validate session tokens.

Session tokens are HS256 JWTs carrying the account id and normalized
email, valid for a fixed window. Every issued token also gets a row in
the sessions table so logout can revoke it before natural expiry.

Persisting that row is best-effort: if the store write fails, the token
is still returned and remains verifiable by signature alone. The failure
is logged. Only this module (through SessionRepository) mutates session
rows.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import jwt
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.core.config import Settings, settings
from credential_service.core.errors import InvalidSessionError
from credential_service.core.tokens import generate_token
from credential_service.models.account import Account
from credential_service.repositories.session_repository import SessionRepository
from credential_service.services.account_state import Clock, utcnow

logger = logging.getLogger(__name__)

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "email", "jti", "iat", "exp", "aud", "iss"]


@dataclass(frozen=True)
class IssuedSession:
    """A freshly issued session token.

    Attributes:
        token: Signed session token for the client.
        expires_at: When the token stops validating.
        expires_in: Human-readable lifetime (e.g., "7d").
    """

    token: str
    expires_at: datetime
    expires_in: str


@dataclass(frozen=True)
class SessionClaims:
    """Identity claims of a validated session token.

    Attributes:
        account_id: Owning account.
        email: Normalized email at issuance time.
        token_id: Unique token id (jti).
        issued_at: Issuance time.
        expires_at: Expiry time.
    """

    account_id: uuid.UUID
    email: str
    token_id: str
    issued_at: datetime
    expires_at: datetime


def _format_ttl(ttl: timedelta) -> str:
    """Render a session lifetime the way clients expect it ("7d", "12h")."""
    seconds = int(ttl.total_seconds())
    if seconds % 86400 == 0:
        return f"{seconds // 86400}d"
    if seconds % 3600 == 0:
        return f"{seconds // 3600}h"
    return f"{seconds}s"


class SessionManager:
    """Issues and revokes signed session tokens.

    Args:
        db: Async database session (caller owns commit).
        secret: HMAC signing secret.
        issuer: iss claim.
        audience: aud claim.
        ttl: Token lifetime.
        clock: Source of the current time.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        secret: str,
        issuer: str,
        audience: str,
        ttl: timedelta,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self._secret = secret
        self._issuer = issuer
        self._audience = audience
        self._ttl = ttl
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        db: AsyncSession,
        config: Settings = settings,
        *,
        clock: Clock = utcnow,
    ) -> "SessionManager":
        """Build a session manager from application settings."""
        return cls(
            db,
            secret=config.auth_secret.get_secret_value(),
            issuer=config.auth_issuer,
            audience=config.auth_audience,
            ttl=timedelta(days=config.session_ttl_days),
            clock=clock,
        )

    async def issue(self, account: Account, device_id: str | None) -> IssuedSession:
        """Create a signed session token and record it.

        Args:
            account: Authenticated account.
            device_id: Device identifier sent by the client.

        Returns:
            IssuedSession with the token and its expiry.
        """
        # JWT timestamps are whole seconds; keep the stored row in step
        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + self._ttl
        token = jwt.encode(
            {
                "sub": str(account.id),
                "email": account.email,
                "jti": generate_token(),
                "aud": self._audience,
                "iss": self._issuer,
                "iat": issued_at,
                "exp": expires_at,
            },
            self._secret,
            algorithm=_ALGORITHM,
        )

        try:
            async with self._db.begin_nested():
                await SessionRepository.create(
                    self._db,
                    session_token=token,
                    account_id=account.id,
                    device_id=device_id,
                    created_at=issued_at,
                    expires_at=expires_at,
                )
        except SQLAlchemyError:
            logger.warning(
                "Session record not persisted for %s; token stays valid until expiry",
                account.id,
                exc_info=True,
            )

        return IssuedSession(
            token=token,
            expires_at=expires_at,
            expires_in=_format_ttl(self._ttl),
        )

    async def invalidate(self, token: str | None) -> None:
        """Mark the session for ``token`` inactive.

        Idempotent: unknown, malformed or already-inactive tokens are
        silently accepted.
        """
        if not token:
            return
        changed = await SessionRepository.deactivate(self._db, token)
        logger.debug("Session invalidated (%d row changed)", changed)

    async def validate(self, token: str | None) -> SessionClaims:
        """Verify a session token and check it has not been logged out.

        The signature and expiry are checked first. The session record is
        then consulted: an inactive record means the session was logged
        out. A missing record is accepted, since issuance tolerates a
        failed write.

        Args:
            token: Session token presented by the client.

        Returns:
            SessionClaims extracted from the token.

        Raises:
            InvalidSessionError: For any validation failure.
        """
        if not token:
            raise InvalidSessionError()

        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[_ALGORITHM],
                audience=self._audience,
                issuer=self._issuer,
                # Time claims are checked against self._clock below
                options={
                    "require": _REQUIRED_CLAIMS,
                    "verify_exp": False,
                    "verify_iat": False,
                },
            )
            claims = SessionClaims(
                account_id=uuid.UUID(payload["sub"]),
                email=payload["email"],
                token_id=payload["jti"],
                issued_at=datetime.fromtimestamp(payload["iat"], UTC),
                expires_at=datetime.fromtimestamp(payload["exp"], UTC),
            )
        except (jwt.InvalidTokenError, KeyError, ValueError, TypeError) as exc:
            raise InvalidSessionError() from exc

        if claims.expires_at <= self._clock():
            raise InvalidSessionError()

        record = await SessionRepository.get_by_token(self._db, token)
        if record is not None and not record.active:
            raise InvalidSessionError()

        return claims
