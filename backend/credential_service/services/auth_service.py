"""Authentication orchestrator.

Composes the account state machine and the session manager into the
user-facing operations (signup, verify, login, logout, authenticate) and
fixes their transaction boundaries:

- signup: the account is committed before the verification email is
  dispatched; a failed or slow delivery is logged and never undoes it.
- login: a failed attempt is committed before the error is raised so the
  counter survives the request's rollback; a successful login commits the
  counter reset together with the session record.
- logout: always succeeds.

Store and mailer are injected; nothing here reaches for module-level
connections.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import NoReturn

from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.core.config import settings
from credential_service.core.email import VerificationMailer
from credential_service.core.errors import (
    AccountLockedError,
    EmailNotVerifiedError,
    UnknownCredentialError,
)
from credential_service.core.passwords import burn_dummy_check, verify_password
from credential_service.models.account import Account
from credential_service.services.account_state import (
    AccountStateMachine,
    Clock,
    is_locked,
    lock_remaining_minutes,
    remaining_attempts,
    utcnow,
)
from credential_service.services.session_manager import (
    IssuedSession,
    SessionClaims,
    SessionManager,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginResult:
    """Outcome of a successful login.

    Attributes:
        account: The authenticated account (lockout state already reset).
        session: The issued session token.
    """

    account: Account
    session: IssuedSession


class AuthService:
    """Signup, verification, login and logout.

    Args:
        db: Async database session for this request.
        mailer: Verification email capability.
        clock: Source of the current time (injectable for tests).
        mail_timeout: Seconds to wait for mail delivery before giving up.
            Defaults to settings.mail_timeout.
        sessions: Session manager. Defaults to one built from settings.
    """

    def __init__(
        self,
        db: AsyncSession,
        mailer: VerificationMailer,
        *,
        clock: Clock = utcnow,
        mail_timeout: float | None = None,
        sessions: SessionManager | None = None,
    ) -> None:
        self._db = db
        self._mailer = mailer
        self._clock = clock
        self._mail_timeout = (
            settings.mail_timeout if mail_timeout is None else mail_timeout
        )
        self._accounts = AccountStateMachine(db, clock=clock)
        self._sessions = sessions or SessionManager.from_settings(db, clock=clock)

    # ---------------------------------------------------------------
    # Signup
    # ---------------------------------------------------------------

    async def signup(
        self,
        *,
        username: str,
        email: str,
        password: str,
        device_id: str | None = None,
    ) -> Account:
        """Register an account and send its verification email.

        Returns:
            The created, committed, unverified Account.

        Raises:
            ValidationError: Invalid fields.
            DuplicateEmailError: Email already registered.
        """
        account = await self._accounts.register(
            username=username,
            email=email,
            password=password,
            device_id=device_id,
        )
        # Captured before commit; the mailer needs the plain token
        token = account.verification_token
        await self._db.commit()
        logger.info("Account created: %s", account.id)

        if token:
            await self._dispatch_verification(
                to_email=account.email, name=account.name, token=token
            )
        return account

    async def _dispatch_verification(
        self, *, to_email: str, name: str, token: str
    ) -> None:
        """Send the verification email, logging instead of raising."""
        try:
            await asyncio.wait_for(
                self._mailer.send_verification(
                    to_email=to_email, name=name, token=token
                ),
                timeout=self._mail_timeout,
            )
        except TimeoutError:
            logger.warning(
                "Verification email timed out after %.1fs", self._mail_timeout
            )
        except Exception:
            logger.warning("Failed to send verification email", exc_info=True)

    # ---------------------------------------------------------------
    # Verify
    # ---------------------------------------------------------------

    async def verify(self, token: str) -> str:
        """Consume a verification token.

        Returns:
            The verified account's display name.

        Raises:
            InvalidTokenError: Unknown, consumed or expired token.
        """
        name = await self._accounts.consume_verification_token(token)
        await self._db.commit()
        return name

    # ---------------------------------------------------------------
    # Login
    # ---------------------------------------------------------------

    async def login(
        self,
        *,
        email: str,
        password: str,
        device_id: str | None = None,
    ) -> LoginResult:
        """Authenticate with email + password and issue a session.

        Check order: unknown email, active lock, password, verification.
        Unknown email and wrong password raise the same error.

        Raises:
            UnknownCredentialError: Unknown email or wrong password.
            AccountLockedError: Lock window still running.
            EmailNotVerifiedError: Password correct, email not verified.
        """
        now = self._clock()
        account = await self._accounts.find_by_email(email)

        if account is None:
            # Security: same bcrypt cost as a real comparison
            burn_dummy_check(password or "")
            logger.info("Login rejected: unknown email")
            raise UnknownCredentialError()

        if account.verified and is_locked(account, now):
            minutes = lock_remaining_minutes(account, now)
            logger.info(
                "Login rejected: account %s locked for %d more minutes",
                account.id,
                minutes,
            )
            raise AccountLockedError(minutes)

        if not verify_password(password or "", account.password_hash):
            await self._reject_wrong_password(account)

        if not account.verified:
            logger.info("Login rejected: email not verified for %s", account.id)
            raise EmailNotVerifiedError()

        await self._accounts.record_successful_login(account, device_id)
        session = await self._sessions.issue(account, device_id)
        await self._db.commit()

        logger.info("Login succeeded: %s", account.id)
        return LoginResult(account=account, session=session)

    async def _reject_wrong_password(self, account: Account) -> NoReturn:
        """Count the failure (verified accounts only) and raise."""
        if not account.verified:
            logger.info(
                "Login rejected: wrong password on unverified account %s", account.id
            )
            raise UnknownCredentialError()

        await self._accounts.record_failed_login(account)
        await self._db.commit()

        left = remaining_attempts(account)
        logger.info(
            "Login rejected: wrong password for %s (%d failed, %d remaining)",
            account.id,
            account.failed_attempts,
            left,
        )
        raise UnknownCredentialError(remaining_attempts=left)

    # ---------------------------------------------------------------
    # Logout / session validation
    # ---------------------------------------------------------------

    async def logout(self, session_token: str | None) -> None:
        """Deactivate a session. Never fails for unknown tokens."""
        await self._sessions.invalidate(session_token)
        await self._db.commit()

    async def authenticate(self, session_token: str | None) -> SessionClaims:
        """Validate a session token (signature, expiry, not logged out).

        Raises:
            InvalidSessionError: Token invalid, expired or revoked.
        """
        return await self._sessions.validate(session_token)
