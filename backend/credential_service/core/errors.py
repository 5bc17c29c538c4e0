"""API error classes.

Domain errors raised by the account state machine, the session manager and
the authentication orchestrator. Each carries its HTTP mapping so the
exception handler in main.py can render the standard error envelope.

WHY CUSTOM ERROR CLASSES:
- Consistent error response format across all endpoints
- Easy to map to HTTP status codes in exception handlers
- Type-safe error handling in services/repositories
"""

# Security: same body for unknown email and wrong password (anti-enumeration)
INVALID_CREDENTIALS_MSG = "Email ou mot de passe incorrect"


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "INVALID_TOKEN").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for missing fields, short passwords, malformed emails.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class DuplicateEmailError(APIError):
    """Email already registered (409).

    Raised by the optimistic pre-check and, authoritatively, when the
    insert hits the unique constraint on accounts.email.
    """

    def __init__(self, message: str = "Cet email est déjà utilisé") -> None:
        super().__init__(
            code="EMAIL_ALREADY_EXISTS",
            message=message,
            status_code=409,
        )


class InvalidTokenError(APIError):
    """Verification token unknown, consumed or expired (400).

    WHY ONE ERROR FOR ALL THREE CASES:
    - Distinguishing them would let callers enumerate token state
    """

    def __init__(
        self, message: str = "Token de vérification invalide ou expiré"
    ) -> None:
        super().__init__(
            code="INVALID_TOKEN",
            message=message,
            status_code=400,
        )


class UnknownCredentialError(APIError):
    """Unknown email or wrong password (401).

    The response body is identical in both cases so it cannot be used to
    probe which emails are registered. The attempts left before lockout
    are kept on the exception for logging and in-process callers only.

    Args:
        remaining_attempts: Attempts left before lockout, or None when the
            account is unknown or not subject to lockout.
    """

    def __init__(self, remaining_attempts: int | None = None) -> None:
        super().__init__(
            code="INVALID_CREDENTIALS",
            message=INVALID_CREDENTIALS_MSG,
            status_code=401,
        )
        self.remaining_attempts = remaining_attempts


class AccountLockedError(APIError):
    """Account locked after repeated failures (423).

    Args:
        retry_after_minutes: Whole minutes until the lock window ends
            (rounded up, at least 1).
    """

    def __init__(self, retry_after_minutes: int) -> None:
        super().__init__(
            code="ACCOUNT_LOCKED",
            message=(
                "Compte temporairement verrouillé suite à trop de tentatives. "
                f"Réessayez dans {retry_after_minutes} minute(s)."
            ),
            status_code=423,
            details=[{"retry_after_minutes": retry_after_minutes}],
            headers={"Retry-After": str(retry_after_minutes * 60)},
        )
        self.retry_after_minutes = retry_after_minutes


class EmailNotVerifiedError(APIError):
    """Password correct but email not yet verified (403).

    Clients branch on the EMAIL_NOT_VERIFIED code.
    """

    def __init__(self) -> None:
        super().__init__(
            code="EMAIL_NOT_VERIFIED",
            message=(
                "Veuillez vérifier votre email avant de vous connecter. "
                "Consultez votre boîte de réception."
            ),
            status_code=403,
        )


class InvalidSessionError(APIError):
    """Session token missing, forged, expired or revoked (401).

    Security: Never include specifics about WHY validation failed.
    """

    def __init__(self, message: str = "Session invalide ou expirée") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "Erreur interne du serveur") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
