"""Shared dependencies for API endpoints.

Builds the per-request orchestrator from an injected database session and
mailer, and extracts bearer session tokens.

WHY DEPENDENCY INJECTION:
- No module-level store or mail singletons inside the services
- Tests override get_db / get_mailer with doubles
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from credential_service.core.config import settings
from credential_service.core.database import get_db
from credential_service.core.email import ResendMailer, VerificationMailer
from credential_service.services.auth_service import AuthService

_BEARER_PREFIX = "bearer "


def get_mailer() -> VerificationMailer:
    """Verification mailer built from settings."""
    return ResendMailer.from_settings(settings)


DbSession = Annotated[AsyncSession, Depends(get_db)]
Mailer = Annotated[VerificationMailer, Depends(get_mailer)]


def get_auth_service(db: DbSession, mailer: Mailer) -> AuthService:
    """Authentication orchestrator bound to this request's session."""
    return AuthService(db, mailer)


def get_bearer_token(request: Request) -> str | None:
    """Session token from an ``Authorization: Bearer <token>`` header.

    Returns:
        The token, or None when the header is missing or not a bearer.
    """
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        return None
    token = header[len(_BEARER_PREFIX) :].strip()
    return token or None


# Reusable type aliases for dependency injection
Auth = Annotated[AuthService, Depends(get_auth_service)]
BearerToken = Annotated[str | None, Depends(get_bearer_token)]
