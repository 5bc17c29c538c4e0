"""Verification email delivery via the Resend API.

Simple HTTP POST to Resend with a plain-text body and a minimal HTML
alternative. The orchestrator only depends on the VerificationMailer
protocol, so tests inject a double and production injects ResendMailer.
"""

import logging
from html import escape
from typing import Protocol

import httpx

from credential_service.core.config import Settings, settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"

_SUBJECT = "Vérifiez votre adresse email"


class VerificationMailer(Protocol):
    """Fire-and-forget verification email capability."""

    @property
    def is_configured(self) -> bool:
        """Whether the mailer has the credentials it needs to deliver."""
        ...

    async def send_verification(self, *, to_email: str, name: str, token: str) -> None:
        """Deliver the verification link for ``token`` to ``to_email``."""
        ...


def build_verification_url(token: str, base_url: str | None = None) -> str:
    """Build the link the user clicks to verify their email.

    Args:
        token: Plain verification token.
        base_url: Frontend base URL. Defaults to settings.frontend_url.

    Returns:
        Absolute verification URL.
    """
    base = (base_url or settings.frontend_url).rstrip("/")
    return f"{base}/verify/{token}"


def render_verification_text(name: str, url: str, ttl_hours: int) -> str:
    """Plain-text body of the verification email."""
    return (
        f"Bonjour {name},\n\n"
        "Merci pour votre inscription ! Cliquez sur ce lien pour vérifier "
        f"votre adresse email :\n\n{url}\n\n"
        f"Ce lien expire dans {ttl_hours} heures. "
        "Si vous n'avez pas créé de compte, vous pouvez ignorer cet email."
    )


def render_verification_html(name: str, url: str, ttl_hours: int) -> str:
    """HTML body of the verification email."""
    safe_name = escape(name)
    safe_url = escape(url, quote=True)
    return (
        f"<p>Bonjour {safe_name},</p>"
        "<p>Merci pour votre inscription ! Cliquez sur le bouton ci-dessous "
        "pour vérifier votre adresse email.</p>"
        f'<p><a href="{safe_url}">Vérifier mon email</a></p>'
        f"<p>Ce lien expire dans {ttl_hours} heures. Si vous n'avez pas créé "
        "de compte, vous pouvez ignorer cet email.</p>"
    )


class ResendMailer:
    """VerificationMailer backed by the Resend HTTP API.

    Raises on transport or HTTP errors; the caller decides whether a
    failed delivery matters (for signup it does not).

    Args:
        api_key: Resend API key. Empty means "not configured".
        sender: From header, e.g. ``"Mon App <noreply@example.com>"``.
        frontend_url: Base URL for verification links.
        ttl_hours: Verification link lifetime quoted in the email copy.
        timeout: HTTP timeout in seconds.
    """

    def __init__(
        self,
        *,
        api_key: str,
        sender: str,
        frontend_url: str,
        ttl_hours: int,
        timeout: float,
    ) -> None:
        self._api_key = api_key
        self._sender = sender
        self._frontend_url = frontend_url
        self._ttl_hours = ttl_hours
        self._timeout = timeout

    @classmethod
    def from_settings(cls, config: Settings) -> "ResendMailer":
        """Build a mailer from application settings."""
        return cls(
            api_key=config.resend_api_key.get_secret_value(),
            sender=f"{config.email_from_name} <{config.email_from}>",
            frontend_url=config.frontend_url,
            ttl_hours=config.verification_token_ttl_hours,
            timeout=config.mail_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def send_verification(self, *, to_email: str, name: str, token: str) -> None:
        """Send the verification email.

        Args:
            to_email: Recipient email address (normalized).
            name: Display name used in the greeting.
            token: Plain verification token.

        Raises:
            RuntimeError: If no API key is configured.
            httpx.HTTPError: On transport failure or non-2xx response.
        """
        if not self.is_configured:
            msg = "Mail delivery is not configured (RESEND_API_KEY is empty)"
            raise RuntimeError(msg)

        url = build_verification_url(token, self._frontend_url)
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={"Authorization": f"Bearer {self._api_key}"},
                json={
                    "from": self._sender,
                    "to": to_email,
                    "subject": _SUBJECT,
                    "text": render_verification_text(name, url, self._ttl_hours),
                    "html": render_verification_html(name, url, self._ttl_hours),
                },
                timeout=self._timeout,
            )
            resp.raise_for_status()
        logger.info("Verification email sent")
