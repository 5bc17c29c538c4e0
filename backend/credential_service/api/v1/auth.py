"""Authentication endpoints.

signup, login, verify, logout and session introspection.

Security considerations:
- login: unknown email and wrong password return the same 401 body; a
  dummy bcrypt comparison keeps their timing indistinguishable
- login: verified accounts lock for 15 minutes after 5 wrong passwords
- logout: always 200, even for unknown or already-inactive tokens
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from credential_service.api.deps import Auth, BearerToken
from credential_service.core.responses import DataResponse

router = APIRouter()

_VERIFIED_MSG = "Votre email a été vérifié avec succès !"
_LOGGED_OUT_MSG = "Déconnexion réussie"


# ===================================================================
# Request models
# ===================================================================


class SignupRequest(BaseModel):
    """Request body for POST /auth/signup.

    Field contents (empty values, password length, email syntax) are
    validated by the account state machine so the errors carry its
    messages.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    username: str = Field(max_length=255)
    email: str = Field(max_length=255)
    password: str = Field(max_length=255)
    device_id: str | None = Field(None, alias="deviceId", max_length=255)


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    email: str = Field(max_length=255)
    password: str = Field(max_length=255)
    device_id: str | None = Field(None, alias="deviceId", max_length=255)


class LogoutRequest(BaseModel):
    """Request body for POST /auth/logout.

    Unknown fields are ignored and a non-string sessionToken counts as no
    token.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    session_token: str | None = Field(None, alias="sessionToken")

    @field_validator("session_token", mode="before")
    @classmethod
    def non_string_is_no_token(cls, value: object) -> object:
        return value if isinstance(value, str) else None


async def read_logout_body(request: Request) -> LogoutRequest:
    """Parse the logout body, falling back to an empty one.

    Missing, malformed or non-object JSON yields a body without a token.
    """
    try:
        return LogoutRequest.model_validate(await request.json())
    except ValueError:
        return LogoutRequest()


LogoutBody = Annotated[LogoutRequest, Depends(read_logout_body)]


# ===================================================================
# POST /auth/signup
# ===================================================================


@router.post("/signup", status_code=201)
async def signup(body: SignupRequest, auth: Auth) -> DataResponse[dict]:
    """Register an account and email its verification link.

    Mail delivery problems are logged; the account exists either way.
    """
    account = await auth.signup(
        username=body.username,
        email=body.email,
        password=body.password,
        device_id=body.device_id,
    )
    return DataResponse(
        data={"id": str(account.id), "name": account.name, "email": account.email}
    )


# ===================================================================
# POST /auth/login
# ===================================================================


@router.post("/login")
async def login(body: LoginRequest, auth: Auth) -> DataResponse[dict]:
    """Authenticate with email + password and issue a session token."""
    result = await auth.login(
        email=body.email,
        password=body.password,
        device_id=body.device_id,
    )
    account = result.account
    return DataResponse(
        data={
            "user": {
                "id": str(account.id),
                "name": account.name,
                "email": account.email,
                "verified": account.verified,
            },
            "sessionToken": result.session.token,
            "expiresIn": result.session.expires_in,
        }
    )


# ===================================================================
# GET /auth/verify/{token}
# ===================================================================


@router.get("/verify/{token}")
async def verify(token: str, auth: Auth) -> DataResponse[dict]:
    """Consume the single-use verification token from the emailed link."""
    name = await auth.verify(token)
    return DataResponse(data={"message": _VERIFIED_MSG, "user": {"name": name}})


# ===================================================================
# POST /auth/logout
# ===================================================================


@router.post("/logout")
async def logout(
    auth: Auth,
    bearer: BearerToken,
    body: LogoutBody,
) -> DataResponse[dict]:
    """Deactivate a session.

    The token comes from the body, or from the Authorization header when
    the body has none.
    """
    token = body.session_token or bearer
    await auth.logout(token)
    return DataResponse(data={"message": _LOGGED_OUT_MSG})


# ===================================================================
# GET /auth/session
# ===================================================================


@router.get("/session")
async def session(auth: Auth, bearer: BearerToken) -> DataResponse[dict]:
    """Describe the session behind the bearer token (401 if invalid)."""
    claims = await auth.authenticate(bearer)
    return DataResponse(
        data={
            "accountId": str(claims.account_id),
            "email": claims.email,
            "expiresAt": claims.expires_at.isoformat(),
        }
    )
