"""Auth API — the gateway-facing token endpoints.

Learn: Routes for the whole token lifecycle:
- POST /auth/register → email/password → new user + tokens
- POST /auth/login → email/password → tokens
- POST /auth/guest → tokens for a fresh anonymous identity
- POST /auth/refresh → refresh token → new access + refresh token (single use)
- GET  /auth/validate → bearer access token → identity, plus X-User-Email /
  X-User-Type headers for the gateway to forward downstream
- POST /auth/logout → forget a refresh token

Routes stay thin: parse input, call IdentityService, shape output.
Failures are IdentityError subclasses handled in api/errors.py.
"""

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, EmailStr, Field

from newtab_auth.auth.dependencies import get_current_identity, get_identity_service
from newtab_auth.middleware.trust_headers import trust_headers
from newtab_auth.services.identity_service import (
    IdentityService,
    TokenPair,
    ValidatedIdentity,
)

router = APIRouter(prefix="/auth")


# ─── Schemas ─────────────────────────────────────────────
# Wire names are camelCase ({token, refreshToken, type, userType}) to match
# the new-tab frontend; Python attributes stay snake_case.


class CredentialsRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Accepts either `refreshToken` or `refresh_token`."""

    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(min_length=1, alias="refreshToken")


class TokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    refresh_token: str = Field(alias="refreshToken")
    type: str = "Bearer"
    user_type: str = Field(alias="userType")
    email: str

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenResponse":
        return cls(
            token=pair.access_token,
            refresh_token=pair.refresh_token,
            user_type=pair.role.value,
            email=pair.subject,
        )


class ValidateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: str
    user_type: str = Field(alias="userType")


# ─── Credential flows ───────────────────────────────────


@router.post("/register", response_model=TokenResponse)
async def register(
    body: CredentialsRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Create a registered account and sign it in."""
    pair = await service.register(body.email, body.password)
    return TokenResponse.from_pair(pair)


@router.post("/login", response_model=TokenResponse)
async def login(
    body: CredentialsRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Login with email and password → tokens."""
    pair = await service.login(body.email, body.password)
    return TokenResponse.from_pair(pair)


@router.post("/guest", response_model=TokenResponse)
async def guest(service: IdentityService = Depends(get_identity_service)):
    """Issue tokens for an anonymous guest identity."""
    pair = await service.guest_token()
    return TokenResponse.from_pair(pair)


# ─── Token flows ────────────────────────────────────────


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    body: RefreshRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Exchange a refresh token for a new pair. The old one stops working."""
    pair = await service.refresh(body.refresh_token)
    return TokenResponse.from_pair(pair)


@router.get("/validate", response_model=ValidateResponse)
async def validate(
    response: Response,
    identity: ValidatedIdentity = Depends(get_current_identity),
):
    """Validate a bearer access token and assert the identity downstream."""
    response.headers.update(trust_headers(identity))
    return ValidateResponse(email=identity.subject, user_type=identity.role.value)


@router.post("/logout", status_code=204)
async def logout(
    body: RefreshRequest,
    service: IdentityService = Depends(get_identity_service),
):
    """Forget a refresh token. Unknown tokens are accepted silently."""
    await service.logout(body.refresh_token)
    return Response(status_code=204)
