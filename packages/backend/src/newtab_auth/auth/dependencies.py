"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to build the
identity service for the request and to extract / validate the bearer
access token.

Token shape problems (missing header, wrong scheme, empty token) are
rejected here as InvalidTokenError, before the service is reached.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from newtab_auth.auth.errors import InvalidTokenError
from newtab_auth.auth.jwt import TokenCodec, get_codec
from newtab_auth.db.engine import get_db
from newtab_auth.services.identity_service import IdentityService, ValidatedIdentity


def get_identity_service(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_codec),
) -> IdentityService:
    return IdentityService(db, codec)


def bearer_token(authorization: Optional[str] = Header(None)) -> str:
    """Pull the token out of `Authorization: Bearer <token>`."""
    if not authorization:
        raise InvalidTokenError("Missing bearer token")
    scheme, _, token = authorization.partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise InvalidTokenError("Malformed authorization header")
    return token


def get_current_identity(
    token: str = Depends(bearer_token),
    service: IdentityService = Depends(get_identity_service),
) -> ValidatedIdentity:
    """Validated access-token identity (401 otherwise)."""
    return service.validate(token)
