"""JWT token codec.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (60min), validated by signature + expiry only
- Refresh token: long-lived (7 days), same format, but also recorded in
  the refresh-token ledger so it can be rotated and revoked

Claims on every token:
    sub   email (registered) or guest alias
    role  "guest" | "registered"
    type  "access" | "refresh"
    iat / exp
    jti   random id, keeps tokens minted in the same second distinct

Decoding never hands out a raw dict — claims come back as a TokenClaims
dataclass, and a payload missing any of them is rejected.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache

import jwt

from newtab_auth.auth.errors import ExpiredTokenError, InvalidTokenError
from newtab_auth.config import settings


class Role(str, Enum):
    GUEST = "guest"
    REGISTERED = "registered"


class TokenKind(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    subject: str
    role: Role
    kind: TokenKind
    issued_at: datetime
    expires_at: datetime
    token_id: str


def kind_of(claims: TokenClaims) -> TokenKind:
    return claims.kind


def role_of(claims: TokenClaims) -> Role:
    return claims.role


def subject_of(claims: TokenClaims) -> str:
    return claims.subject


class TokenCodec:
    """Signs and verifies access/refresh tokens.

    Usage:
        codec = TokenCodec(secret="...")
        token = codec.issue_access("a@x.com", Role.REGISTERED)
        claims = codec.verify(token)
    """

    REQUIRED_CLAIMS = ["sub", "role", "type", "iat", "exp", "jti"]

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=60),
        refresh_ttl: timedelta = timedelta(days=7),
    ):
        if not secret:
            raise ValueError("JWT secret cannot be empty")
        self._secret = secret
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    # ─── Encoding ───────────────────────────────────────

    def issue(
        self, subject: str, role: Role, kind: TokenKind, ttl: timedelta
    ) -> str:
        """Create a signed token expiring at now + ttl."""
        token, _ = self._encode(subject, role, kind, ttl)
        return token

    def issue_access(self, subject: str, role: Role) -> str:
        return self.issue(subject, role, TokenKind.ACCESS, self.access_ttl)

    def issue_refresh(self, subject: str, role: Role) -> tuple[str, datetime]:
        """Create a refresh token. Returns (token, expires_at) for the ledger."""
        token, claims = self._encode(subject, role, TokenKind.REFRESH, self.refresh_ttl)
        return token, claims.expires_at

    def _encode(
        self, subject: str, role: Role, kind: TokenKind, ttl: timedelta
    ) -> tuple[str, TokenClaims]:
        # JWT timestamps are whole seconds; truncate so the returned claims
        # match what verify() will decode.
        now = datetime.now(timezone.utc).replace(microsecond=0)
        claims = TokenClaims(
            subject=subject,
            role=Role(role),
            kind=TokenKind(kind),
            issued_at=now,
            expires_at=now + ttl,
            token_id=uuid.uuid4().hex,
        )
        payload = {
            "sub": claims.subject,
            "role": claims.role.value,
            "type": claims.kind.value,
            "iat": claims.issued_at,
            "exp": claims.expires_at,
            "jti": claims.token_id,
        }
        token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        return token, claims

    # ─── Decoding ───────────────────────────────────────

    def verify(self, token: str) -> TokenClaims:
        """Verify signature and expiry, then decode into TokenClaims.

        Raises ExpiredTokenError for a well-formed token past its expiry,
        InvalidTokenError for everything else.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": self.REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredTokenError()
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")

        try:
            return TokenClaims(
                subject=str(payload["sub"]),
                role=Role(payload["role"]),
                kind=TokenKind(payload["type"]),
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
                token_id=str(payload["jti"]),
            )
        except (ValueError, TypeError) as e:
            raise InvalidTokenError(f"Invalid token claims: {e}")


@lru_cache
def get_codec() -> TokenCodec:
    """Process-wide codec built from settings (FastAPI dependency)."""
    return TokenCodec(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
    )
