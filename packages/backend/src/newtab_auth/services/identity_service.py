"""Identity service — register / login / guest / refresh / validate / logout.

Learn: Service layer separates business logic from HTTP routing.
API routes call the service, the service composes three collaborators:

    TokenCodec          signs and verifies tokens (no I/O)
    CredentialVerifier  password checks against the users table
    RefreshTokenLedger  outstanding refresh tokens

No session state lives in memory — each call reconstructs who the caller
is from the token it presents. The service owns the transaction: every
operation that writes ends with exactly one commit, and any failure rolls
the whole request back.

Rotation protocol (refresh):
    1. verify signature/expiry          → InvalidToken / ExpiredToken
    2. kind must be "refresh"           → WrongTokenKind
    3. ledger record must exist         → TokenNotFound
    4. ledger expiry must not have passed → delete + RefreshTokenExpired
    5. compare-and-delete the old row, mint a new pair from the
       *persisted* owner/role, store the new refresh token, commit.
       Losing the compare-and-delete to a concurrent rotation → TokenNotFound.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from newtab_auth.auth.credentials import CredentialStore, CredentialVerifier
from newtab_auth.auth.errors import (
    IdentityError,
    RefreshTokenExpiredError,
    TokenNotFoundError,
    WrongTokenKindError,
)
from newtab_auth.auth.jwt import Role, TokenCodec, TokenKind, kind_of, role_of, subject_of
from newtab_auth.auth.ledger import RefreshTokenLedger
from newtab_auth.auth.store import run_store_op
from newtab_auth.config import settings

logger = structlog.get_logger()


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    subject: str
    role: Role


@dataclass(frozen=True)
class ValidatedIdentity:
    """The trust assertion handed to downstream services."""

    subject: str
    role: Role


class IdentityService:
    """Business logic for issuing, rotating and validating tokens."""

    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        verifier: CredentialVerifier | None = None,
        ledger: RefreshTokenLedger | None = None,
    ):
        self.db = db
        self.codec = codec
        self.verifier = verifier or CredentialVerifier(CredentialStore(db))
        self.ledger = ledger or RefreshTokenLedger(db)

    # ─── Credential flows ───────────────────────────────

    async def register(self, email: str, password: str) -> TokenPair:
        try:
            identity = await self.verifier.register(email, password)
            pair = await self._issue_pair(identity.email, Role.REGISTERED)
            await self._commit("identity.register")
        except IdentityError as e:
            await self._abort("identity.register_failed", e)
            raise
        logger.info("identity.registered", subject=identity.email)
        return pair

    async def login(self, email: str, password: str) -> TokenPair:
        try:
            identity = await self.verifier.verify(email, password)
            pair = await self._issue_pair(identity.email, Role.REGISTERED)
            await self._commit("identity.login")
        except IdentityError as e:
            await self._abort("identity.login_failed", e)
            raise
        logger.info("identity.logged_in", subject=identity.email)
        return pair

    async def guest_token(self) -> TokenPair:
        """Mint tokens for a fresh anonymous identity (no users row)."""
        alias = f"guest-{uuid.uuid4().hex}@{settings.guest_email_domain}"
        try:
            pair = await self._issue_pair(alias, Role.GUEST)
            await self._commit("identity.guest")
        except IdentityError as e:
            await self._abort("identity.guest_failed", e)
            raise
        logger.info("identity.guest_issued", subject=alias)
        return pair

    # ─── Token flows ────────────────────────────────────

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new pair. Single use."""
        try:
            claims = self.codec.verify(refresh_token)
            if kind_of(claims) is not TokenKind.REFRESH:
                raise WrongTokenKindError("Not a refresh token")

            record = await self.ledger.find_by_token(refresh_token)
            if record is None:
                raise TokenNotFoundError()

            if record.is_expired():
                await self.ledger.delete_by_token(refresh_token)
                await self._commit("identity.refresh_expired_cleanup")
                raise RefreshTokenExpiredError()

            if not await self.ledger.consume(refresh_token):
                logger.warning("ledger.rotation_lost", owner=record.owner)
                raise TokenNotFoundError()

            # Persisted owner/role, not the presented claims.
            pair = await self._issue_pair(record.owner, record.role)
            await self._commit("identity.refresh")
        except IdentityError as e:
            await self._abort("identity.refresh_failed", e)
            raise
        logger.info("identity.refreshed", subject=pair.subject, role=pair.role.value)
        return pair

    def validate(self, access_token: str) -> ValidatedIdentity:
        """Check an access token. Stateless — no store lookup."""
        try:
            claims = self.codec.verify(access_token)
            if kind_of(claims) is not TokenKind.ACCESS:
                raise WrongTokenKindError("Not an access token")
        except IdentityError as e:
            logger.info("identity.validate_failed", code=e.code)
            raise
        return ValidatedIdentity(subject=subject_of(claims), role=role_of(claims))

    async def logout(self, refresh_token: str) -> None:
        """Forget a refresh token. Issued access tokens simply expire."""
        removed = await self.ledger.delete_by_token(refresh_token)
        await self._commit("identity.logout")
        logger.info("identity.logged_out", removed=removed)

    # ─── Helpers ────────────────────────────────────────

    async def _issue_pair(self, subject: str, role: Role) -> TokenPair:
        access = self.codec.issue_access(subject, role)
        refresh, expires_at = self.codec.issue_refresh(subject, role)
        await self.ledger.store(refresh, subject, role, expires_at)
        await self.ledger.delete_expired_for_owner(subject)
        return TokenPair(
            access_token=access, refresh_token=refresh, subject=subject, role=Role(role)
        )

    async def _commit(self, action: str) -> None:
        await run_store_op(self.db, self.db.commit, action=action)

    async def _abort(self, event: str, error: IdentityError) -> None:
        logger.info(event, code=error.code)
        if self.db.in_transaction():
            await self.db.rollback()
