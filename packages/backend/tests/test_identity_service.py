"""Identity service tests — issuance, rotation, validation, logout.

Learn: These drive IdentityService directly (no HTTP). The rotation
tests are the important ones: a refresh token must be exchangeable
exactly once, and the ledger — not the JWT — decides whether it is
still alive.
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from newtab_auth.auth.errors import (
    EmailTakenError,
    ExpiredTokenError,
    InvalidCredentialsError,
    InvalidTokenError,
    RefreshTokenExpiredError,
    StoreUnavailableError,
    TokenNotFoundError,
    WrongTokenKindError,
)
from newtab_auth.auth.jwt import Role, TokenCodec
from newtab_auth.db.models import Base, RefreshToken, utcnow
from newtab_auth.services.identity_service import IdentityService


# ═══════════════════════════════════════════════════════════
# Register / login / guest
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_register_then_login_validate_to_same_identity(service):
    registered = await service.register("a@x.com", "pw1")
    logged_in = await service.login("a@x.com", "pw1")

    first = service.validate(registered.access_token)
    second = service.validate(logged_in.access_token)

    assert first == second
    assert first.subject == "a@x.com"
    assert first.role is Role.REGISTERED


@pytest.mark.asyncio
async def test_register_persists_refresh_token(service):
    pair = await service.register("a@x.com", "pw1")

    record = await service.ledger.find_by_token(pair.refresh_token)
    assert record.owner == "a@x.com"
    assert record.role is Role.REGISTERED


@pytest.mark.asyncio
async def test_register_duplicate_email(service):
    await service.register("a@x.com", "pw1")
    with pytest.raises(EmailTakenError):
        await service.register("a@x.com", "pw2")


@pytest.mark.asyncio
async def test_login_wrong_password(service):
    await service.register("a@x.com", "pw1")
    with pytest.raises(InvalidCredentialsError):
        await service.login("a@x.com", "wrong")


@pytest.mark.asyncio
async def test_guest_token(service):
    pair = await service.guest_token()
    identity = service.validate(pair.access_token)

    assert identity.role is Role.GUEST
    assert identity.subject.startswith("guest-")
    assert identity.subject.endswith("@guest.newtab")
    assert await service.ledger.find_by_token(pair.refresh_token) is not None


@pytest.mark.asyncio
async def test_guest_aliases_are_unique(service):
    first = await service.guest_token()
    second = await service.guest_token()
    assert first.subject != second.subject


@pytest.mark.asyncio
async def test_login_keeps_other_sessions(service):
    """Multi-device: a new login doesn't revoke earlier refresh tokens."""
    first = await service.register("a@x.com", "pw1")
    second = await service.login("a@x.com", "pw1")

    tokens = {r.token for r in await service.ledger.list_by_owner("a@x.com")}
    assert tokens == {first.refresh_token, second.refresh_token}


@pytest.mark.asyncio
async def test_issuance_cleans_up_expired_tokens_for_owner(service, db_session):
    await service.register("a@x.com", "pw1")
    await service.ledger.store(
        "stale", "a@x.com", Role.REGISTERED, utcnow() - timedelta(days=1)
    )
    await db_session.commit()

    await service.login("a@x.com", "pw1")

    assert await service.ledger.find_by_token("stale") is None


# ═══════════════════════════════════════════════════════════
# Refresh rotation
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_refresh_rotates(service):
    old = await service.register("a@x.com", "pw1")
    new = await service.refresh(old.refresh_token)

    assert new.refresh_token != old.refresh_token
    assert new.access_token != old.access_token
    assert new.role is Role.REGISTERED
    assert await service.ledger.find_by_token(old.refresh_token) is None
    assert await service.ledger.find_by_token(new.refresh_token) is not None


@pytest.mark.asyncio
async def test_refresh_is_single_use(service):
    pair = await service.guest_token()
    await service.refresh(pair.refresh_token)

    with pytest.raises(TokenNotFoundError):
        await service.refresh(pair.refresh_token)


CONCURRENT_REFRESHES = 5


@pytest_asyncio.fixture()
async def file_session_factory(tmp_path):
    """Sessions on a file-backed SQLite DB, one real connection per session."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.mark.asyncio
async def test_concurrent_refreshes_rotate_once(file_session_factory, codec):
    """Racing refreshes of one token: exactly one wins, the rest see it gone."""
    async with file_session_factory() as db:
        pair = await IdentityService(db, codec).guest_token()

    async def attempt():
        async with file_session_factory() as db:
            return await IdentityService(db, codec).refresh(pair.refresh_token)

    results = await asyncio.gather(
        *(attempt() for _ in range(CONCURRENT_REFRESHES)), return_exceptions=True
    )

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    assert len(winners) == 1
    assert winners[0].subject == pair.subject
    assert all(isinstance(e, TokenNotFoundError) for e in losers), losers

    async with file_session_factory() as db:
        service = IdentityService(db, codec)
        assert await service.ledger.find_by_token(pair.refresh_token) is None
        assert await service.ledger.find_by_token(winners[0].refresh_token) is not None


@pytest.mark.asyncio
async def test_rotated_token_chain_keeps_guest_role(service):
    pair = await service.guest_token()
    for _ in range(3):
        pair = await service.refresh(pair.refresh_token)

    assert service.validate(pair.access_token).role is Role.GUEST


@pytest.mark.asyncio
async def test_refresh_with_access_token(service):
    pair = await service.guest_token()
    with pytest.raises(WrongTokenKindError):
        await service.refresh(pair.access_token)


@pytest.mark.asyncio
async def test_refresh_with_forged_token(service):
    forged, _ = TokenCodec(secret="attacker").issue_refresh("a@x.com", Role.REGISTERED)
    with pytest.raises(InvalidTokenError):
        await service.refresh(forged)


@pytest.mark.asyncio
async def test_refresh_with_unrecorded_token(service, codec):
    """Correctly signed but never issued through the ledger."""
    token, _ = codec.issue_refresh("a@x.com", Role.REGISTERED)
    with pytest.raises(TokenNotFoundError):
        await service.refresh(token)


@pytest.mark.asyncio
async def test_refresh_with_expired_jwt(db_session):
    codec = TokenCodec(secret="s", refresh_ttl=timedelta(seconds=-5))
    service = IdentityService(db_session, codec)
    token, expires_at = codec.issue_refresh("a@x.com", Role.REGISTERED)
    await service.ledger.store(token, "a@x.com", Role.REGISTERED, expires_at)

    with pytest.raises(ExpiredTokenError):
        await service.refresh(token)


@pytest.mark.asyncio
async def test_ledger_expiry_is_authoritative(service, db_session):
    """Ledger says expired, JWT says fine → rejected and the record is removed."""
    pair = await service.guest_token()
    await db_session.execute(
        update(RefreshToken)
        .where(RefreshToken.token == pair.refresh_token)
        .values(expires_at=utcnow() - timedelta(minutes=1))
    )
    await db_session.commit()

    with pytest.raises(RefreshTokenExpiredError):
        await service.refresh(pair.refresh_token)
    assert await service.ledger.find_by_token(pair.refresh_token) is None


@pytest.mark.asyncio
async def test_refresh_uses_persisted_role(service, codec, db_session):
    """Claims in the presented token can't upgrade the role."""
    token, expires_at = codec.issue_refresh("guest-x@guest.newtab", Role.REGISTERED)
    await service.ledger.store(token, "guest-x@guest.newtab", Role.GUEST, expires_at)
    await db_session.commit()

    pair = await service.refresh(token)

    assert pair.role is Role.GUEST
    assert service.validate(pair.access_token).role is Role.GUEST


@pytest.mark.asyncio
async def test_failed_commit_keeps_old_token(service, db_session, monkeypatch):
    pair = await service.guest_token()

    async def broken_commit(self):
        raise OperationalError("COMMIT", {}, Exception("server closed the connection"))

    monkeypatch.setattr(AsyncSession, "commit", broken_commit)
    with pytest.raises(StoreUnavailableError):
        await service.refresh(pair.refresh_token)
    monkeypatch.undo()

    result = await db_session.execute(
        select(RefreshToken).where(RefreshToken.owner == pair.subject)
    )
    assert [r.token for r in result.scalars().all()] == [pair.refresh_token]


# ═══════════════════════════════════════════════════════════
# Validate / logout
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_validate_rejects_refresh_token(service):
    pair = await service.guest_token()
    with pytest.raises(WrongTokenKindError):
        service.validate(pair.refresh_token)


@pytest.mark.asyncio
async def test_validate_rejects_expired_access_token(db_session):
    codec = TokenCodec(secret="s", access_ttl=timedelta(seconds=-5))
    service = IdentityService(db_session, codec)
    token = codec.issue_access("a@x.com", Role.REGISTERED)

    with pytest.raises(ExpiredTokenError):
        service.validate(token)


@pytest.mark.asyncio
async def test_logout_then_refresh(service):
    pair = await service.register("a@x.com", "pw1")
    await service.logout(pair.refresh_token)

    with pytest.raises(TokenNotFoundError):
        await service.refresh(pair.refresh_token)


@pytest.mark.asyncio
async def test_logout_unknown_token_is_fine(service):
    await service.logout("never-issued")


@pytest.mark.asyncio
async def test_logout_leaves_access_token_valid(service):
    pair = await service.register("a@x.com", "pw1")
    await service.logout(pair.refresh_token)

    assert service.validate(pair.access_token).subject == "a@x.com"
