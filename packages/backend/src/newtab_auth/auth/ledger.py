"""Refresh token ledger — the durable record of outstanding refresh tokens.

Learn: A refresh token is only exchangeable while its row exists here.
The ledger flushes but never commits — the identity service owns the
transaction, so rotation (consume old + store new) either fully happens
or not at all.

consume() is the compare-and-delete that makes rotation single-use:
DELETE ... WHERE token = :t reports how many rows it removed. Under
concurrent rotations of the same token the database serializes the two
DELETEs on the row lock; the loser removes 0 rows.
"""

from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from newtab_auth.auth.errors import LedgerConflictError
from newtab_auth.auth.jwt import Role
from newtab_auth.auth.store import run_store_op
from newtab_auth.config import settings
from newtab_auth.db.models import RefreshToken, as_utc, utcnow

logger = structlog.get_logger()


@dataclass(frozen=True)
class RefreshTokenRecord:
    token: str
    owner: str
    role: Role
    expires_at: datetime

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utcnow())


def _to_record(row: RefreshToken) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        token=row.token,
        owner=row.owner,
        role=Role(row.role),
        expires_at=as_utc(row.expires_at),
    )


class RefreshTokenLedger:
    """CRUD over refresh_tokens, scoped to one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def store(
        self, token: str, owner: str, role: Role, expires_at: datetime
    ) -> RefreshTokenRecord:
        """Insert a new record. A duplicate token string fails loudly."""
        row = RefreshToken(
            token=token, owner=owner, role=Role(role).value, expires_at=expires_at
        )

        async def _insert():
            self.db.add(row)
            await self.db.flush()

        try:
            await run_store_op(self.db, _insert, action="ledger.store")
        except IntegrityError as e:
            await self.db.rollback()
            logger.error("ledger.conflict", owner=owner)
            raise LedgerConflictError() from e
        return _to_record(row)

    async def find_by_token(self, token: str) -> RefreshTokenRecord | None:
        async def _select():
            result = await self.db.execute(
                select(RefreshToken).where(RefreshToken.token == token)
            )
            return result.scalars().first()

        row = await run_store_op(
            self.db, _select,
            action="ledger.find_by_token",
            retries=settings.store_read_retries,
        )
        return _to_record(row) if row else None

    async def delete_by_token(self, token: str) -> bool:
        """Delete a record. Missing tokens are not an error (returns False)."""
        return await self._delete_token(token, action="ledger.delete_by_token")

    async def consume(self, token: str) -> bool:
        """Compare-and-delete for rotation. True only if this call removed the row."""
        return await self._delete_token(token, action="ledger.consume")

    async def _delete_token(self, token: str, action: str) -> bool:
        async def _delete():
            result = await self.db.execute(
                delete(RefreshToken).where(RefreshToken.token == token)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        removed = await run_store_op(self.db, _delete, action=action)
        return removed == 1

    async def list_by_owner(self, owner: str) -> list[RefreshTokenRecord]:
        async def _select():
            result = await self.db.execute(
                select(RefreshToken)
                .where(RefreshToken.owner == owner)
                .order_by(RefreshToken.expires_at)
            )
            return list(result.scalars().all())

        rows = await run_store_op(
            self.db, _select,
            action="ledger.list_by_owner",
            retries=settings.store_read_retries,
        )
        return [_to_record(r) for r in rows]

    async def delete_expired_for_owner(
        self, owner: str, now: datetime | None = None
    ) -> int:
        """Remove every record of this owner whose expiry has passed."""
        cutoff = now or utcnow()

        async def _delete():
            result = await self.db.execute(
                delete(RefreshToken).where(
                    RefreshToken.owner == owner,
                    RefreshToken.expires_at <= cutoff,
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        removed = await run_store_op(
            self.db, _delete, action="ledger.delete_expired_for_owner"
        )
        if removed:
            logger.info("ledger.expired_removed", owner=owner, count=removed)
        return removed

    async def delete_all_expired(self, now: datetime | None = None) -> int:
        """Global sweep of expired records (background sweeper / CLI)."""
        cutoff = now or utcnow()

        async def _delete():
            result = await self.db.execute(
                delete(RefreshToken).where(RefreshToken.expires_at <= cutoff)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

        return await run_store_op(self.db, _delete, action="ledger.delete_all_expired")
