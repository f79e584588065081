"""Store-call guard — timeouts and fault mapping for database access.

Learn: Every ledger / credential-store call goes through run_store_op():

- the call is bounded by settings.store_timeout_seconds
- a timeout or driver/connection fault rolls the session back and is
  re-raised as StoreUnavailableError (the original is only logged)
- IntegrityError is NOT mapped: callers turn it into a domain error
  (EmailTakenError, LedgerConflictError)
- retries > 0 is only passed for idempotent reads; writes never retry,
  so a flaky store can't cause a token to be issued twice
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from newtab_auth.auth.errors import StoreUnavailableError
from newtab_auth.config import settings

logger = structlog.get_logger()

T = TypeVar("T")


async def run_store_op(
    session: AsyncSession,
    op: Callable[[], Awaitable[T]],
    *,
    action: str,
    retries: int = 0,
    timeout: float | None = None,
) -> T:
    """Run one store operation, mapping faults to StoreUnavailableError."""
    timeout = timeout or settings.store_timeout_seconds
    attempt = 0
    while True:
        try:
            return await asyncio.wait_for(op(), timeout=timeout)
        except IntegrityError:
            raise
        except (SQLAlchemyError, asyncio.TimeoutError, OSError) as e:
            await _safe_rollback(session)
            if attempt < retries:
                attempt += 1
                logger.warning(
                    "store.retrying", action=action, attempt=attempt, error=str(e)
                )
                continue
            logger.error(
                "store.unavailable",
                action=action,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise StoreUnavailableError() from e


async def _safe_rollback(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except SQLAlchemyError:
        logger.warning("store.rollback_failed")
