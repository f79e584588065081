"""Ledger sweeper — periodically purges expired refresh tokens.

Learn: Expired rows are already removed lazily whenever a new refresh
token is issued for the same owner. Owners who never come back (most
guests) would otherwise leave rows behind forever, so this worker
sweeps the whole table on an interval.

Runs as a background task in the FastAPI lifespan when
NEWTAB_AUTH_LEDGER_SWEEP_INTERVAL_SECONDS > 0. Each sweep gets its own
DB session.
"""

import asyncio

import structlog

from newtab_auth.auth.errors import StoreUnavailableError
from newtab_auth.auth.ledger import RefreshTokenLedger
from newtab_auth.db.engine import async_session_factory

logger = structlog.get_logger()


class LedgerSweeper:
    """Background worker that deletes expired ledger records.

    Usage:
        sweeper = LedgerSweeper(interval=300)
        asyncio.create_task(sweeper.run_loop())
    """

    def __init__(self, interval: float, session_factory=async_session_factory):
        self.interval = interval
        self.session_factory = session_factory
        self._running = False

    async def run_loop(self) -> None:
        """Main loop — sweep, then sleep."""
        self._running = True
        logger.info("ledger_sweeper.started", interval=self.interval)

        while self._running:
            try:
                await self.sweep_once()
            except StoreUnavailableError:
                logger.warning("ledger_sweeper.store_unavailable")
            except Exception:
                logger.exception("ledger_sweeper.error")
            await asyncio.sleep(self.interval)

    async def sweep_once(self) -> int:
        """Delete every expired record. Returns how many were removed."""
        async with self.session_factory() as db:
            removed = await RefreshTokenLedger(db).delete_all_expired()
            await db.commit()
        if removed:
            logger.info("ledger_sweeper.swept", removed=removed)
        return removed

    def stop(self) -> None:
        self._running = False
