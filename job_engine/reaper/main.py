"""
Reaper for recovering stale claims.

The reaper periodically sweeps jobs that were claimed longer ago than a
timeout, whether still claimed or running, back to pending so a crashed or
hung worker's jobs are picked up again. Sweeping does not count against a
job's retries. The timeout must exceed the longest expected job runtime.
"""

import asyncio
import logging
import signal
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager

from sqlalchemy.ext.asyncio import AsyncSession

from job_engine.config import get_settings
from job_engine.db import close_db, get_session_context, init_db
from job_engine.errors import JobEngineError
from job_engine.observability.logging import setup_logging
from job_engine.observability.metrics import setup_metrics
from job_engine.observability.tracing import setup_tracing
from job_engine.queue import JobQueue
from job_engine.types.api import SweptJob

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodic stale-claim sweeper.

    Every interval_seconds it runs Sweep with timeout_minutes and logs
    which jobs were returned to pending.
    """

    def __init__(
        self,
        interval_seconds: int | None = None,
        timeout_minutes: int | None = None,
        session_factory: Callable[[], AbstractAsyncContextManager[AsyncSession]] | None = None,
    ):
        """
        Initialize the reaper.

        Args:
            interval_seconds: Seconds between sweeps.
            timeout_minutes: Claims older than this are swept.
            session_factory: Session context factory. Defaults to the
                process-wide session context.
        """
        settings = get_settings()
        self.interval = interval_seconds or settings.reaper_interval_seconds
        self.timeout_minutes = (
            timeout_minutes if timeout_minutes is not None else settings.reaper_timeout_minutes
        )
        self._session_factory = session_factory or get_session_context
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start the reaper loop."""
        logger.info(
            f"Reaper starting with interval {self.interval}s",
            extra={"timeout_minutes": self.timeout_minutes},
        )

        while not self._stopping.is_set():
            try:
                await self.run_once()
            except JobEngineError as e:
                logger.error(f"Error in reaper loop: {e.message}")

            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except TimeoutError:
                pass

        logger.info("Reaper stopped")

    def stop(self) -> None:
        """Stop the reaper."""
        logger.info("Reaper stopping")
        self._stopping.set()

    async def run_once(self) -> list[SweptJob]:
        """
        Run a single sweep (for testing or cron-style execution).

        Returns:
            The jobs returned to pending.
        """
        async with self._session_factory() as session:
            swept = await JobQueue(session).sweep(self.timeout_minutes)

        if swept:
            logger.warning(
                f"Swept {len(swept)} stale claims",
                extra={"job_ids": [job.id for job in swept]},
            )
        return swept


async def run_async() -> None:
    """Run the reaper asynchronously."""
    setup_logging()
    setup_metrics()
    setup_tracing()
    await init_db()

    reaper = Reaper()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, reaper.stop)

    try:
        await reaper.start()
    finally:
        await close_db()


def run() -> None:
    """Run the reaper."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
