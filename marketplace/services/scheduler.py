"""
Background Scheduler - Interval jobs bound to the application lifespan.

Runs the payment poll (every 60s by default) and the expiry sweep (hourly)
as asyncio tasks in the API process.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from marketplace.config import settings
from marketplace.db.store import open_store
from marketplace.observability import get_logger, metrics
from marketplace.services.expiry_janitor import ExpiryJanitor
from marketplace.services.notifications import NotificationDispatcher
from marketplace.services.payment_provider import PaymentGateway
from marketplace.services.reconciler import PaymentPoller, StoreFactory

logger = get_logger(__name__)


class PeriodicJob:
    """Runs a coroutine function every `interval` seconds until stopped."""

    def __init__(
        self,
        name: str,
        interval: float,
        run: Callable[[], Awaitable[Any]],
        initial_delay: float = 0.0,
    ) -> None:
        self.name = name
        self.interval = interval
        self.run = run
        self.initial_delay = initial_delay
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name=f"job:{self.name}")
        logger.info("background_job_started", job=self.name, interval_seconds=self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("background_job_stopped", job=self.name)

    async def run_now(self) -> None:
        """One iteration; errors are logged so the loop keeps going."""
        try:
            await self.run()
        except Exception as e:
            metrics.record_error(type(e).__name__, self.name)
            logger.error("background_job_error", job=self.name, error=str(e), exc_info=True)

    async def _loop(self) -> None:
        if self.initial_delay:
            await asyncio.sleep(self.initial_delay)
        while True:
            await self.run_now()
            await asyncio.sleep(self.interval)


class BackgroundScheduler:
    """Owns the process's periodic jobs."""

    def __init__(self, jobs: list[PeriodicJob]) -> None:
        self.jobs = jobs

    def start(self) -> None:
        for job in self.jobs:
            job.start()

    async def stop(self) -> None:
        for job in self.jobs:
            await job.stop()


def build_scheduler(
    gateway: PaymentGateway | None,
    dispatcher: NotificationDispatcher,
    store_factory: StoreFactory = open_store,
) -> BackgroundScheduler:
    """Payment poll and expiry sweep configured from settings."""
    poller = PaymentPoller(gateway, dispatcher, store_factory)
    janitor = ExpiryJanitor(store_factory, timedelta(hours=settings.pending_order_ttl_hours))

    jobs = [
        PeriodicJob(
            "payment_poll",
            settings.payment_poll_interval_seconds,
            poller.run_once,
            initial_delay=5.0,
        ),
        PeriodicJob(
            "expiry_sweep",
            settings.expiry_sweep_interval_seconds,
            janitor.run_once,
        ),
    ]
    return BackgroundScheduler(jobs)
