"""Periodic inventory deduction and completed-order cleanup."""

from __future__ import annotations

import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .db.repositories import OrderRepository
from .deduction import DeductionEngine, DeductionResult
from .models import Order

logger = logging.getLogger(__name__)


def scan(orders: list[Order], now: float, grace_period: float) -> list[Order]:
    """Return the orders whose deduction grace period has elapsed.

    Args:
        orders: Locally known orders.
        now: Current time as epoch seconds.
        grace_period: Seconds an order must rest after its last save.
    """
    return [
        o
        for o in orders
        if o.is_active
        and not o.ingredients_deducted
        and o.saved_at is not None
        and now - o.saved_at >= grace_period
    ]


def expired(orders: list[Order], now: float) -> list[Order]:
    """Completed orders past their display window whose payment reached the remote store."""
    return [
        o
        for o in orders
        if o.status == "completed"
        and o.payment_synced
        and o.expires_at is not None
        and now > o.expires_at
    ]


class DeductionScheduler:
    """Runs the deduction scan on a fixed interval.

    Uses APScheduler's AsyncIOScheduler. The scan itself is synchronous, so
    a tick never interleaves with other work on the event loop between
    reading and writing an order.
    """

    def __init__(
        self,
        orders: OrderRepository,
        engine: DeductionEngine,
        *,
        grace_period: float = 120.0,
        scan_interval: float = 10.0,
    ) -> None:
        self._orders = orders
        self._engine = engine
        self._grace_period = grace_period
        self._scan_interval = scan_interval
        self._scheduler = AsyncIOScheduler()
        self._running = False

    def setup_jobs(self) -> None:
        """Register the deduction and cleanup jobs."""
        self._scheduler.add_job(
            self._job_deduct,
            trigger=IntervalTrigger(seconds=self._scan_interval),
            id="deduct_inventory",
            name="Inventory deduction scan",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Deduction job registered: every %ss", self._scan_interval)

        self._scheduler.add_job(
            self._job_prune,
            trigger=IntervalTrigger(seconds=60),
            id="prune_completed",
            name="Completed order cleanup",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Cleanup job registered: every 60s")

    def start(self) -> None:
        """Start the scheduler. Must be called with a running event loop."""
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    def stop(self) -> None:
        """Stop the scheduler and cancel its timers."""
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(next_run) if next_run else None,
            })
        return jobs

    def run_once(self, now: float | None = None) -> list[DeductionResult]:
        """Deduct every eligible order once and persist its bookkeeping."""
        now = time.time() if now is None else now
        due = scan(self._orders.all(), now, self._grace_period)
        return [self._process(order) for order in due]

    def process_all_now(self) -> list[DeductionResult]:
        """Deduct every pending order saved on this device, ignoring the grace period."""
        due = [
            o
            for o in self._orders.active()
            if not o.ingredients_deducted and o.saved_at is not None
        ]
        return [self._process(order) for order in due]

    def prune_expired(self, now: float | None = None) -> int:
        """Drop completed orders whose display window has passed."""
        now = time.time() if now is None else now
        stale = expired(self._orders.all(), now)
        for order in stale:
            self._orders.remove(order.id)
            logger.info("Removed expired completed order %s", order.id)
        return len(stale)

    def _process(self, order: Order) -> DeductionResult:
        result = self._engine.process(order)
        self._orders.save(order)
        return result

    async def _job_deduct(self) -> None:
        try:
            results = self.run_once()
            if results:
                done = sum(1 for r in results if r.completed)
                logger.info(
                    "Deduction scan: %d orders processed, %d complete",
                    len(results),
                    done,
                )
        except Exception:
            logger.exception("Inventory deduction scan failed")

    async def _job_prune(self) -> None:
        try:
            self.prune_expired()
        except Exception:
            logger.exception("Completed order cleanup failed")
