"""Scheduler service - decides which services are due and triggers cycles.

Due selection reads every active service together with its last check time
in one query, then filters in memory. Reading and deciding from the same
snapshot avoids a per-service "read last check, then decide" race.

The in-process trigger (APScheduler) stands in for an external cron: it
invokes a full cycle every ``cycle_interval_seconds`` and a standalone
retention sweep so the 30-day bound holds even when cycles stop running.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import db
from ..models import Service, StatusCheck
from .history import history_store

logger = logging.getLogger(__name__)


@dataclass
class CheckCandidate:
    """An active service and the time of its most recent check."""
    service: Service
    last_checked_at: Optional[datetime] = None


def is_due(last_checked_at: Optional[datetime], check_interval: int, now: datetime) -> bool:
    """Determine if a service is due for checking.

    Args:
        last_checked_at: Time of last check, or None if never checked
        check_interval: Service's check interval in seconds
        now: Current time (naive UTC)

    Returns:
        True if the interval has fully elapsed or the service was never checked
    """
    # Never checked - check immediately
    if last_checked_at is None:
        return True
    return last_checked_at <= now - timedelta(seconds=check_interval)


def due_targets(
    candidates: Iterable[CheckCandidate],
    now: datetime,
    force: bool = False,
) -> List[Service]:
    """Pick the services to probe this cycle.

    With ``force`` every active service is returned regardless of timers.
    """
    active = [c for c in candidates if c.service.is_active]
    if force:
        return [c.service for c in active]
    return [
        c.service for c in active
        if is_due(c.last_checked_at, c.service.check_interval, now)
    ]


async def load_check_candidates(session: AsyncSession) -> List[CheckCandidate]:
    """Get all active services with their last check time in one query."""
    last_check = (
        select(
            StatusCheck.service_id,
            func.max(StatusCheck.checked_at).label("last_checked_at"),
        )
        .group_by(StatusCheck.service_id)
        .subquery()
    )
    result = await session.execute(
        select(Service, last_check.c.last_checked_at)
        .outerjoin(last_check, last_check.c.service_id == Service.id)
        .where(Service.is_active.is_(True))
        .order_by(Service.id)
    )
    return [
        CheckCandidate(service=service, last_checked_at=last_checked_at)
        for service, last_checked_at in result.all()
    ]


class SchedulerService:
    """Periodic trigger for check cycles and retention sweeps."""

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        # A cycle only probes services whose interval elapsed, so ticking
        # more often than the interval is cheap
        self.scheduler.add_job(
            self._run_cycle,
            trigger=IntervalTrigger(seconds=settings.cycle_interval_seconds),
            id="run_cycle",
            replace_existing=True,
            max_instances=1,
            misfire_grace_time=settings.cycle_interval_seconds,
        )

        # Retention also runs on its own so infrequent cycles still prune history
        self.scheduler.add_job(
            self._sweep_retention,
            trigger=IntervalTrigger(minutes=settings.retention_sweep_minutes),
            id="sweep_retention",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            f"Scheduler started (cycle={settings.cycle_interval_seconds}s, "
            f"retention sweep={settings.retention_sweep_minutes}m)"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    async def _run_cycle(self):
        """Run one scheduled (non-forced) cycle."""
        from .cycle import cycle_runner

        try:
            summary = await cycle_runner.run(force=False)
            if summary.checked:
                logger.info(f"Scheduled cycle checked {summary.checked} services")
        except Exception:
            logger.exception("Scheduled check cycle failed")

    async def _sweep_retention(self):
        """Delete status checks outside the retention window."""
        try:
            async with db.session() as session:
                await history_store.retain(session)
        except Exception:
            logger.exception("Retention sweep failed")


# Global instance
scheduler_service = SchedulerService()
