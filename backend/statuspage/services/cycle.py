"""Check cycle - one batch of scheduling, probing, reconciliation and retention."""
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import db
from ..models import Service
from ..utils.time_utils import utcnow
from .history import HistoryStore, history_store
from .prober import ProbeOutcome, ProberService, prober_service
from .reconciler import IncidentReconciler, incident_reconciler
from .scheduler import due_targets, load_check_candidates
from .worker_pool import WorkerPool

logger = logging.getLogger(__name__)

SERVICE_REMOVED_ERROR = "Service was deleted during the check"


@dataclass
class CycleResultItem:
    """Per-service entry of a cycle report."""
    service: str
    status: Optional[str]
    response_time: Optional[int] = None
    error: Optional[str] = None


@dataclass
class CycleSummary:
    """Outcome of one cycle."""
    checked: int = 0
    results: List[CycleResultItem] = field(default_factory=list)


class CycleRunner:
    """Runs check cycles.

    A cycle never fails because of a single service: probe or
    reconciliation errors are reported on that service's entry. Failing to
    read candidates or to write history does raise. Services deleted while
    the cycle runs get no history row and an error on their entry.
    """

    def __init__(
        self,
        prober: Optional[ProberService] = None,
        reconciler: Optional[IncidentReconciler] = None,
        history: Optional[HistoryStore] = None,
        pool_size: Optional[int] = None,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.prober = prober or prober_service
        self.reconciler = reconciler or incident_reconciler
        self.history = history or history_store
        self.pool_size = pool_size
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        factory = self._session_factory or db.session_factory
        return factory()

    async def run(self, force: bool = False) -> CycleSummary:
        """Probe due services (all active ones when forced) and record the results."""
        async with self._session() as session:
            candidates = await load_check_candidates(session)
        services = due_targets(candidates, utcnow(), force=force)

        if not services:
            return CycleSummary()

        logger.debug(f"Checking {len(services)} due services out of {len(candidates)} active (force={force})")

        async def probe(service: Service):
            return await self.prober.probe(service.url)

        pool = WorkerPool(self.pool_size)
        pool_results = await pool.run(services, probe, on_result=self.reconciler.reconcile)

        # History is written once per cycle, then pruned
        async with self._session() as session:
            removed = await self._append_history(
                session,
                [(r.target.id, r.outcome) for r in pool_results if r.outcome is not None],
            )
            await self.history.retain(session)

        summary = CycleSummary(checked=len(pool_results))
        for r in pool_results:
            error = r.error
            if error is None and r.target.id in removed:
                error = SERVICE_REMOVED_ERROR
            summary.results.append(CycleResultItem(
                service=r.target.name,
                status=r.outcome.status if r.outcome else None,
                response_time=r.outcome.response_time_ms if r.outcome else None,
                error=error,
            ))

        failed = sum(1 for item in summary.results if item.error)
        if failed:
            logger.warning(f"Cycle finished with {failed}/{len(pool_results)} failed services")
        return summary

    async def _append_history(
        self,
        session: AsyncSession,
        results: List[Tuple[int, ProbeOutcome]],
    ) -> Set[int]:
        """Append results for services that still exist.

        Returns the ids whose rows were dropped because the service was
        deleted while the cycle ran.
        """
        ids = {service_id for service_id, _ in results}
        existing = await _existing_service_ids(session, ids)
        try:
            await self.history.append(session, [r for r in results if r[0] in existing])
        except IntegrityError:
            # Deleted between the existence check and the insert
            await session.rollback()
            existing = await _existing_service_ids(session, ids)
            await self.history.append(session, [r for r in results if r[0] in existing])

        removed = ids - existing
        if removed:
            logger.info(f"Skipped history for services deleted during the cycle: {sorted(removed)}")
        return removed


async def _existing_service_ids(session: AsyncSession, ids: Set[int]) -> Set[int]:
    if not ids:
        return set()
    result = await session.execute(select(Service.id).where(Service.id.in_(ids)))
    return set(result.scalars().all())


# Global instance
cycle_runner = CycleRunner()
