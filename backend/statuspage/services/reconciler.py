"""Incident reconciler - turns probe outcomes into incident open/resolve transitions.

Per service there are two derived states: healthy (no active incident) and
incident-open (exactly one active incident). Only ``down`` opens an incident
and only ``operational`` resolves; ``degraded`` never changes incident state.

Two guards keep at most one active incident per service:
- an asyncio.Lock per service serializes reconciliation inside this process;
- the partial unique index ``uq_incidents_one_active`` rejects a second
  active incident from any other writer (an overlapping cycle in another
  process). Losing that race is treated as "already open".

Each reconciliation runs in a single transaction, so a persistence error
leaves nothing half applied.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Hashable, List, Optional

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import db
from ..models import AnnouncementReason, Incident, IncidentUpdate, Service
from ..utils.time_utils import utcnow
from .prober import STATUS_DOWN, STATUS_OPERATIONAL, ProbeOutcome
from .reasons import DEFAULT_REASON, ReasonChoice, load_reason_pool

logger = logging.getLogger(__name__)

RESTORED_MESSAGE = "Service has been restored and is operational"
DEFAULT_DESCRIPTION = "Service is not responding"

ACTION_OPENED = "opened"
ACTION_RESOLVED = "resolved"
ACTION_UNCHANGED = "unchanged"


@dataclass
class ReconcileOutcome:
    """Side effects applied for one probe outcome."""
    action: str
    incident_ids: List[int] = field(default_factory=list)
    reason: Optional[ReasonChoice] = None


class KeyedLocks:
    """One asyncio.Lock per key, created on demand."""

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock


def active_incident_filter(service_id: int):
    return (Incident.service_id == service_id, Incident.status != "resolved")


class IncidentReconciler:
    """Applies incident transitions for probe outcomes."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
        rng: Optional[random.Random] = None,
    ):
        self._session_factory = session_factory
        self._rng = rng
        self._locks = KeyedLocks()

    def _session(self) -> AsyncSession:
        factory = self._session_factory or db.session_factory
        return factory()

    async def reconcile(
        self,
        service: Service,
        outcome: ProbeOutcome,
        now: Optional[datetime] = None,
    ) -> ReconcileOutcome:
        """Open or resolve incidents for a service based on a probe outcome.

        Raises SQLAlchemyError when the transition could not be persisted.
        """
        if outcome.status not in (STATUS_DOWN, STATUS_OPERATIONAL):
            return ReconcileOutcome(action=ACTION_UNCHANGED)

        now = now or utcnow()
        async with self._locks.get(service.id):
            if outcome.status == STATUS_DOWN:
                return await self._open_incident(service, outcome, now)
            return await self._resolve_incidents(service, now)

    async def _active_incident_ids(self, session: AsyncSession, service_id: int) -> List[int]:
        result = await session.execute(
            select(Incident.id)
            .where(*active_incident_filter(service_id))
            .order_by(Incident.started_at.desc())
        )
        return list(result.scalars().all())

    async def _open_incident(
        self,
        service: Service,
        outcome: ProbeOutcome,
        now: datetime,
    ) -> ReconcileOutcome:
        """Create an incident and its announcement reason unless one is active."""
        reason: Optional[ReasonChoice] = None
        try:
            async with self._session() as session:
                async with session.begin():
                    active_ids = await self._active_incident_ids(session, service.id)
                    if active_ids:
                        return ReconcileOutcome(action=ACTION_UNCHANGED, incident_ids=active_ids[:1])

                    incident = Incident(
                        service_id=service.id,
                        title=f"{service.name} is down",
                        description=outcome.error_message or DEFAULT_DESCRIPTION,
                        status="investigating",
                        severity="major",
                        started_at=now,
                    )
                    session.add(incident)
                    await session.flush()

                    reason = await self._pick_reason()
                    session.add(AnnouncementReason(
                        incident_id=incident.id,
                        service_id=service.id,
                        reason_code=reason.code,
                        reason_text=reason.text,
                    ))
                    incident_id = incident.id
        except IntegrityError:
            # Another writer opened an incident between our check and insert
            async with self._session() as session:
                active_ids = await self._active_incident_ids(session, service.id)
            if not active_ids:
                raise
            logger.info(f"Incident for {service.name} already opened concurrently")
            return ReconcileOutcome(action=ACTION_UNCHANGED, incident_ids=active_ids[:1])

        logger.info(f"Opened incident {incident_id} for {service.name}: {reason.code}")
        return ReconcileOutcome(action=ACTION_OPENED, incident_ids=[incident_id], reason=reason)

    async def _pick_reason(self) -> ReasonChoice:
        """Weighted pick from the template pool, or the default if it cannot be read."""
        try:
            async with self._session() as session:
                pool = await load_reason_pool(session)
        except SQLAlchemyError as e:
            logger.warning(f"Reason templates unavailable, using default: {e}")
            return DEFAULT_REASON
        return pool.pick(self._rng)

    async def _resolve_incidents(self, service: Service, now: datetime) -> ReconcileOutcome:
        """Resolve every active incident of the service and clear its reasons."""
        async with self._session() as session:
            async with session.begin():
                result = await session.execute(
                    update(Incident)
                    .where(*active_incident_filter(service.id))
                    .values(status="resolved", resolved_at=now)
                    .returning(Incident.id)
                    .execution_options(synchronize_session=False)
                )
                resolved_ids = list(result.scalars().all())

                # Reasons only exist for active incidents, so none of this service's survive
                await session.execute(
                    delete(AnnouncementReason).where(AnnouncementReason.service_id == service.id)
                )

                if resolved_ids:
                    await session.execute(
                        insert(IncidentUpdate),
                        [
                            {
                                "incident_id": incident_id,
                                "message": RESTORED_MESSAGE,
                                "status": "resolved",
                                "created_at": now,
                            }
                            for incident_id in resolved_ids
                        ],
                    )

        if not resolved_ids:
            return ReconcileOutcome(action=ACTION_UNCHANGED)

        logger.info(f"Resolved {len(resolved_ids)} incident(s) for {service.name}")
        return ReconcileOutcome(action=ACTION_RESOLVED, incident_ids=resolved_ids)


# Global instance
incident_reconciler = IncidentReconciler()
