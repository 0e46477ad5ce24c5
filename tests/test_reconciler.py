import asyncio
import random
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError

from conftest import down, operational
from statuspage.models import AnnouncementReason, Incident, IncidentUpdate
from statuspage.services.prober import ProbeOutcome
from statuspage.services.reasons import DEFAULT_REASON
from statuspage.services.reconciler import (
    ACTION_OPENED,
    ACTION_RESOLVED,
    ACTION_UNCHANGED,
    RESTORED_MESSAGE,
    IncidentReconciler,
)

NOW = datetime(2026, 3, 1, 12, 0, 0)


async def _incidents(database, service_id):
    async with database.session() as session:
        result = await session.execute(
            select(Incident).where(Incident.service_id == service_id).order_by(Incident.id)
        )
        return list(result.scalars().all())


async def _reasons(database, service_id):
    async with database.session() as session:
        result = await session.execute(
            select(AnnouncementReason).where(AnnouncementReason.service_id == service_id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_down_opens_incident_with_reason(database, make_service) -> None:
    service = await make_service(name="Portal")
    reconciler = IncidentReconciler(rng=random.Random(7))

    result = await reconciler.reconcile(service, down("Server error (502)"), now=NOW)

    assert result.action == ACTION_OPENED
    incidents = await _incidents(database, service.id)
    assert len(incidents) == 1
    incident = incidents[0]
    assert incident.id == result.incident_ids[0]
    assert incident.status == "investigating"
    assert incident.severity == "major"
    assert incident.title == "Portal is down"
    assert incident.description == "Server error (502)"
    assert incident.started_at == NOW

    reasons = await _reasons(database, service.id)
    assert len(reasons) == 1
    assert reasons[0].incident_id == incident.id
    assert reasons[0].reason_code == result.reason.code
    assert reasons[0].reason_text == result.reason.text


@pytest.mark.asyncio
async def test_default_description(database, make_service) -> None:
    service = await make_service()

    await IncidentReconciler().reconcile(service, ProbeOutcome(status="down"), now=NOW)

    incidents = await _incidents(database, service.id)
    assert incidents[0].description == "Service is not responding"


@pytest.mark.asyncio
async def test_repeated_down_is_idempotent(database, make_service) -> None:
    service = await make_service()
    reconciler = IncidentReconciler()

    first = await reconciler.reconcile(service, down(), now=NOW)
    second = await reconciler.reconcile(service, down(), now=NOW + timedelta(minutes=7))
    third = await reconciler.reconcile(service, down(), now=NOW + timedelta(minutes=14))

    assert first.action == ACTION_OPENED
    assert second.action == ACTION_UNCHANGED
    assert third.action == ACTION_UNCHANGED
    assert second.incident_ids == first.incident_ids
    assert len(await _incidents(database, service.id)) == 1
    assert len(await _reasons(database, service.id)) == 1


@pytest.mark.asyncio
async def test_concurrent_down_opens_one_incident(database, make_service) -> None:
    service = await make_service()
    reconciler = IncidentReconciler()

    results = await asyncio.gather(*[reconciler.reconcile(service, down(), now=NOW) for _ in range(5)])

    assert [r.action for r in results].count(ACTION_OPENED) == 1
    assert len(await _incidents(database, service.id)) == 1
    assert len(await _reasons(database, service.id)) == 1


class RacingReconciler(IncidentReconciler):
    """Misses the active incident on its first check, like a writer racing another process."""

    def __init__(self):
        super().__init__()
        self.checks = 0

    async def _active_incident_ids(self, session, service_id):
        self.checks += 1
        if self.checks == 1:
            return []
        return await super()._active_incident_ids(session, service_id)


@pytest.mark.asyncio
async def test_lost_insert_race_is_unchanged(database, make_service) -> None:
    service = await make_service()
    opened = await IncidentReconciler().reconcile(service, down(), now=NOW)

    result = await RacingReconciler().reconcile(service, down(), now=NOW + timedelta(minutes=1))

    assert result.action == ACTION_UNCHANGED
    assert result.incident_ids == opened.incident_ids
    assert len(await _incidents(database, service.id)) == 1
    assert len(await _reasons(database, service.id)) == 1


@pytest.mark.asyncio
async def test_operational_resolves_incident(database, make_service) -> None:
    service = await make_service()
    reconciler = IncidentReconciler()
    opened = await reconciler.reconcile(service, down(), now=NOW)

    result = await reconciler.reconcile(service, operational(), now=NOW + timedelta(minutes=7))

    assert result.action == ACTION_RESOLVED
    assert result.incident_ids == opened.incident_ids

    incidents = await _incidents(database, service.id)
    assert incidents[0].status == "resolved"
    assert incidents[0].resolved_at == NOW + timedelta(minutes=7)
    assert await _reasons(database, service.id) == []

    async with database.session() as session:
        updates = (await session.execute(select(IncidentUpdate))).scalars().all()
    assert len(updates) == 1
    assert updates[0].incident_id == opened.incident_ids[0]
    assert updates[0].message == RESTORED_MESSAGE
    assert updates[0].status == "resolved"


@pytest.mark.asyncio
async def test_operational_without_incident_is_unchanged(database, make_service) -> None:
    service = await make_service()

    result = await IncidentReconciler().reconcile(service, operational(), now=NOW)

    assert result.action == ACTION_UNCHANGED
    async with database.session() as session:
        assert (await session.execute(select(IncidentUpdate))).scalars().all() == []


@pytest.mark.asyncio
async def test_resolution_is_complete(database, make_service) -> None:
    """Every active incident resolves and no reason survives, even from a broken state."""
    service = await make_service()

    # Reproduce data written before the one-active-incident index existed
    async with database.engine.begin() as conn:
        await conn.execute(text("DROP INDEX uq_incidents_one_active"))

    async with database.session() as session:
        old = Incident(service_id=service.id, title="old", status="resolved", severity="minor",
                       started_at=NOW - timedelta(days=2), resolved_at=NOW - timedelta(days=1))
        first = Incident(service_id=service.id, title="a", status="investigating", severity="major",
                         started_at=NOW - timedelta(hours=2))
        second = Incident(service_id=service.id, title="b", status="monitoring", severity="minor",
                          started_at=NOW - timedelta(hours=1))
        session.add_all([old, first, second])
        await session.flush()
        session.add_all([
            AnnouncementReason(incident_id=first.id, service_id=service.id, reason_code="A", reason_text="a"),
            # Orphan left behind for an already resolved incident
            AnnouncementReason(incident_id=old.id, service_id=service.id, reason_code="B", reason_text="b"),
        ])
        await session.commit()
        active_ids = sorted([first.id, second.id])

    result = await IncidentReconciler().reconcile(service, operational(), now=NOW)

    assert result.action == ACTION_RESOLVED
    assert sorted(result.incident_ids) == active_ids
    incidents = await _incidents(database, service.id)
    assert all(i.status == "resolved" for i in incidents)
    assert await _reasons(database, service.id) == []

    async with database.session() as session:
        updates = (await session.execute(select(IncidentUpdate))).scalars().all()
    assert sorted(u.incident_id for u in updates) == active_ids


@pytest.mark.asyncio
async def test_degraded_changes_nothing(database, make_service) -> None:
    service = await make_service()
    reconciler = IncidentReconciler()

    assert (await reconciler.reconcile(service, ProbeOutcome(status="degraded"), now=NOW)).action == ACTION_UNCHANGED
    assert await _incidents(database, service.id) == []

    await reconciler.reconcile(service, down(), now=NOW)
    result = await reconciler.reconcile(service, ProbeOutcome(status="degraded"), now=NOW + timedelta(minutes=7))

    assert result.action == ACTION_UNCHANGED
    incidents = await _incidents(database, service.id)
    assert len(incidents) == 1
    assert incidents[0].status == "investigating"


@pytest.mark.asyncio
async def test_services_are_independent(database, make_service) -> None:
    a = await make_service()
    b = await make_service()
    reconciler = IncidentReconciler()

    await asyncio.gather(
        reconciler.reconcile(a, down(), now=NOW),
        reconciler.reconcile(b, down(), now=NOW),
    )
    await reconciler.reconcile(a, operational(), now=NOW + timedelta(minutes=7))

    assert [i.status for i in await _incidents(database, a.id)] == ["resolved"]
    assert [i.status for i in await _incidents(database, b.id)] == ["investigating"]
    assert len(await _reasons(database, b.id)) == 1


@pytest.mark.asyncio
async def test_missing_template_table_uses_default_reason(database, make_service) -> None:
    service = await make_service()
    async with database.engine.begin() as conn:
        await conn.execute(text("DROP TABLE announcement_reason_templates"))

    result = await IncidentReconciler().reconcile(service, down(), now=NOW)

    assert result.action == ACTION_OPENED
    assert result.reason == DEFAULT_REASON
    reasons = await _reasons(database, service.id)
    assert reasons[0].reason_code == "SERVER"
    assert reasons[0].reason_text == "Server maintenance or outage"


@pytest.mark.asyncio
async def test_failed_reason_insert_leaves_no_incident(database, make_service) -> None:
    service = await make_service(name="Portal")
    reconciler = IncidentReconciler(rng=random.Random(7))

    async with database.engine.begin() as conn:
        await conn.execute(text("DROP TABLE announcement_reasons"))

    with pytest.raises(SQLAlchemyError):
        await reconciler.reconcile(service, down(), now=NOW)

    assert await _incidents(database, service.id) == []

    async with database.engine.begin() as conn:
        await conn.run_sync(AnnouncementReason.__table__.create)

    result = await reconciler.reconcile(service, down(), now=NOW + timedelta(minutes=1))

    assert result.action == ACTION_OPENED
    incidents = await _incidents(database, service.id)
    assert len(incidents) == 1
    assert incidents[0].started_at == NOW + timedelta(minutes=1)
    assert len(await _reasons(database, service.id)) == 1


@pytest.mark.asyncio
async def test_failed_update_insert_leaves_incident_active(database, make_service) -> None:
    service = await make_service(name="Portal")
    reconciler = IncidentReconciler(rng=random.Random(7))
    opened = await reconciler.reconcile(service, down(), now=NOW)
    assert opened.action == ACTION_OPENED

    async with database.engine.begin() as conn:
        await conn.execute(text("DROP TABLE incident_updates"))

    with pytest.raises(SQLAlchemyError):
        await reconciler.reconcile(service, operational(), now=NOW + timedelta(minutes=5))

    incidents = await _incidents(database, service.id)
    assert len(incidents) == 1
    assert incidents[0].status == "investigating"
    assert incidents[0].resolved_at is None
    assert len(await _reasons(database, service.id)) == 1
