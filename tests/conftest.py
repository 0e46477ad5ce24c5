"""Shared fixtures: a fresh SQLite database per test and small factories."""
import itertools
from typing import List, Optional

import pytest
import pytest_asyncio

from statuspage.database import db
from statuspage.models import Service
from statuspage.services.prober import STATUS_DOWN, STATUS_OPERATIONAL, ProbeOutcome


@pytest_asyncio.fixture
async def database(tmp_path):
    db.configure(f"sqlite+aiosqlite:///{tmp_path}/statuspage-test.db")
    await db.init()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def make_service(database):
    counter = itertools.count(1)

    async def _make(
        name: Optional[str] = None,
        url: Optional[str] = None,
        check_interval: int = 420,
        is_active: bool = True,
    ) -> Service:
        n = next(counter)
        service = Service(
            name=name or f"Service {n}",
            url=url or f"https://service-{n}.example.com",
            check_interval=check_interval,
            is_active=is_active,
        )
        async with database.session() as session:
            session.add(service)
            await session.commit()
        return service

    return _make


def down(message: str = "Server error (503)") -> ProbeOutcome:
    return ProbeOutcome(status=STATUS_DOWN, response_time_ms=120, status_code=503, error_message=message)


def operational() -> ProbeOutcome:
    return ProbeOutcome(status=STATUS_OPERATIONAL, response_time_ms=80, status_code=200)


class StubProber:
    """Returns canned outcomes per URL and records probed URLs."""

    def __init__(self, outcomes: Optional[dict] = None, default: Optional[ProbeOutcome] = None):
        self.outcomes = outcomes or {}
        self.default = default
        self.calls: List[str] = []

    async def probe(self, url: str, timeout: Optional[float] = None) -> ProbeOutcome:
        self.calls.append(url)
        outcome = self.outcomes.get(url, self.default)
        if isinstance(outcome, Exception):
            raise outcome
        # Fresh object per probe so checked_at differs between cycles
        return ProbeOutcome(
            status=outcome.status,
            response_time_ms=outcome.response_time_ms,
            status_code=outcome.status_code,
            error_message=outcome.error_message,
        )


@pytest.fixture
def stub_prober():
    return StubProber(default=operational())
