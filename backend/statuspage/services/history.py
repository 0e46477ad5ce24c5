"""History store - append-only log of probe results with a retention window."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from sqlalchemy import delete, insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..models import StatusCheck
from ..utils.db_utils import retry_on_lock
from ..utils.time_utils import utcnow
from .prober import ProbeOutcome

logger = logging.getLogger(__name__)


class HistoryStore:
    """Stores probe results and prunes them to the retention window."""

    def __init__(self, retention_days: Optional[int] = None):
        self.retention_days = retention_days if retention_days is not None else settings.retention_days

    async def append(
        self,
        session: AsyncSession,
        results: Sequence[Tuple[int, ProbeOutcome]],
    ) -> int:
        """Insert one cycle's results as a single batch and commit.

        Args:
            session: Database session
            results: (service_id, outcome) pairs

        Returns:
            Number of rows written
        """
        if not results:
            return 0

        rows = [
            {
                "service_id": service_id,
                "status": outcome.status,
                "response_time_ms": outcome.response_time_ms,
                "status_code": outcome.status_code,
                "error_message": outcome.error_message,
                "checked_at": outcome.checked_at,
            }
            for service_id, outcome in results
        ]
        await session.execute(insert(StatusCheck), rows)
        await retry_on_lock(session.commit)
        logger.debug(f"Appended {len(rows)} status checks")
        return len(rows)

    async def query(
        self,
        session: AsyncSession,
        service_id: int,
        since: datetime,
    ) -> List[StatusCheck]:
        """Status checks for a service since a point in time, oldest first."""
        result = await session.execute(
            select(StatusCheck)
            .where(
                StatusCheck.service_id == service_id,
                StatusCheck.checked_at >= since,
            )
            .order_by(StatusCheck.checked_at.asc())
        )
        return list(result.scalars().all())

    async def retain(
        self,
        session: AsyncSession,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Delete status checks older than the retention window and commit.

        Returns the number of deleted rows.
        """
        window_days = window_days if window_days is not None else self.retention_days
        cutoff = (now or utcnow()) - timedelta(days=window_days)

        result = await session.execute(
            delete(StatusCheck).where(StatusCheck.checked_at < cutoff)
        )
        await retry_on_lock(session.commit)

        deleted = result.rowcount or 0
        if deleted:
            logger.info(f"Removed {deleted} status checks older than {window_days} days")
        return deleted


# Global instance
history_store = HistoryStore()
