"""Report endpoint - uptime and incident rollups."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..services.reports import SUPPORTED_FORMATS, build_report, clamp_range_days
from ..utils.auth import verify_secret

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("", dependencies=[Depends(verify_secret)])
async def get_report(
    range_days: Optional[int] = Query(None),
    format: str = Query("json"),
    db: AsyncSession = Depends(get_db),
):
    """Aggregate report over the last ``range_days`` days (1-365, default 30)."""
    if format.lower() not in SUPPORTED_FORMATS:
        raise HTTPException(status_code=400, detail=f"Unsupported format: {format}")

    report = await build_report(db, clamp_range_days(range_days))
    return {"report": report.model_dump(mode="json")}
