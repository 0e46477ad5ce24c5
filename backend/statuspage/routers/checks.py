"""Check cycle trigger endpoints, invoked by cron or by hand."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query

from ..config import settings
from ..schemas.check import CycleResponse, CycleResultEntry
from ..services.cycle import CycleRunner, cycle_runner
from ..utils.auth import secrets_match, unauthorized, verify_cron_trigger

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/check-status", tags=["checks"])


def get_cycle_runner() -> CycleRunner:
    """Dependency returning the process-wide cycle runner."""
    return cycle_runner


def _truthy(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in ("1", "true")


async def _run_cycle(runner: CycleRunner, force: bool) -> CycleResponse:
    try:
        summary = await runner.run(force=force)
    except Exception:
        logger.exception("Error in check-status")
        raise HTTPException(status_code=500, detail="Failed to check service status")

    return CycleResponse(
        success=True,
        checked=summary.checked,
        results=[
            CycleResultEntry(
                service=item.service,
                status=item.status,
                response_time=item.response_time,
                error=item.error,
            )
            for item in summary.results
        ],
    )


@router.post("", response_model=CycleResponse, dependencies=[Depends(verify_cron_trigger)])
async def check_status(
    x_force_check: Optional[str] = Header(None),
    runner: CycleRunner = Depends(get_cycle_runner),
):
    """Run one check cycle. ``X-Force-Check: 1`` probes every active service."""
    return await _run_cycle(runner, force=_truthy(x_force_check))


@router.get("", response_model=CycleResponse)
async def check_status_manual(
    secret: Optional[str] = Query(None),
    force: Optional[str] = Query(None),
    runner: CycleRunner = Depends(get_cycle_runner),
):
    """Manual trigger: ``?secret=...&force=1``."""
    if not secrets_match(secret, settings.cron_secret):
        raise unauthorized("bad manual trigger secret")
    return await _run_cycle(runner, force=_truthy(force))


@router.get("/force/{secret}", response_model=CycleResponse)
async def check_status_forced(
    secret: str,
    runner: CycleRunner = Depends(get_cycle_runner),
):
    """Forced cycle with the secret in the path."""
    if not secrets_match(secret, settings.cron_secret):
        raise unauthorized("bad forced trigger secret")
    return await _run_cycle(runner, force=True)
