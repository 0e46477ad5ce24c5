"""Public "report down" endpoint."""
import logging

from fastapi import APIRouter, BackgroundTasks, Request

from ..schemas.check import ReportDownRequest, ReportDownResponse
from ..services.notifier import client_ip, notifier_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/report-down", tags=["reports"])


@router.post("", response_model=ReportDownResponse)
async def report_down(data: ReportDownRequest, request: Request, background_tasks: BackgroundTasks):
    """Accept a visitor's outage report and forward it to the admin webhook."""
    ip = client_ip(
        request.headers.get("x-forwarded-for"),
        request.headers.get("x-real-ip"),
    )
    logger.info(f"User reported {data.service_name} ({data.service_id}) as down")

    background_tasks.add_task(
        notifier_service.report_down,
        data.service_id,
        data.service_name,
        ip,
        data.user_agent,
    )
    return ReportDownResponse(success=True, message="Report received")
