"""API routers."""
from .services import router as services_router
from .incidents import router as incidents_router
from .checks import router as checks_router
from .reports import router as reports_router
from .report_down import router as report_down_router

__all__ = ["services_router", "incidents_router", "checks_router", "reports_router", "report_down_router"]
