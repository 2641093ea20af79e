"""API routes."""

from hris_engine.api.routes.attendance import router as attendance_router
from hris_engine.api.routes.health import router as health_router
from hris_engine.api.routes.payroll import router as payroll_router

__all__ = ["attendance_router", "health_router", "payroll_router"]
