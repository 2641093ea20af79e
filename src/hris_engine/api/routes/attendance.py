"""Attendance API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, status

from hris_engine.api.dependencies import AppSettings, Clock, DbSession
from hris_engine.api.schemas import (
    AttendanceFactResponse,
    ClockInRequest,
    ClockOutRequest,
    ErrorResponse,
    OvertimeDecisionRequest,
)
from hris_engine.attendance.evaluator import AttendanceEvaluator
from hris_engine.attendance.geofence import GeoPoint

router = APIRouter(prefix="/attendance", tags=["attendance"])


@router.post(
    "/clock-in",
    response_model=AttendanceFactResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def clock_in(
    db: DbSession,
    clock: Clock,
    settings: AppSettings,
    payload: ClockInRequest,
) -> AttendanceFactResponse:
    """Record a clock-in if the employee is inside an assigned geofence."""
    evaluator = AttendanceEvaluator(
        db, constants=settings.payroll, clock=clock, utc_offset_hours=settings.utc_offset_hours
    )
    fact = await evaluator.clock_in(
        payload.employee_id,
        GeoPoint(payload.latitude, payload.longitude),
        instant=payload.instant,
        accuracy_meters=payload.accuracy_meters,
    )
    return AttendanceFactResponse.model_validate(fact)


@router.post(
    "/clock-out",
    response_model=AttendanceFactResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def clock_out(
    db: DbSession,
    clock: Clock,
    settings: AppSettings,
    payload: ClockOutRequest,
) -> AttendanceFactResponse:
    """Close the employee's open attendance record."""
    evaluator = AttendanceEvaluator(
        db, constants=settings.payroll, clock=clock, utc_offset_hours=settings.utc_offset_hours
    )
    fact = await evaluator.clock_out(payload.employee_id, instant=payload.instant)
    return AttendanceFactResponse.model_validate(fact)


@router.post(
    "/{fact_id}/overtime",
    response_model=AttendanceFactResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def decide_overtime(
    db: DbSession,
    clock: Clock,
    settings: AppSettings,
    fact_id: Annotated[int, Path()],
    payload: OvertimeDecisionRequest,
) -> AttendanceFactResponse:
    """Approve or reject pending overtime on an attendance record."""
    evaluator = AttendanceEvaluator(
        db, constants=settings.payroll, clock=clock, utc_offset_hours=settings.utc_offset_hours
    )
    fact = await evaluator.decide_overtime(fact_id, payload.approve)
    return AttendanceFactResponse.model_validate(fact)
