"""Payroll period and record API endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Request, Response, status

from hris_engine.api.dependencies import ActorId, AppSettings, Clock, DbSession, Tables
from hris_engine.api.schemas import (
    ErrorResponse,
    GenerationResponse,
    PayrollPeriodCreate,
    PayrollPeriodResponse,
    PayrollRecordResponse,
    PayrollRecordUpdate,
    SkippedRecordResponse,
)
from hris_engine.services.aggregator import PayrollAggregator
from hris_engine.services.payroll_service import PayrollRecordService
from hris_engine.services.period_service import PayrollPeriodService

router = APIRouter(prefix="/payroll", tags=["payroll"])


# ============================================================================
# Periods
# ============================================================================


@router.post(
    "/periods",
    response_model=PayrollPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}},
)
async def create_period(db: DbSession, payload: PayrollPeriodCreate) -> PayrollPeriodResponse:
    """Create a new Open payroll period."""
    service = PayrollPeriodService(db)
    period = await service.create_period(payload.start_date, payload.end_date, payload.pay_date)
    return PayrollPeriodResponse.model_validate(period)


@router.get(
    "/periods/{period_id}",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_period(
    db: DbSession, period_id: Annotated[int, Path()]
) -> PayrollPeriodResponse:
    period = await PayrollPeriodService(db).get_period(period_id)
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/periods/{period_id}/generate",
    response_model=GenerationResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def generate_payroll(
    db: DbSession,
    tables: Tables,
    settings: AppSettings,
    period_id: Annotated[int, Path()],
) -> GenerationResponse:
    """Generate or regenerate Draft records for every eligible employee.

    Approved and Released records are left untouched and listed as skipped.
    """
    aggregator = PayrollAggregator(db, tables, settings.payroll)
    result = await aggregator.generate(period_id)
    return GenerationResponse(
        period_id=result.period_id,
        records=[PayrollRecordResponse.model_validate(r) for r in result.records],
        skipped=[SkippedRecordResponse.model_validate(s) for s in result.skipped],
        removed=result.removed,
        total_gross=result.total_gross,
        total_net=result.total_net,
    )


@router.post(
    "/periods/{period_id}/close",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def close_period(
    db: DbSession, period_id: Annotated[int, Path()]
) -> PayrollPeriodResponse:
    """Close a period whose records have all been released."""
    period = await PayrollPeriodService(db).close_period(period_id)
    return PayrollPeriodResponse.model_validate(period)


# ============================================================================
# Records
# ============================================================================


@router.get(
    "/records/{record_id}",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_record(
    db: DbSession, clock: Clock, record_id: Annotated[int, Path()]
) -> PayrollRecordResponse:
    record = await PayrollRecordService(db, clock).get_record(record_id)
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/records/{record_id}/approve",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def approve_record(
    db: DbSession,
    clock: Clock,
    actor_id: ActorId,
    record_id: Annotated[int, Path()],
) -> PayrollRecordResponse:
    """Approve a Draft record and apply its cash advance installments."""
    record = await PayrollRecordService(db, clock).approve(record_id, actor_id)
    return PayrollRecordResponse.model_validate(record)


@router.post(
    "/records/{record_id}/release",
    response_model=PayrollRecordResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def release_record(
    db: DbSession,
    clock: Clock,
    actor_id: ActorId,
    record_id: Annotated[int, Path()],
) -> PayrollRecordResponse:
    record = await PayrollRecordService(db, clock).release(record_id, actor_id)
    return PayrollRecordResponse.model_validate(record)


@router.patch(
    "/records/{record_id}",
    response_model=PayrollRecordResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_record(
    db: DbSession,
    clock: Clock,
    record_id: Annotated[int, Path()],
    payload: PayrollRecordUpdate,
) -> PayrollRecordResponse:
    """Edit notes or manual deductions on a Draft record."""
    record = await PayrollRecordService(db, clock).update_record(
        record_id, notes=payload.notes, other_deductions=payload.other_deductions
    )
    return PayrollRecordResponse.model_validate(record)


@router.delete(
    "/records/{record_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_record(
    db: DbSession, clock: Clock, record_id: Annotated[int, Path()]
) -> Response:
    await PayrollRecordService(db, clock).delete_record(record_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Contribution tables
# ============================================================================


@router.post(
    "/contribution-tables/invalidate",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def invalidate_contribution_tables(request: Request) -> Response:
    """Force the next payroll computation to reload contribution tables."""
    request.app.state.contribution_tables.invalidate()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
