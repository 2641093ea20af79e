"""Payroll period management."""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hris_engine.exceptions import NotFoundError, StateConflictError, ValidationError
from hris_engine.models import PayrollPeriod, PayrollRecord, PayrollStatus, PeriodStatus

logger = logging.getLogger(__name__)


class PayrollPeriodService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_period(self, period_id: int) -> PayrollPeriod:
        period = await self.session.get(PayrollPeriod, period_id)
        if period is None:
            raise NotFoundError("PayrollPeriod", period_id)
        return period

    async def create_period(
        self, start_date: date, end_date: date, pay_date: date
    ) -> PayrollPeriod:
        """Create an Open period; periods may not overlap."""
        if end_date < start_date:
            raise ValidationError("Period end date precedes start date")
        if pay_date < start_date:
            raise ValidationError("Pay date precedes period start")

        result = await self.session.execute(
            select(PayrollPeriod.period_id).where(
                PayrollPeriod.start_date <= end_date,
                PayrollPeriod.end_date >= start_date,
            )
        )
        clash = result.scalars().first()
        if clash is not None:
            raise ValidationError(f"Period overlaps existing payroll period {clash}")

        period = PayrollPeriod(
            start_date=start_date,
            end_date=end_date,
            pay_date=pay_date,
            status=PeriodStatus.OPEN,
        )
        self.session.add(period)
        await self.session.flush()
        logger.info("Created payroll period %s (%s to %s)", period.period_id, start_date, end_date)
        return period

    async def close_period(self, period_id: int) -> PayrollPeriod:
        """Close a period once every record in it has been released."""
        period = await self.get_period(period_id)
        if period.status == PeriodStatus.CLOSED:
            raise StateConflictError(f"Payroll period {period_id} is already closed")

        result = await self.session.execute(
            select(PayrollRecord.record_id).where(
                PayrollRecord.period_id == period_id,
                PayrollRecord.status != PayrollStatus.RELEASED,
            )
        )
        unreleased = list(result.scalars().all())
        if unreleased:
            raise StateConflictError(
                f"Payroll period {period_id} has {len(unreleased)} unreleased record(s)"
            )

        period.status = PeriodStatus.CLOSED
        await self.session.flush()
        return period
