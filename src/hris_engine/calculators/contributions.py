"""Government contribution and withholding tax calculators.

Each calculator is a pure function of a period base and a bracket table.
Intermediate values keep full Decimal precision; rounding to centavos
(ROUND_HALF_UP) happens once, at the end.

A table's ``base_multiplier`` scales the period base to the table's basis
(2 turns a semi-monthly amount into a monthly one) and ``period_divisor``
scales the result back to the period.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from hris_engine.calculators.types import ContributionBracketTable
from hris_engine.exceptions import ConfigurationError, ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(amount: Decimal) -> Decimal:
    """Round to centavos, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def _table_base(base: Decimal, table: ContributionBracketTable) -> Decimal:
    if base < 0:
        raise ValidationError(f"Negative base {base} for table '{table.name}'")
    return base * table.base_multiplier


def _clamp(value: Decimal, low: Decimal | None, high: Decimal | None) -> Decimal:
    if low is not None and value < low:
        value = low
    if high is not None and value > high:
        value = high
    return value


def _finish(amount: Decimal, table: ContributionBracketTable) -> Decimal:
    per_period = amount / table.period_divisor
    if table.period_max is not None:
        per_period = min(per_period, table.period_max)
    return round_money(per_period)


def compute_sss(base: Decimal, table: ContributionBracketTable) -> Decimal:
    """SSS employee share from the salary-credit bracket table."""
    table_base = _table_base(base, table)
    bracket = table.select(table_base)

    if bracket.amount is not None:
        contribution = bracket.amount
    elif bracket.credit is not None:
        rate = bracket.rate if bracket.rate is not None else table.rate
        if rate is None:
            raise ConfigurationError(f"Table '{table.name}' has no rate for credit brackets")
        contribution = bracket.credit * rate * table.employee_share
    else:
        raise ConfigurationError(
            f"Table '{table.name}' bracket at {bracket.min_amount} has neither amount nor credit"
        )
    return _finish(contribution, table)


def compute_rate_contribution(base: Decimal, table: ContributionBracketTable) -> Decimal:
    """Rate-based contribution within floor/ceiling bounds.

    The bracket (and so the rate) is chosen on the unclamped base; the rate
    then applies to the base clamped to [floor, ceiling].
    """
    table_base = _table_base(base, table)
    bracket = table.select(table_base)
    rate = bracket.rate if bracket.rate is not None else table.rate
    if rate is None:
        raise ConfigurationError(f"Table '{table.name}' has no rate")

    clamped = _clamp(table_base, table.floor, table.ceiling)
    return _finish(clamped * rate * table.employee_share, table)


def compute_philhealth(base: Decimal, table: ContributionBracketTable) -> Decimal:
    """PhilHealth employee share."""
    return compute_rate_contribution(base, table)


def compute_pagibig(base: Decimal, table: ContributionBracketTable) -> Decimal:
    """Pag-IBIG (HDMF) employee share."""
    return compute_rate_contribution(base, table)


def compute_withholding_tax(taxable: Decimal, table: ContributionBracketTable) -> Decimal:
    """Withholding tax on income net of mandatory contributions.

    tax = flat_amount + (taxable - bracket_min) * bracket_rate
    """
    table_base = _table_base(taxable, table)
    bracket = table.select(table_base)
    rate = bracket.rate if bracket.rate is not None else ZERO
    tax = bracket.flat_amount + (table_base - bracket.min_amount) * rate
    return _finish(tax, table)
