"""Bracket table types for contribution and tax calculators."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from hris_engine.exceptions import ConfigurationError, ValidationError


@dataclass(frozen=True)
class ContributionBracket:
    """One row of a bracket table.

    Covers [min_amount, max_amount); max_amount None means open-ended.
    """

    min_amount: Decimal
    max_amount: Decimal | None  # None = no upper limit
    amount: Decimal | None = None  # Fixed contribution for the bracket
    credit: Decimal | None = None  # Salary credit the table rate applies to
    rate: Decimal | None = None  # Rate overriding the table rate
    flat_amount: Decimal = Decimal("0")  # Base amount at bracket start (tax)

    def covers(self, base: Decimal) -> bool:
        if base < self.min_amount:
            return False
        return self.max_amount is None or base < self.max_amount


@dataclass(frozen=True)
class ContributionBracketTable:
    """Ordered, contiguous, non-overlapping bracket rows plus table scalars.

    Validated on construction; a malformed table can never be used.
    """

    name: str
    effective_date: date
    brackets: tuple[ContributionBracket, ...]
    rate: Decimal | None = None
    employee_share: Decimal = Decimal("1")
    floor: Decimal | None = None
    ceiling: Decimal | None = None
    period_max: Decimal | None = None
    base_multiplier: Decimal = Decimal("1")
    period_divisor: Decimal = Decimal("1")
    description: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        if not self.brackets:
            raise ConfigurationError(f"Table '{self.name}' has no brackets")
        if self.period_divisor <= 0 or self.base_multiplier <= 0:
            raise ConfigurationError(f"Table '{self.name}' has a non-positive multiplier")
        if (
            self.floor is not None
            and self.ceiling is not None
            and self.floor > self.ceiling
        ):
            raise ConfigurationError(f"Table '{self.name}' floor exceeds ceiling")

        for i, bracket in enumerate(self.brackets):
            is_last = i == len(self.brackets) - 1
            if bracket.max_amount is None and not is_last:
                raise ConfigurationError(
                    f"Table '{self.name}': only the last bracket may be open-ended"
                )
            if bracket.max_amount is not None and bracket.max_amount <= bracket.min_amount:
                raise ConfigurationError(
                    f"Table '{self.name}': bracket {bracket.min_amount}-{bracket.max_amount} "
                    "is empty or inverted"
                )
            if not is_last:
                following = self.brackets[i + 1]
                if bracket.max_amount < following.min_amount:
                    raise ConfigurationError(
                        f"Table '{self.name}': gap between {bracket.max_amount} "
                        f"and {following.min_amount}"
                    )
                if bracket.max_amount > following.min_amount:
                    raise ConfigurationError(
                        f"Table '{self.name}': brackets overlap at {following.min_amount}"
                    )

    def select(self, base: Decimal) -> ContributionBracket:
        """Return the unique bracket containing base (lower bound inclusive)."""
        if base < 0:
            raise ValidationError(f"Negative base {base} for table '{self.name}'")
        for bracket in self.brackets:
            if bracket.covers(base):
                return bracket
        raise ConfigurationError(
            f"Table '{self.name}' has no bracket covering {base}"
        )
