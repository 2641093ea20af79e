"""Loading of versioned contribution bracket tables from JSON documents.

Document structure:
{
    "name": "sss" | "philhealth" | "pagibig" | "withholding_tax",
    "effective_date": "2025-01-01",
    "rate": 0.045,              // optional table-wide rate
    "employee_share": 0.5,      // optional, default 1
    "floor": 10000,             // optional clamp for rate-based tables
    "ceiling": 100000,
    "period_max": 1250,         // optional cap on the per-period result
    "base_multiplier": 2,       // optional, default 1
    "period_divisor": 2,        // optional, default 1
    "brackets": [
        {"min": 0, "max": 4250, "credit": 4000},
        {"min": 20833, "max": 33333, "rate": 0.15, "flat": 0},
        {"min": 666667, "max": null, "amount": 500},
        ...
    ]
}
"""

from __future__ import annotations

import json
import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from hris_engine.calculators.types import ContributionBracket, ContributionBracketTable
from hris_engine.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SSS = "sss"
PHILHEALTH = "philhealth"
PAGIBIG = "pagibig"
WITHHOLDING_TAX = "withholding_tax"
REQUIRED_TABLES = (SSS, PHILHEALTH, PAGIBIG, WITHHOLDING_TAX)


def _decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def parse_table(payload: dict[str, Any]) -> ContributionBracketTable:
    """Build a validated table from a JSON payload."""
    try:
        brackets = tuple(
            ContributionBracket(
                min_amount=Decimal(str(row["min"])),
                max_amount=_decimal(row.get("max")),
                amount=_decimal(row.get("amount")),
                credit=_decimal(row.get("credit")),
                rate=_decimal(row.get("rate")),
                flat_amount=_decimal(row.get("flat")) or Decimal("0"),
            )
            for row in payload["brackets"]
        )
        return ContributionBracketTable(
            name=payload["name"],
            effective_date=date.fromisoformat(payload["effective_date"]),
            brackets=brackets,
            rate=_decimal(payload.get("rate")),
            employee_share=_decimal(payload.get("employee_share")) or Decimal("1"),
            floor=_decimal(payload.get("floor")),
            ceiling=_decimal(payload.get("ceiling")),
            period_max=_decimal(payload.get("period_max")),
            base_multiplier=_decimal(payload.get("base_multiplier")) or Decimal("1"),
            period_divisor=_decimal(payload.get("period_divisor")) or Decimal("1"),
            description=payload.get("description", ""),
        )
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise ConfigurationError(f"Malformed bracket table: {exc!r}") from exc


class ContributionTableSet:
    """All loaded table versions, looked up by name and effective date."""

    def __init__(self, tables: Iterable[ContributionBracketTable]):
        versions: dict[str, list[ContributionBracketTable]] = defaultdict(list)
        for table in tables:
            versions[table.name].append(table)
        for name, items in versions.items():
            items.sort(key=lambda t: t.effective_date)
            dates = [t.effective_date for t in items]
            if len(set(dates)) != len(dates):
                raise ConfigurationError(f"Table '{name}' has duplicate effective dates")
        self._versions = dict(versions)

    @property
    def names(self) -> list[str]:
        return sorted(self._versions)

    def for_date(self, name: str, as_of: date) -> ContributionBracketTable:
        """Latest version of a table effective on or before as_of."""
        candidates = [t for t in self._versions.get(name, []) if t.effective_date <= as_of]
        if not candidates:
            raise ConfigurationError(f"No '{name}' table effective on {as_of}")
        return candidates[-1]

    def require(self, names: Iterable[str] = REQUIRED_TABLES) -> None:
        missing = [n for n in names if n not in self._versions]
        if missing:
            raise ConfigurationError(f"Missing contribution tables: {', '.join(missing)}")


def load_contribution_tables(directory: Path) -> ContributionTableSet:
    """Parse every *.json document in a directory into a table set."""
    if not directory.is_dir():
        raise ConfigurationError(f"Contribution table directory {directory} not found")

    tables = []
    for path in sorted(directory.glob("*.json")):
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"{path.name}: invalid JSON ({exc})") from exc
        tables.append(parse_table(payload))

    table_set = ContributionTableSet(tables)
    table_set.require()
    logger.info("Loaded %d contribution tables from %s", len(tables), directory)
    return table_set
