"""Contribution and withholding tax calculators."""

from hris_engine.calculators.contributions import (
    compute_pagibig,
    compute_philhealth,
    compute_sss,
    compute_withholding_tax,
    round_money,
)
from hris_engine.calculators.tables import ContributionTableSet, load_contribution_tables
from hris_engine.calculators.types import ContributionBracket, ContributionBracketTable

__all__ = [
    "ContributionBracket",
    "ContributionBracketTable",
    "ContributionTableSet",
    "compute_pagibig",
    "compute_philhealth",
    "compute_sss",
    "compute_withholding_tax",
    "load_contribution_tables",
    "round_money",
]
