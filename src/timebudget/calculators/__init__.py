"""Spending, rate and budget calculators."""

from timebudget.calculators.aggregator import SpendingAggregator, accumulate
from timebudget.calculators.quarters import classify, fiscal_quarter, fiscal_year
from timebudget.calculators.rate_resolver import RateResolver, RateTimeline

__all__ = [
    "SpendingAggregator",
    "accumulate",
    "classify",
    "fiscal_quarter",
    "fiscal_year",
    "RateResolver",
    "RateTimeline",
]
