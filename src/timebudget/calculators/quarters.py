"""Fiscal quarter classification (April-March fiscal year).

Every consumer that buckets by quarter or month (the spending aggregator,
reports, budget alerts) goes through this module so bucket boundaries are
identical everywhere.

    Q1 = Apr-Jun, Q2 = Jul-Sep, Q3 = Oct-Dec, Q4 = Jan-Mar (next calendar year)
"""

from __future__ import annotations

from datetime import date, timedelta

from timebudget.calculators.types import QuarterBucket

FISCAL_YEAR_START_MONTH = 4

QUARTER_LABELS = {
    1: "Q1 (Apr-Jun)",
    2: "Q2 (Jul-Sep)",
    3: "Q3 (Oct-Dec)",
    4: "Q4 (Jan-Mar)",
}


def fiscal_quarter(on_date: date) -> int:
    """Fiscal quarter (1-4) of a date."""
    return (on_date.month - FISCAL_YEAR_START_MONTH) % 12 // 3 + 1


def fiscal_year(on_date: date) -> int:
    """Calendar year in which the date's fiscal year starts."""
    if on_date.month >= FISCAL_YEAR_START_MONTH:
        return on_date.year
    return on_date.year - 1


def month_key(on_date: date) -> str:
    """Stable ``YYYY-MM`` bucket key."""
    return f"{on_date.year:04d}-{on_date.month:02d}"


def classify(on_date: date) -> QuarterBucket:
    """Classify a date into its fiscal year, quarter and month bucket."""
    return QuarterBucket(
        fiscal_year=fiscal_year(on_date),
        fiscal_quarter=fiscal_quarter(on_date),
        month_key=month_key(on_date),
    )


def fiscal_year_bounds(year: int) -> tuple[date, date]:
    """Inclusive ``(April 1 of year, March 31 of year + 1)``."""
    start = date(year, FISCAL_YEAR_START_MONTH, 1)
    end = date(year + 1, FISCAL_YEAR_START_MONTH, 1) - timedelta(days=1)
    return start, end


def quarter_bounds(year: int, quarter: int) -> tuple[date, date]:
    """Inclusive first and last day of a fiscal quarter."""
    if quarter not in QUARTER_LABELS:
        raise ValueError(f"Invalid fiscal quarter: {quarter}")

    start_month = FISCAL_YEAR_START_MONTH + (quarter - 1) * 3
    start_year = year + (start_month - 1) // 12
    start_month = (start_month - 1) % 12 + 1
    start = date(start_year, start_month, 1)

    next_month = start_month + 3
    end_year = start_year + (next_month - 1) // 12
    next_month = (next_month - 1) % 12 + 1
    end = date(end_year, next_month, 1) - timedelta(days=1)
    return start, end


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Inclusive first and last day of a calendar month."""
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1) - timedelta(days=1)
    else:
        end = date(year, month + 1, 1) - timedelta(days=1)
    return start, end
