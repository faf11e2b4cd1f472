"""Time tracking and project budgeting with historical rate-aware spending."""

__version__ = "0.1.0"
