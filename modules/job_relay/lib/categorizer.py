"""
Budget tier + client-trust priority for a posting.

Pure functions; thresholds come from Settings so tests can vary them.
"""

from __future__ import annotations

from .config import Thresholds
from .models import BudgetCategory, JobRecord, Priority

DEFAULT_THRESHOLDS = Thresholds()


def budget_category(budget: float, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> BudgetCategory:
    # Upper bounds are inclusive: 300 is still a quick win, 1500 still medium.
    if budget <= thresholds.budget_tier1:
        return BudgetCategory.QUICK_WINS
    if budget <= thresholds.budget_tier2:
        return BudgetCategory.MEDIUM_PROJECTS
    return BudgetCategory.HIGH_VALUE


def priority_for(record: JobRecord, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> Priority:
    """First matching rule wins: verified big spender -> HIGH, unverified small spender -> LOW."""
    if record.client_verified and record.client_spent > thresholds.verified_spent_high:
        return Priority.HIGH
    if not record.client_verified and record.client_spent < thresholds.unverified_spent_low:
        return Priority.LOW
    return Priority.MEDIUM


def categorize(record: JobRecord, thresholds: Thresholds = DEFAULT_THRESHOLDS) -> tuple[BudgetCategory, Priority]:
    return budget_category(record.budget, thresholds), priority_for(record, thresholds)
