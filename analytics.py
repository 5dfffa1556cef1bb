"""
Analytics module for expense aggregation.

This module provides the aggregation engine: pure functions that turn an
unordered list of expenses and a set of spending limits into category
totals, a six-month trend, per-limit progress and the dashboard summary.
Nothing here touches the record store; every view is recomputed from the
full input on each call.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from utils import month_bounds, shift_months

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TREND_MONTHS = 6

SPENDING_TIPS = [
    "Consider setting a weekly budget for dining out to control food expenses.",
    "Track your subscriptions - they can add up quickly over time.",
    "Use the 24-hour rule before making non-essential purchases.",
    "Look for opportunities to consolidate trips to save on transportation costs.",
    "Review your entertainment spending and consider free alternatives.",
    "Set up automatic transfers to savings to pay yourself first.",
]


@dataclass(frozen=True)
class CategoryTotal:
    """Total spent in one category."""
    category: Any
    amount: Decimal


@dataclass(frozen=True)
class MonthlyTrend:
    """Total spent in one calendar month, labeled like 'Oct 2026'."""
    month: str
    amount: Decimal


@dataclass(frozen=True)
class LimitProgress:
    """
    Month-to-date progress against one spending limit.

    Attributes:
        category: Category the limit applies to
        spent: Month-to-date spend in that category
        limit: Limit amount
        percentage: spent / limit * 100, clamped to 100
        remaining: limit - spent, clamped to 0
        is_over_budget: spent > limit, from the unclamped values
    """
    category: Any
    spent: Decimal
    limit: Decimal
    percentage: Decimal
    remaining: Decimal
    is_over_budget: bool


@dataclass(frozen=True)
class SpendingSummary:
    """Dashboard figures for the current month."""
    total_this_month: Decimal
    avg_daily: Decimal
    last_month_total: Decimal
    monthly_change_pct: Decimal
    top_categories: List[CategoryTotal] = field(default_factory=list)
    limits_progress: List[LimitProgress] = field(default_factory=list)


def _sum_amounts(expenses: Iterable[Any]) -> Decimal:
    return sum((expense.amount for expense in expenses), ZERO)


def expenses_between(expenses: Iterable[Any], start: date, end: date) -> List[Any]:
    """Return expenses dated within [start, end], both inclusive."""
    return [expense for expense in expenses if start <= expense.date <= end]


def expenses_in_month(expenses: Iterable[Any], day: Optional[date] = None) -> List[Any]:
    """Return expenses dated within the calendar month containing ``day``."""
    month_start, month_end = month_bounds(day or date.today())
    return expenses_between(expenses, month_start, month_end)


def calculate_category_spending(expenses: Iterable[Any]) -> List[CategoryTotal]:
    """
    Sum expense amounts per category.

    Only categories that appear in ``expenses`` get a row. Rows come out in
    order of first appearance; callers sort if they need a ranking.

    Args:
        expenses: Expense records for one user, in any order

    Returns:
        List of CategoryTotal rows
    """
    totals: "OrderedDict[Any, Decimal]" = OrderedDict()
    for expense in expenses:
        totals[expense.category] = totals.get(expense.category, ZERO) + expense.amount
    return [CategoryTotal(category=category, amount=amount) for category, amount in totals.items()]


def calculate_monthly_trends(
    expenses: Iterable[Any],
    today: Optional[date] = None
) -> List[MonthlyTrend]:
    """
    Bucket expenses into the six calendar months ending with the current one.

    Months without expenses report zero. Expenses outside the window are
    ignored here.

    Args:
        expenses: Expense records for one user
        today: Reference date (defaults to today)

    Returns:
        Six MonthlyTrend rows, oldest first
    """
    today = today or date.today()
    buckets: "OrderedDict[tuple, Decimal]" = OrderedDict()
    for offset in range(TREND_MONTHS - 1, -1, -1):
        month_start = shift_months(today, -offset)
        buckets[(month_start.year, month_start.month)] = ZERO

    for expense in expenses:
        key = (expense.date.year, expense.date.month)
        if key in buckets:
            buckets[key] += expense.amount

    return [
        MonthlyTrend(month=date(year, month, 1).strftime("%b %Y"), amount=amount)
        for (year, month), amount in buckets.items()
    ]


def _progress_for_limit(limit: Any, spent: Decimal) -> LimitProgress:
    amount = limit.amount
    if amount is None or amount <= ZERO:
        logger.warning(
            f"Spending limit {getattr(limit, 'id', '?')} has non-positive amount {amount}; "
            "reporting it as over budget"
        )
        return LimitProgress(
            category=limit.category,
            spent=spent,
            limit=amount if amount is not None else ZERO,
            percentage=HUNDRED,
            remaining=ZERO,
            is_over_budget=True,
        )

    return LimitProgress(
        category=limit.category,
        spent=spent,
        limit=amount,
        percentage=min(spent / amount * HUNDRED, HUNDRED),
        remaining=max(amount - spent, ZERO),
        is_over_budget=spent > amount,
    )


def calculate_limit_progress(
    expenses: Iterable[Any],
    limits: Iterable[Any],
    today: Optional[date] = None
) -> List[LimitProgress]:
    """
    Compute month-to-date progress for every spending limit.

    Every limit is measured against the current calendar month, including
    weekly ones. Duplicate limits for a category each get their own row.

    Args:
        expenses: Expense records for one user
        limits: SpendingLimit records for the same user
        today: Reference date (defaults to today)

    Returns:
        One LimitProgress row per limit, in input order
    """
    month_expenses = expenses_in_month(expenses, today)
    progress = []
    for limit in limits:
        spent = _sum_amounts(e for e in month_expenses if e.category == limit.category)
        progress.append(_progress_for_limit(limit, spent))
    return progress


def top_categories(expenses: Iterable[Any], top_n: Optional[int] = None) -> List[CategoryTotal]:
    """Category totals sorted by amount, largest first."""
    ranked = sorted(calculate_category_spending(expenses), key=lambda row: row.amount, reverse=True)
    return ranked[:top_n] if top_n else ranked


def recent_expenses(expenses: Iterable[Any], count: int = 5) -> List[Any]:
    """The ``count`` most recently created expenses."""
    return sorted(expenses, key=lambda e: e.created_at, reverse=True)[:count]


def calculate_spending_summary(
    expenses: Sequence[Any],
    limits: Sequence[Any],
    today: Optional[date] = None,
    top_n: int = 5
) -> SpendingSummary:
    """
    Build the dashboard summary for the month containing ``today``.

    The average daily spend divides by the day of month, so it reflects
    month-to-date pace. Month-over-month change is zero when last month
    had no spending.

    Args:
        expenses: Expense records for one user
        limits: SpendingLimit records for the same user
        today: Reference date (defaults to today)
        top_n: Number of top categories to include

    Returns:
        SpendingSummary
    """
    today = today or date.today()
    this_month = expenses_in_month(expenses, today)
    total_this_month = _sum_amounts(this_month)

    last_month_start = shift_months(today, -1)
    last_month_total = _sum_amounts(expenses_in_month(expenses, last_month_start))

    if last_month_total > ZERO:
        change = (total_this_month - last_month_total) / last_month_total * HUNDRED
    else:
        change = ZERO

    return SpendingSummary(
        total_this_month=total_this_month,
        avg_daily=total_this_month / today.day,
        last_month_total=last_month_total,
        monthly_change_pct=change,
        top_categories=top_categories(this_month, top_n),
        limits_progress=calculate_limit_progress(expenses, limits, today),
    )


def generate_spending_tips(expenses: Iterable[Any], count: int = 3) -> List[str]:
    """Return general spending tips; the expense list is not consulted."""
    return SPENDING_TIPS[:count]
