"""
Unit tests for the aggregation engine.

Tests cover:
- Category totals
- Six-month trend buckets
- Limit progress clamping and over-budget detection
- Dashboard summary figures
"""

from datetime import date
from decimal import Decimal

import pytest

from analytics import (
    CategoryTotal,
    SPENDING_TIPS,
    calculate_category_spending,
    calculate_limit_progress,
    calculate_monthly_trends,
    calculate_spending_summary,
    expenses_in_month,
    generate_spending_tips,
    recent_expenses,
    top_categories,
)
from database_ops import ExpenseCategory

TODAY = date(2026, 10, 18)


class TestCategorySpending:
    """Tests for calculate_category_spending."""

    def test_totals_sum_to_overall_total(self, make_expense):
        """Category totals should add up to the sum of all expenses."""
        expenses = [
            make_expense("12.50", ExpenseCategory.FOOD_DINING),
            make_expense("7.25", ExpenseCategory.TRANSPORTATION),
            make_expense("0.25", ExpenseCategory.FOOD_DINING),
            make_expense("100", ExpenseCategory.TRAVEL),
        ]

        totals = calculate_category_spending(expenses)

        assert sum(row.amount for row in totals) == Decimal("120.00")
        assert {row.category: row.amount for row in totals} == {
            ExpenseCategory.FOOD_DINING: Decimal("12.75"),
            ExpenseCategory.TRANSPORTATION: Decimal("7.25"),
            ExpenseCategory.TRAVEL: Decimal("100"),
        }

    def test_only_present_categories_get_rows(self, make_expense):
        """Categories with no expenses are omitted."""
        totals = calculate_category_spending([make_expense(5, ExpenseCategory.SHOPPING)])
        assert totals == [CategoryTotal(ExpenseCategory.SHOPPING, Decimal("5"))]

    def test_empty_input(self):
        """No expenses means no rows."""
        assert calculate_category_spending([]) == []

    def test_cents_are_exact(self, make_expense):
        """Decimal amounts should not drift."""
        expenses = [make_expense("0.1") for _ in range(3)]
        assert calculate_category_spending(expenses)[0].amount == Decimal("0.3")


class TestMonthlyTrends:
    """Tests for calculate_monthly_trends."""

    def test_always_six_months_oldest_first(self):
        """Six rows are returned even without expenses."""
        trends = calculate_monthly_trends([], today=TODAY)

        assert [row.month for row in trends] == [
            "May 2026", "Jun 2026", "Jul 2026", "Aug 2026", "Sep 2026", "Oct 2026"
        ]
        assert all(row.amount == 0 for row in trends)

    def test_buckets_by_calendar_month(self, make_expense):
        """Expenses land in their month; those outside the window are ignored."""
        expenses = [
            make_expense(10, expense_date=date(2026, 10, 1)),
            make_expense(5, expense_date=date(2026, 10, 31)),
            make_expense(20, expense_date=date(2026, 5, 1)),
            make_expense(99, expense_date=date(2026, 4, 30)),
            make_expense(99, expense_date=date(2026, 11, 1)),
        ]

        trends = calculate_monthly_trends(expenses, today=TODAY)

        assert trends[-1].amount == Decimal("15")
        assert trends[0].amount == Decimal("20")
        assert sum(row.amount for row in trends) == Decimal("35")

    def test_window_crosses_year_boundary(self, make_expense):
        """A February reference date reaches back into the previous year."""
        trends = calculate_monthly_trends(
            [make_expense(8, expense_date=date(2025, 9, 15))],
            today=date(2026, 2, 3),
        )

        assert trends[0].month == "Sep 2025"
        assert trends[0].amount == Decimal("8")
        assert trends[-1].month == "Feb 2026"


class TestLimitProgress:
    """Tests for calculate_limit_progress."""

    def test_over_budget_clamps_percentage_and_remaining(self, make_expense, make_limit):
        """Spending 120 against a limit of 100 reports 100% and nothing left."""
        expenses = [make_expense(70), make_expense(50)]
        progress = calculate_limit_progress(expenses, [make_limit(100)], today=TODAY)

        assert len(progress) == 1
        row = progress[0]
        assert row.category == ExpenseCategory.FOOD_DINING
        assert row.spent == Decimal("120")
        assert row.limit == Decimal("100")
        assert row.percentage == Decimal("100")
        assert row.remaining == Decimal("0")
        assert row.is_over_budget is True

    def test_one_and_a_half_times_limit(self, make_expense, make_limit):
        """150 of 100 is still clamped to 100%."""
        progress = calculate_limit_progress([make_expense(150)], [make_limit(100)], today=TODAY)
        assert progress[0].percentage == Decimal("100")
        assert progress[0].is_over_budget

    def test_exactly_at_limit_is_not_over(self, make_expense, make_limit):
        """Reaching the limit exactly is not over budget."""
        row = calculate_limit_progress([make_expense(100)], [make_limit(100)], today=TODAY)[0]
        assert row.percentage == Decimal("100")
        assert row.remaining == Decimal("0")
        assert row.is_over_budget is False

    def test_under_budget(self, make_expense, make_limit):
        """Partial spend reports the share used and what remains."""
        row = calculate_limit_progress([make_expense(40)], [make_limit(100)], today=TODAY)[0]
        assert row.percentage == Decimal("40")
        assert row.remaining == Decimal("60")
        assert row.is_over_budget is False

    def test_only_current_month_and_matching_category(self, make_expense, make_limit):
        """Last month's spend and other categories do not count."""
        expenses = [
            make_expense(30),
            make_expense(500, expense_date=date(2026, 9, 30)),
            make_expense(500, ExpenseCategory.TRAVEL),
        ]
        row = calculate_limit_progress(expenses, [make_limit(100)], today=TODAY)[0]
        assert row.spent == Decimal("30")

    def test_no_limits(self, make_expense):
        """Without limits there are no progress rows."""
        assert calculate_limit_progress([make_expense(10)], [], today=TODAY) == []

    def test_zero_limit_reports_over_budget(self, make_expense, make_limit):
        """A non-positive limit fails closed instead of dividing by zero."""
        row = calculate_limit_progress([], [make_limit(0)], today=TODAY)[0]
        assert row.is_over_budget is True
        assert row.percentage == Decimal("100")
        assert row.remaining == Decimal("0")

    def test_duplicate_limits_each_get_a_row(self, make_expense, make_limit):
        """Two limits for one category are both reported."""
        progress = calculate_limit_progress([make_expense(60)], [make_limit(50), make_limit(100)], today=TODAY)
        assert [row.is_over_budget for row in progress] == [True, False]


class TestSpendingSummary:
    """Tests for calculate_spending_summary and dashboard helpers."""

    def test_summary_figures(self, make_expense, make_limit):
        """Totals, daily average and month-over-month change."""
        expenses = [
            make_expense(100, ExpenseCategory.FOOD_DINING),
            make_expense(80, ExpenseCategory.SHOPPING),
            make_expense(100, expense_date=date(2026, 9, 12)),
        ]

        summary = calculate_spending_summary(expenses, [make_limit(150)], today=TODAY)

        assert summary.total_this_month == Decimal("180")
        assert summary.avg_daily == Decimal("180") / 18
        assert summary.last_month_total == Decimal("100")
        assert summary.monthly_change_pct == Decimal("80")
        assert [row.category for row in summary.top_categories] == [
            ExpenseCategory.FOOD_DINING, ExpenseCategory.SHOPPING
        ]
        assert len(summary.limits_progress) == 1

    def test_change_is_zero_without_last_month(self, make_expense):
        """No spending last month means no percentage change."""
        summary = calculate_spending_summary([make_expense(50)], [], today=TODAY)
        assert summary.monthly_change_pct == 0

    def test_top_categories_limit(self, make_expense):
        """top_n trims the ranking."""
        expenses = [
            make_expense(1, ExpenseCategory.OTHER),
            make_expense(3, ExpenseCategory.TRAVEL),
            make_expense(2, ExpenseCategory.EDUCATION),
        ]
        ranked = top_categories(expenses, top_n=2)
        assert [row.category for row in ranked] == [ExpenseCategory.TRAVEL, ExpenseCategory.EDUCATION]

    def test_recent_expenses_newest_first(self, make_expense):
        """The most recently created expenses come first."""
        expenses = [make_expense(i) for i in range(1, 8)]
        recent = recent_expenses(expenses)
        assert [e.amount for e in recent] == [Decimal(n) for n in (7, 6, 5, 4, 3)]

    def test_expenses_in_month_bounds(self, make_expense):
        """Both month ends are inclusive."""
        expenses = [
            make_expense(1, expense_date=date(2026, 10, 1)),
            make_expense(2, expense_date=date(2026, 10, 31)),
            make_expense(3, expense_date=date(2026, 11, 1)),
        ]
        assert len(expenses_in_month(expenses, TODAY)) == 2

    def test_spending_tips(self):
        """The first three tips are offered."""
        assert generate_spending_tips([]) == SPENDING_TIPS[:3]


@pytest.mark.parametrize("day", [date(2026, 1, 31), date(2026, 12, 1)])
def test_trend_length_at_year_edges(day):
    """The window always has six months."""
    assert len(calculate_monthly_trends([], today=day)) == 6
