"""
Unit tests for spending limit management.
"""

from datetime import date
from decimal import Decimal

import pytest

from budgeting import LimitManager
from database_ops import ExpenseCategory, LimitPeriod, NotificationType
from exceptions import ValidationError


@pytest.fixture
def limits(stores):
    return LimitManager(stores)


class TestLimitManager:
    """Tests for LimitManager."""

    def test_create_limit(self, limits, stores):
        limit = limits.create_limit("user-1", "Food & Dining", "300", limit_id="lim-food")

        assert limit.id == "lim-food"
        assert limit.period == LimitPeriod.MONTHLY
        stored = stores.limits.get("lim-food")
        assert stored.amount == Decimal("300")
        assert stored.category == ExpenseCategory.FOOD_DINING

    def test_create_limit_records_info_notification(self, limits, stores):
        limits.create_limit("user-1", "Travel", 250, period="weekly")

        notifications = stores.notifications.get_all("user-1")
        assert len(notifications) == 1
        assert notifications[0].type == NotificationType.INFO
        assert notifications[0].message == "New weekly spending limit set for Travel: $250.00"

    @pytest.mark.parametrize("amount", ["0", "-10", "lots"])
    def test_limit_amount_must_be_positive(self, limits, stores, amount):
        with pytest.raises(ValidationError):
            limits.create_limit("user-1", "Travel", amount)
        assert stores.limits.get_all("user-1") == []

    def test_duplicate_limit_rejected(self, limits):
        limits.create_limit("user-1", "Travel", 100, notify=False)

        with pytest.raises(ValidationError):
            limits.create_limit("user-1", "travel", 200, notify=False)

    def test_same_category_different_period_allowed(self, limits):
        limits.create_limit("user-1", "Travel", 100, notify=False)
        limits.create_limit("user-1", "Travel", 30, period="weekly", notify=False)
        limits.create_limit("user-2", "Travel", 100, notify=False)

        assert len(limits.list_limits("user-1")) == 2

    def test_update_limit_keeps_own_slot(self, limits, stores):
        """Editing a limit does not collide with itself."""
        limit = limits.create_limit("user-1", "Travel", 100, notify=False)

        limits.update_limit("user-1", limit.id, category="Travel", amount="150")

        assert stores.limits.get(limit.id).amount == Decimal("150")

    def test_update_into_existing_slot_rejected(self, limits):
        limits.create_limit("user-1", "Travel", 100, notify=False)
        shopping = limits.create_limit("user-1", "Shopping", 50, notify=False)

        with pytest.raises(ValidationError):
            limits.update_limit("user-1", shopping.id, category="Travel")

    def test_update_and_delete_missing_are_noops(self, limits):
        limits.update_limit("user-1", "missing", amount=10)
        limits.delete_limit("user-1", "missing")

    def test_delete_limit(self, limits):
        limit = limits.create_limit("user-1", "Travel", 100, notify=False)
        limits.delete_limit("user-1", limit.id)
        assert limits.list_limits("user-1") == []

    def test_other_users_cannot_change_limit(self, limits):
        limit = limits.create_limit("alice", "Travel", 100, notify=False)

        limits.update_limit("bob", limit.id, amount="1")
        limits.delete_limit("bob", limit.id)

        remaining = limits.list_limits("alice")
        assert [row.id for row in remaining] == [limit.id]
        assert remaining[0].amount == Decimal("100")

    def test_get_limit_progress(self, limits, stores, make_expense):
        limits.create_limit("user-1", "Food & Dining", 100, notify=False)
        stores.expenses.add(make_expense(120, expense_date=date(2026, 10, 3)))

        progress = limits.get_limit_progress("user-1", today=date(2026, 10, 18))

        assert len(progress) == 1
        assert progress[0].is_over_budget
        assert progress[0].spent == Decimal("120")
