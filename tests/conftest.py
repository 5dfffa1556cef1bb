from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from database_ops import Expense, ExpenseCategory, LimitPeriod, RecordStores, SpendingLimit
from utils import utc_now


@pytest.fixture
def stores(tmp_path):
    """Record stores backed by a temporary SQLite database."""
    stores = RecordStores.from_connection_string(f"sqlite:///{tmp_path / 'test.db'}")
    try:
        yield stores
    finally:
        stores.db_manager.close()


@pytest.fixture
def make_expense():
    """Build unsaved Expense records with sensible defaults."""
    counter = {"n": 0}

    def _make(amount, category=ExpenseCategory.FOOD_DINING, expense_date=None,
              description="Test expense", user_id="user-1", created_at=None):
        counter["n"] += 1
        return Expense(
            id=f"exp-{counter['n']}",
            user_id=user_id,
            amount=Decimal(str(amount)),
            category=category,
            description=description,
            date=expense_date or date(2026, 10, 10),
            created_at=created_at or datetime(2026, 10, 10, 12, 0, tzinfo=UTC) + timedelta(minutes=counter["n"]),
        )

    return _make


@pytest.fixture
def make_limit():
    """Build unsaved SpendingLimit records."""
    counter = {"n": 0}

    def _make(amount, category=ExpenseCategory.FOOD_DINING, period=LimitPeriod.MONTHLY, user_id="user-1"):
        counter["n"] += 1
        return SpendingLimit(
            id=f"lim-{counter['n']}",
            user_id=user_id,
            category=category,
            amount=Decimal(str(amount)),
            period=period,
            created_at=utc_now(),
        )

    return _make
