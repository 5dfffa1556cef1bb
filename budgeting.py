"""
Budgeting module for category spending limits.

This module manages spending limits and reports month-to-date progress
against them. At most one limit may exist per (user, category, period);
the check happens here, before the store is written.
"""

import logging
from datetime import date
from typing import Any, List, Optional

from analytics import LimitProgress, calculate_limit_progress
from database_ops import (
    LimitPeriod,
    ExpenseCategory,
    NotificationType,
    RecordStores,
    SpendingLimit,
    new_record_id,
)
from exceptions import ValidationError
from expense_management import validate_amount
from notifications import NotificationCenter
from utils import utc_now

# Configure logging
logger = logging.getLogger(__name__)


class LimitManager:
    """
    Manages spending limits and their progress.

    Provides validated create/update/delete operations for limits and
    month-to-date progress computed from the user's expenses.
    """

    def __init__(self, stores: RecordStores):
        """
        Initialize the limit manager.

        Args:
            stores: Record stores shared with the rest of the application
        """
        self.stores = stores
        self.notifications = NotificationCenter(stores.notifications)
        logger.info("Limit manager initialized")

    def _ensure_unique(
        self,
        user_id: str,
        category: ExpenseCategory,
        period: LimitPeriod,
        exclude_id: Optional[str] = None
    ) -> None:
        for existing in self.stores.limits.get_all(user_id):
            if existing.id == exclude_id:
                continue
            if existing.category == category and existing.period == period:
                raise ValidationError(
                    f"A {period.value} limit for {category.value} already exists",
                    details={"limit_id": existing.id}
                )

    def create_limit(
        self,
        user_id: str,
        category: Any,
        amount: Any,
        period: Any = LimitPeriod.MONTHLY,
        limit_id: Optional[str] = None,
        notify: bool = True
    ) -> SpendingLimit:
        """
        Create a spending limit.

        Args:
            user_id: Owning user
            category: ExpenseCategory or its label/name
            amount: Limit amount, greater than 0
            period: LimitPeriod or "weekly"/"monthly"
            limit_id: Caller-supplied id (generated when omitted)
            notify: Whether to record a "limit set" notification

        Returns:
            The stored SpendingLimit

        Raises:
            ValidationError: If a field is invalid or the limit duplicates another
        """
        category = ExpenseCategory.parse(category)
        period = LimitPeriod.parse(period)
        amount = validate_amount(amount, allow_zero=False)
        self._ensure_unique(user_id, category, period)

        limit = SpendingLimit(
            id=limit_id or new_record_id(),
            user_id=user_id,
            category=category,
            amount=amount,
            period=period,
            created_at=utc_now(),
        )
        self.stores.limits.add(limit)
        logger.info(f"Created {period.value} limit for '{category.value}': ${amount}")

        if notify:
            self.notifications.notify(
                user_id,
                f"New {period.value} spending limit set for {category.value}: ${amount:.2f}",
                NotificationType.INFO,
            )
        return limit

    def update_limit(
        self,
        user_id: str,
        limit_id: str,
        category: Any = None,
        amount: Any = None,
        period: Any = None
    ) -> None:
        """
        Change a limit's category, amount or period.

        Unknown ids, and limits owned by another user, are ignored.

        Raises:
            ValidationError: If a value is invalid or the change creates a duplicate
        """
        current = self.stores.limits.get_owned(user_id, limit_id)
        if current is None:
            logger.debug(f"Spending limit {limit_id} not found for user {user_id}; update skipped")
            return

        changes = {}
        if category is not None:
            changes["category"] = ExpenseCategory.parse(category)
        if period is not None:
            changes["period"] = LimitPeriod.parse(period)
        if amount is not None:
            changes["amount"] = validate_amount(amount, allow_zero=False)
        if not changes:
            return

        self._ensure_unique(
            user_id,
            changes.get("category", current.category),
            changes.get("period", current.period),
            exclude_id=limit_id,
        )
        self.stores.limits.update(limit_id, changes)
        logger.info(f"Updated spending limit {limit_id}: {sorted(changes)}")

    def delete_limit(self, user_id: str, limit_id: str) -> None:
        """Delete one of the user's limits. Unknown or foreign ids are ignored."""
        if self.stores.limits.get_owned(user_id, limit_id) is None:
            logger.debug(f"Spending limit {limit_id} not found for user {user_id}; delete skipped")
            return
        self.stores.limits.delete(limit_id)
        logger.info(f"Deleted spending limit {limit_id}")

    def list_limits(self, user_id: str) -> List[SpendingLimit]:
        return self.stores.limits.get_all(user_id)

    def get_limit_progress(self, user_id: str, today: Optional[date] = None) -> List[LimitProgress]:
        """Month-to-date progress for each of the user's limits."""
        return calculate_limit_progress(
            self.stores.expenses.get_all(user_id),
            self.list_limits(user_id),
            today,
        )
