"""
Expense management module.

This module validates and records expenses, applies partial updates, and
provides the search/filter used by the expense history listing. All input
is validated before the store is touched, so a rejected request never
leaves a partial write behind.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from database_ops import Expense, ExpenseCategory, NotificationType, RecordStores, new_record_id
from exceptions import ValidationError
from notifications import NotificationCenter
from utils import parse_date, to_decimal, utc_now

# Configure logging
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("amount", "category", "description", "date", "receipt_url")


def validate_amount(value: Any, *, allow_zero: bool = True, field_name: str = "amount") -> Decimal:
    """
    Parse and range-check a money amount.

    Args:
        value: Raw amount (str, int, float or Decimal)
        allow_zero: Whether 0 is acceptable (expenses yes, limits no)
        field_name: Name reported in the error details

    Returns:
        The amount as Decimal

    Raises:
        ValidationError: If the amount is missing, non-numeric or out of range
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field_name} is required", details={"field": field_name})
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise ValidationError(
            f"{field_name} must be a number",
            details={"field": field_name, "value": value},
            original_error=e
        ) from e
    if amount < 0 or (amount == 0 and not allow_zero):
        bound = "zero or more" if allow_zero else "greater than 0"
        raise ValidationError(
            f"{field_name} must be {bound}",
            details={"field": field_name, "value": value}
        )
    return amount


def validate_description(value: Any) -> str:
    """Return the stripped description, rejecting blanks."""
    description = str(value or "").strip()
    if not description:
        raise ValidationError("description is required", details={"field": "description"})
    return description


def validate_date(value: Any) -> date:
    """Parse an expense date, reporting malformed input as a validation error."""
    try:
        return parse_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            "date must be formatted YYYY-MM-DD",
            details={"field": "date", "value": value},
            original_error=e
        ) from e


@dataclass
class ExpenseFilter:
    """
    Criteria for the expense history search.

    Attributes:
        search: Case-insensitive text matched against description or category
        category: Exact category
        date_from: Inclusive start date
        date_to: Inclusive end date
        min_amount: Inclusive minimum amount
        max_amount: Inclusive maximum amount
    """
    search: Optional[str] = None
    category: Optional[ExpenseCategory] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None

    def matches(self, expense: Expense) -> bool:
        if self.search:
            term = self.search.lower()
            if term not in expense.description.lower() and term not in str(expense.category).lower():
                return False
        if self.category is not None and expense.category != self.category:
            return False
        if self.date_from is not None and expense.date < self.date_from:
            return False
        if self.date_to is not None and expense.date > self.date_to:
            return False
        if self.min_amount is not None and expense.amount < self.min_amount:
            return False
        if self.max_amount is not None and expense.amount > self.max_amount:
            return False
        return True

    def apply(self, expenses: List[Expense]) -> List[Expense]:
        """Filter ``expenses`` and sort them newest-created first."""
        matched = [expense for expense in expenses if self.matches(expense)]
        return sorted(matched, key=lambda e: e.created_at, reverse=True)


class ExpenseManager:
    """
    Manages a user's expenses.

    Provides validated create/update/delete operations over the expense
    store, plus history search.
    """

    def __init__(self, stores: RecordStores):
        """
        Initialize the expense manager.

        Args:
            stores: Record stores shared with the rest of the application
        """
        self.stores = stores
        self.notifications = NotificationCenter(stores.notifications)
        logger.info("Expense manager initialized")

    def add_expense(
        self,
        user_id: str,
        amount: Any,
        category: Any,
        description: Any,
        expense_date: Any = None,
        receipt_url: Optional[str] = None,
        expense_id: Optional[str] = None,
        notify: bool = True
    ) -> Expense:
        """
        Validate and record a new expense.

        Args:
            user_id: Owning user
            amount: Amount, zero or more
            category: ExpenseCategory or its label/name
            description: Non-empty description
            expense_date: Date of the expense (defaults to today)
            receipt_url: Optional receipt link
            expense_id: Caller-supplied id (generated when omitted)
            notify: Whether to record an "expense added" notification

        Returns:
            The stored Expense

        Raises:
            ValidationError: If any field is invalid
        """
        expense = Expense(
            id=expense_id or new_record_id(),
            user_id=user_id,
            amount=validate_amount(amount),
            category=ExpenseCategory.parse(category),
            description=validate_description(description),
            date=validate_date(expense_date) if expense_date is not None else date.today(),
            created_at=utc_now(),
            receipt_url=receipt_url or None,
        )
        self.stores.expenses.add(expense)
        logger.info(f"Added expense {expense.id}: {expense.amount} in {expense.category}")

        if notify:
            self.notifications.notify(
                user_id,
                f"New expense added: ${expense.amount:.2f} for {expense.description}",
                NotificationType.SUCCESS,
            )
        return expense

    def add_from_draft(self, user_id: str, draft: Any, **overrides: Any) -> Expense:
        """Record an expense from a receipt draft, letting the caller override fields."""
        values = {
            "amount": draft.amount,
            "category": draft.category,
            "description": draft.vendor,
            "expense_date": draft.date,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return self.add_expense(user_id, **values)

    def _validate_changes(self, changes: Dict[str, Any]) -> Dict[str, Any]:
        unknown = sorted(set(changes) - set(UPDATABLE_FIELDS))
        if unknown:
            raise ValidationError(
                "Cannot update expense fields",
                details={"fields": ", ".join(unknown)}
            )
        validated: Dict[str, Any] = {}
        if "amount" in changes:
            validated["amount"] = validate_amount(changes["amount"])
        if "category" in changes:
            validated["category"] = ExpenseCategory.parse(changes["category"])
        if "description" in changes:
            validated["description"] = validate_description(changes["description"])
        if "date" in changes:
            validated["date"] = validate_date(changes["date"])
        if "receipt_url" in changes:
            validated["receipt_url"] = changes["receipt_url"] or None
        return validated

    def update_expense(self, user_id: str, expense_id: str, **changes: Any) -> None:
        """
        Replace some fields of one of the user's expenses.

        Unknown ids, and expenses owned by another user, are ignored.

        Raises:
            ValidationError: If a changed field is invalid
        """
        validated = self._validate_changes(changes)
        if not validated:
            return
        if self.stores.expenses.get_owned(user_id, expense_id) is None:
            logger.debug(f"Expense {expense_id} not found for user {user_id}; update skipped")
            return
        self.stores.expenses.update(expense_id, validated)
        logger.info(f"Updated expense {expense_id}: {sorted(validated)}")

    def delete_expense(self, user_id: str, expense_id: str) -> None:
        """Delete one of the user's expenses. Unknown or foreign ids are ignored."""
        if self.stores.expenses.get_owned(user_id, expense_id) is None:
            logger.debug(f"Expense {expense_id} not found for user {user_id}; delete skipped")
            return
        self.stores.expenses.delete(expense_id)
        logger.info(f"Deleted expense {expense_id}")

    def list_expenses(self, user_id: str) -> List[Expense]:
        return self.stores.expenses.get_all(user_id)

    def search_expenses(self, user_id: str, criteria: Optional[ExpenseFilter] = None) -> List[Expense]:
        """Return the user's expenses matching ``criteria``, newest first."""
        return (criteria or ExpenseFilter()).apply(self.list_expenses(user_id))
