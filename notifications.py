"""
Notification policy and read-state management.

Decides, from limit progress and the user's notification history, which
budget alerts to raise, suppressing repeats inside a look-back window. Also
exposes the listing and unread -> read transitions used by the CLI.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence

from analytics import LimitProgress, calculate_limit_progress
from config_manager import get_section
from database_ops import (
    Notification,
    NotificationStore,
    NotificationType,
    RecordStores,
    new_record_id,
)
from exceptions import ConfigError
from utils import ensure_utc, utc_now

logger = logging.getLogger(__name__)

OVER_BUDGET = "over_budget"
APPROACHING = "approaching"

# Text every alert of a kind carries; substring de-duplication matches on these.
ALERT_MARKERS = {
    OVER_BUDGET: "over budget",
    APPROACHING: "approaching",
}

DEDUP_SUBSTRING = "substring"
DEDUP_STRUCTURED = "structured"


@dataclass(frozen=True)
class PolicySettings:
    """Tunables for budget alerts."""
    dedup_window: timedelta = timedelta(hours=24)
    approaching_threshold: Decimal = Decimal("80")
    dedup_mode: str = DEDUP_SUBSTRING

    @classmethod
    def from_config(cls, config: Optional[Dict[str, Any]] = None) -> "PolicySettings":
        """
        Build settings from the ``notifications`` config section.

        Raises:
            ConfigError: If a value is out of range or the mode is unknown
        """
        section = get_section(config or {}, "notifications")
        try:
            window_hours = float(section.get("dedup_window_hours", 24))
            threshold = Decimal(str(section.get("approaching_threshold", 80)))
        except (TypeError, ValueError, ArithmeticError) as e:
            raise ConfigError(
                "Invalid notification settings",
                details={"section": "notifications"},
                original_error=e
            ) from e
        mode = str(section.get("dedup_mode", DEDUP_SUBSTRING)).lower()

        if window_hours < 0:
            raise ConfigError("dedup_window_hours must not be negative", details={"value": window_hours})
        if not Decimal("0") <= threshold <= Decimal("100"):
            raise ConfigError("approaching_threshold must be within 0-100", details={"value": threshold})
        if mode not in (DEDUP_SUBSTRING, DEDUP_STRUCTURED):
            raise ConfigError(
                f"Unknown dedup_mode: {mode}",
                details={"allowed": f"{DEDUP_SUBSTRING}, {DEDUP_STRUCTURED}"}
            )
        return cls(
            dedup_window=timedelta(hours=window_hours),
            approaching_threshold=threshold,
            dedup_mode=mode,
        )


def _half_up(value: Decimal, places: str) -> Decimal:
    return Decimal(value).quantize(Decimal(places), rounding=ROUND_HALF_UP)


def format_over_budget_message(progress: LimitProgress) -> str:
    return (
        f"⚠️ You're over budget for {progress.category}! "
        f"Spent ${_half_up(progress.spent, '0.01')} of ${_half_up(progress.limit, '0.01')} limit."
    )


def format_approaching_message(progress: LimitProgress) -> str:
    return (
        f"📊 You're approaching your {progress.category} limit. "
        f"{_half_up(progress.percentage, '1')}% used (${_half_up(progress.remaining, '0.01')} remaining)."
    )


class NotificationPolicy:
    """
    Budget alert policy.

    Known limitation of the default substring mode: history is matched on
    free text, so a category whose name appears inside another category's
    alert suppresses its own alerts. The structured mode keys on
    (user, category, alert kind) instead.
    """

    def __init__(self, settings: Optional[PolicySettings] = None):
        self.settings = settings or PolicySettings()

    def _matches(self, notification: Any, category: str, kind: str) -> bool:
        if self.settings.dedup_mode == DEDUP_STRUCTURED:
            return notification.category == category and notification.alert_kind == kind
        message = notification.message or ""
        return category in message and ALERT_MARKERS[kind] in message

    def has_recent_alert(
        self,
        history: Iterable[Any],
        category: str,
        kind: str,
        now: datetime
    ) -> bool:
        """Whether ``history`` holds a matching alert newer than the window."""
        cutoff = ensure_utc(now) - self.settings.dedup_window
        return any(
            self._matches(notification, category, kind)
            and ensure_utc(notification.created_at) > cutoff
            for notification in history
        )

    def classify(self, progress: LimitProgress) -> Optional[str]:
        """Return the alert kind a progress row calls for, or None."""
        if progress.is_over_budget:
            return OVER_BUDGET
        if progress.percentage > self.settings.approaching_threshold:
            return APPROACHING
        return None

    def evaluate(
        self,
        user_id: str,
        progress_rows: Sequence[LimitProgress],
        history: Sequence[Any],
        now: Optional[datetime] = None
    ) -> List[Notification]:
        """
        Decide which alerts to raise for one evaluation pass.

        Does not touch the store. Alerts raised earlier in the same pass
        count as history, so duplicate limits for one category alert once.

        Args:
            user_id: Owner of the progress rows and history
            progress_rows: Output of calculate_limit_progress
            history: The user's existing notifications
            now: Evaluation time (defaults to the current UTC time)

        Returns:
            New, unsaved Notification records
        """
        now = ensure_utc(now or utc_now())
        seen: List[Any] = [n for n in history if n.user_id == user_id]
        emitted: List[Notification] = []

        for progress in progress_rows:
            kind = self.classify(progress)
            if kind is None:
                continue
            category = str(progress.category)
            if self.has_recent_alert(seen, category, kind, now):
                logger.debug(f"Suppressing repeat {kind} alert for {category}")
                continue

            if kind == OVER_BUDGET:
                message = format_over_budget_message(progress)
                notification_type = NotificationType.WARNING
            else:
                message = format_approaching_message(progress)
                notification_type = NotificationType.INFO

            notification = Notification(
                id=new_record_id(),
                user_id=user_id,
                message=message,
                type=notification_type,
                read=False,
                # One microsecond apart so newest-first listing follows emission order
                created_at=now + timedelta(microseconds=len(emitted)),
                category=category,
                alert_kind=kind,
            )
            emitted.append(notification)
            seen.append(notification)

        return emitted


def check_spending_limits(
    stores: RecordStores,
    user_id: str,
    policy: Optional[NotificationPolicy] = None,
    now: Optional[datetime] = None,
    today: Optional[date] = None
) -> List[Notification]:
    """
    Recompute limit progress for a user and persist any new budget alerts.

    Call this after every mutation of the user's expenses or limits.

    Returns:
        The notifications that were added
    """
    policy = policy or NotificationPolicy()
    now = ensure_utc(now or utc_now())
    expenses = stores.expenses.get_all(user_id)
    limits = stores.limits.get_all(user_id)
    progress = calculate_limit_progress(expenses, limits, today)

    emitted = policy.evaluate(user_id, progress, stores.notifications.get_all(user_id), now)
    for notification in emitted:
        stores.notifications.add(notification)
    if emitted:
        logger.info(f"Raised {len(emitted)} budget alert(s) for user {user_id}")
    return emitted


refresh_derived_views = check_spending_limits


class NotificationCenter:
    """Listing and read-state transitions for a user's notifications."""

    def __init__(self, store: NotificationStore):
        self.store = store

    def notify(
        self,
        user_id: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO
    ) -> Notification:
        """Record a notification triggered directly by a user action."""
        notification = Notification(
            id=new_record_id(),
            user_id=user_id,
            message=message,
            type=NotificationType.parse(notification_type),
            read=False,
            created_at=utc_now(),
        )
        self.store.add(notification)
        return notification

    def list_notifications(self, user_id: str, read: Optional[bool] = None) -> List[Notification]:
        """
        List notifications newest first.

        Args:
            user_id: Owner
            read: True for read only, False for unread only, None for all
        """
        notifications = self.store.get_all(user_id)
        if read is None:
            return notifications
        return [n for n in notifications if bool(n.read) == read]

    def unread_count(self, user_id: str) -> int:
        return len(self.list_notifications(user_id, read=False))

    def mark_as_read(self, user_id: str, notification_id: str) -> None:
        """Mark one of the user's notifications read. Unknown or foreign ids are ignored."""
        if self.store.get_owned(user_id, notification_id) is None:
            logger.debug(f"Notification {notification_id} not found for user {user_id}")
            return
        self.store.mark_as_read(notification_id)

    def mark_all_as_read(self, user_id: str) -> int:
        changed = self.store.mark_all_as_read(user_id)
        logger.info(f"Marked {changed} notification(s) read for user {user_id}")
        return changed
