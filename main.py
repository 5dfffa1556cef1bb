"""
Main module for the personal expense tracker CLI.

This module wires configuration, logging and the record stores together
and routes subcommands:
1. expense / limit management
2. dashboard and limit status reports
3. notifications
4. CSV / JSON export
5. receipt scanning and budgeting advice

After every command that changes expenses or limits, derived views are
recomputed and budget alerts are evaluated.
"""

import argparse
import asyncio
import logging
import mimetypes
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from tabulate import tabulate

from advisor import AdviceContext, AdviceSettings, conversation_from_texts, generate_advice
from analytics import (
    calculate_monthly_trends,
    calculate_spending_summary,
    expenses_in_month,
    calculate_category_spending,
    generate_spending_tips,
    recent_expenses,
)
from budgeting import LimitManager
from config_manager import get_section, load_config
from database_ops import ExpenseCategory, LimitPeriod, RecordStores
from exceptions import ExpenseTrackerError
from expense_management import ExpenseFilter, ExpenseManager, validate_amount, validate_date
from notifications import NotificationCenter, NotificationPolicy, PolicySettings, refresh_derived_views
from ocr import ocr_timeout_from_config, recognizer_from_config, scan_receipt
from report_generator import (
    ReportGenerator,
    build_json_export,
    dump_json_export,
    export_expenses_csv,
    render_dashboard,
    write_export,
)
from utils import ensure_data_dir, resolve_connection_string, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)

CATEGORY_CHOICES = [c.value for c in ExpenseCategory]
PERIOD_CHOICES = [p.value for p in LimitPeriod]


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {}) or {}
    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    invalid_level = not isinstance(log_level, int)
    if invalid_level:
        log_level = logging.INFO
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = log_config.get("file")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )
    if invalid_level:
        logger.warning(f"Invalid log level '{level_name}', defaulting to INFO")


class App:
    """Command context: configuration, stores and managers for one user."""

    def __init__(self, config: dict, stores: RecordStores, user_id: str):
        self.config = config
        self.stores = stores
        self.user_id = user_id
        self.expenses = ExpenseManager(stores)
        self.limits = LimitManager(stores)
        self.notifications = NotificationCenter(stores.notifications)
        self.policy = NotificationPolicy(PolicySettings.from_config(config))
        self.reports = ReportGenerator()

    @property
    def monthly_budget(self) -> Optional[Decimal]:
        budget = get_section(self.config, "user").get("monthly_budget")
        return Decimal(str(budget)) if budget is not None else None

    def refresh(self) -> None:
        """Recompute derived views and raise any due budget alerts."""
        emitted = refresh_derived_views(self.stores, self.user_id, self.policy)
        for notification in emitted:
            print(notification.message)


def add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the expense history search options to a subcommand."""
    parser.add_argument("--search", type=str, help="Text in description or category")
    parser.add_argument("--category", type=str, choices=CATEGORY_CHOICES, help="Filter by category")
    parser.add_argument("--date-from", type=str, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--date-to", type=str, help="End date (YYYY-MM-DD)")
    parser.add_argument("--min-amount", type=str, help="Minimum amount")
    parser.add_argument("--max-amount", type=str, help="Maximum amount")


def filter_from_args(args: argparse.Namespace) -> ExpenseFilter:
    """Build an ExpenseFilter from the search options."""
    return ExpenseFilter(
        search=args.search,
        category=ExpenseCategory.parse(args.category) if args.category else None,
        date_from=validate_date(args.date_from) if args.date_from else None,
        date_to=validate_date(args.date_to) if args.date_to else None,
        min_amount=validate_amount(args.min_amount, field_name="min_amount") if args.min_amount else None,
        max_amount=validate_amount(args.max_amount, field_name="max_amount") if args.max_amount else None,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Personal expense tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument("--user", "-u", type=str, default="default", help="User id (default: default)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Expense command
    expense_parser = subparsers.add_parser("expense", aliases=["exp"], help="Manage expenses")
    expense_subparsers = expense_parser.add_subparsers(dest="expense_action", help="Expense actions")

    exp_add = expense_subparsers.add_parser("add", help="Add an expense")
    exp_add.add_argument("--amount", type=str, required=True, help="Amount")
    exp_add.add_argument("--category", type=str, required=True, choices=CATEGORY_CHOICES, help="Category")
    exp_add.add_argument("--description", type=str, required=True, help="Description")
    exp_add.add_argument("--date", type=str, help="Date (YYYY-MM-DD, default: today)")
    exp_add.add_argument("--receipt-url", type=str, help="Optional receipt link")
    exp_add.add_argument("--id", type=str, help="Explicit expense id")

    exp_list = expense_subparsers.add_parser("list", help="Search expense history")
    add_filter_arguments(exp_list)

    exp_update = expense_subparsers.add_parser("update", help="Update an expense")
    exp_update.add_argument("--id", type=str, required=True, help="Expense id")
    exp_update.add_argument("--amount", type=str, help="New amount")
    exp_update.add_argument("--category", type=str, choices=CATEGORY_CHOICES, help="New category")
    exp_update.add_argument("--description", type=str, help="New description")
    exp_update.add_argument("--date", type=str, help="New date (YYYY-MM-DD)")

    exp_delete = expense_subparsers.add_parser("delete", help="Delete an expense")
    exp_delete.add_argument("--id", type=str, required=True, help="Expense id")

    # Limit command
    limit_parser = subparsers.add_parser("limit", aliases=["lim"], help="Manage spending limits")
    limit_subparsers = limit_parser.add_subparsers(dest="limit_action", help="Limit actions")

    lim_add = limit_subparsers.add_parser("add", help="Create a spending limit")
    lim_add.add_argument("--category", type=str, required=True, choices=CATEGORY_CHOICES, help="Category")
    lim_add.add_argument("--amount", type=str, required=True, help="Limit amount")
    lim_add.add_argument("--period", type=str, default="monthly", choices=PERIOD_CHOICES, help="Period")

    limit_subparsers.add_parser("list", help="List spending limits")
    limit_subparsers.add_parser("status", help="Show month-to-date progress")

    lim_update = limit_subparsers.add_parser("update", help="Update a spending limit")
    lim_update.add_argument("--id", type=str, required=True, help="Limit id")
    lim_update.add_argument("--category", type=str, choices=CATEGORY_CHOICES, help="New category")
    lim_update.add_argument("--amount", type=str, help="New amount")
    lim_update.add_argument("--period", type=str, choices=PERIOD_CHOICES, help="New period")

    lim_delete = limit_subparsers.add_parser("delete", help="Delete a spending limit")
    lim_delete.add_argument("--id", type=str, required=True, help="Limit id")

    # Dashboard command
    dashboard_parser = subparsers.add_parser("dashboard", aliases=["dash"], help="Show the spending dashboard")
    dashboard_parser.add_argument("--chart-dir", type=str, help="Also save category and trend charts here")

    # Notifications command
    notif_parser = subparsers.add_parser("notifications", aliases=["notif"], help="Manage notifications")
    notif_subparsers = notif_parser.add_subparsers(dest="notif_action", help="Notification actions")
    notif_list = notif_subparsers.add_parser("list", help="List notifications")
    notif_list.add_argument("--unread", action="store_true", help="Only unread notifications")
    notif_read = notif_subparsers.add_parser("read", help="Mark one notification read")
    notif_read.add_argument("--id", type=str, required=True, help="Notification id")
    notif_subparsers.add_parser("read-all", help="Mark all notifications read")

    # Export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export expenses (search options narrow the CSV rows; JSON bundles everything)"
    )
    export_parser.add_argument("format", choices=["csv", "json"], help="Export format")
    export_parser.add_argument("--output", "-o", type=str, help="Output file (default: dated file name)")
    add_filter_arguments(export_parser)

    # Receipt command
    receipt_parser = subparsers.add_parser("receipt", help="Read an expense draft from a receipt image")
    receipt_parser.add_argument("--file", "-f", type=str, required=True, help="Receipt image")
    receipt_parser.add_argument("--save", action="store_true", help="Save the draft as an expense")

    # Advise command
    advise_parser = subparsers.add_parser("advise", aliases=["ask"], help="Ask for budgeting advice")
    advise_parser.add_argument(
        "--message",
        "-m",
        dest="messages",
        action="append",
        required=True,
        help="Conversation turn (repeat for a multi-turn history, user first)"
    )
    advise_parser.add_argument("--api-key", type=str, help="API key for the advice provider")

    return parser


def handle_expense_command(args: argparse.Namespace, app: App) -> None:
    """
    Handle expense management commands.

    Args:
        args: Parsed command-line arguments
        app: Command context
    """
    if args.expense_action == "add":
        expense = app.expenses.add_expense(
            app.user_id,
            amount=args.amount,
            category=args.category,
            description=args.description,
            expense_date=args.date,
            receipt_url=args.receipt_url,
            expense_id=args.id,
        )
        print(f"Expense added: ${expense.amount:.2f} for {expense.description} ({expense.id})")
        app.refresh()

    elif args.expense_action == "list":
        results = app.expenses.search_expenses(app.user_id, filter_from_args(args))
        print(app.reports.generate_expense_table(results))

    elif args.expense_action == "update":
        changes = {
            key: value
            for key, value in (
                ("amount", args.amount),
                ("category", args.category),
                ("description", args.description),
                ("date", args.date),
            )
            if value is not None
        }
        if not changes:
            print("Nothing to update", file=sys.stderr)
            sys.exit(1)
        app.expenses.update_expense(app.user_id, args.id, **changes)
        print(f"Expense {args.id} updated")
        app.refresh()

    elif args.expense_action == "delete":
        app.expenses.delete_expense(app.user_id, args.id)
        print(f"Expense {args.id} deleted")
        app.refresh()

    else:
        print("Specify an expense action: add, list, update, delete", file=sys.stderr)
        sys.exit(1)


def handle_limit_command(args: argparse.Namespace, app: App) -> None:
    """
    Handle spending limit commands.

    Args:
        args: Parsed command-line arguments
        app: Command context
    """
    if args.limit_action == "add":
        limit = app.limits.create_limit(app.user_id, args.category, args.amount, args.period)
        print(f"Created {limit.period.value} limit for '{limit.category.value}': ${limit.amount:.2f} ({limit.id})")
        app.refresh()

    elif args.limit_action == "list":
        limits = app.limits.list_limits(app.user_id)
        if not limits:
            print("No spending limits set.")
        else:
            table_data = [
                [limit.id, limit.category.value, limit.period.value, f"${limit.amount:,.2f}"]
                for limit in limits
            ]
            print(tabulate(
                table_data,
                headers=["ID", "Category", "Period", "Amount"],
                tablefmt="grid",
                showindex=False
            ))

    elif args.limit_action == "status":
        print(app.reports.generate_limit_report(app.limits.get_limit_progress(app.user_id)))

    elif args.limit_action == "update":
        app.limits.update_limit(app.user_id, args.id, category=args.category, amount=args.amount, period=args.period)
        print(f"Spending limit {args.id} updated")
        app.refresh()

    elif args.limit_action == "delete":
        app.limits.delete_limit(app.user_id, args.id)
        print(f"Spending limit {args.id} deleted")
        app.refresh()

    else:
        print("Specify a limit action: add, list, status, update, delete", file=sys.stderr)
        sys.exit(1)


def handle_dashboard_command(args: argparse.Namespace, app: App) -> None:
    """Print the dashboard, optionally saving charts."""
    today = date.today()
    expenses = app.expenses.list_expenses(app.user_id)
    limits = app.limits.list_limits(app.user_id)

    summary = calculate_spending_summary(expenses, limits, today)
    month_totals = calculate_category_spending(expenses_in_month(expenses, today))
    trends = calculate_monthly_trends(expenses, today)

    print(render_dashboard(
        app.reports,
        summary,
        month_totals,
        trends,
        recent_expenses(expenses),
        generate_spending_tips(expenses),
        app.monthly_budget,
    ))

    if args.chart_dir:
        chart_dir = Path(args.chart_dir)
        chart_dir.mkdir(parents=True, exist_ok=True)
        app.reports.create_category_pie_chart(month_totals, chart_dir / "categories.png")
        app.reports.create_trend_chart(trends, chart_dir / "trends.png")
        print(f"Charts saved to {chart_dir}")


def handle_notifications_command(args: argparse.Namespace, app: App) -> None:
    """Handle notification listing and read-state commands."""
    if args.notif_action in (None, "list"):
        read_filter = False if getattr(args, "unread", False) else None
        notifications = app.notifications.list_notifications(app.user_id, read=read_filter)
        print(app.reports.generate_notification_list(notifications, app.notifications.unread_count(app.user_id)))
    elif args.notif_action == "read":
        app.notifications.mark_as_read(app.user_id, args.id)
        print(f"Notification {args.id} marked as read")
    elif args.notif_action == "read-all":
        changed = app.notifications.mark_all_as_read(app.user_id)
        print(f"Marked {changed} notification(s) as read")


def handle_export_command(args: argparse.Namespace, app: App) -> None:
    """Export the user's expenses as CSV (search results) or JSON (all data)."""
    stamp = date.today().isoformat()

    if args.format == "csv":
        expenses = app.expenses.search_expenses(app.user_id, filter_from_args(args))
        content = export_expenses_csv(expenses)
        output = Path(args.output or f"expenses_{stamp}.csv")
    else:
        expenses = app.expenses.list_expenses(app.user_id)
        user = {"id": app.user_id, "monthlyBudget": float(app.monthly_budget) if app.monthly_budget else None}
        content = dump_json_export(build_json_export(user, expenses))
        output = Path(args.output or f"expense_data_{stamp}.json")

    write_export(content, output, report_name=f"{args.format} export")
    print(f"Exported {len(expenses)} expense(s) to {output}")


def handle_receipt_command(args: argparse.Namespace, app: App) -> None:
    """Scan a receipt image and optionally save the draft."""
    path = Path(args.file)
    if not path.exists():
        print(f"File not found: {path}", file=sys.stderr)
        sys.exit(1)

    content_type, _ = mimetypes.guess_type(path.name)
    content_type = content_type or "application/octet-stream"
    print("Processing receipt...")
    draft = asyncio.run(scan_receipt(
        path.read_bytes(),
        content_type=content_type,
        recognizer=recognizer_from_config(app.config),
        timeout_seconds=ocr_timeout_from_config(app.config),
    ))
    print(
        f"Receipt processed! Confidence: {draft.confidence * 100:.0f}%\n"
        f"  Vendor:   {draft.vendor}\n"
        f"  Amount:   ${draft.amount:.2f}\n"
        f"  Date:     {draft.date.isoformat()}\n"
        f"  Category: {draft.category.value}"
    )
    if args.save:
        expense = app.expenses.add_from_draft(app.user_id, draft)
        print(f"Expense added: ${expense.amount:.2f} for {expense.description} ({expense.id})")
        app.refresh()


def handle_advise_command(args: argparse.Namespace, app: App) -> None:
    """Ask the advice provider a question grounded in this month's figures."""
    settings = AdviceSettings.from_config(app.config, api_key=args.api_key)
    summary = calculate_spending_summary(
        app.expenses.list_expenses(app.user_id),
        app.limits.list_limits(app.user_id),
    )
    context = AdviceContext(summary=summary, monthly_budget=app.monthly_budget)
    reply = asyncio.run(generate_advice(conversation_from_texts(args.messages), context, settings))
    print(reply or "(no advice returned)")


def main(argv: Optional[list] = None) -> None:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle case where no command is provided
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config(Path(args.config))
    except ExpenseTrackerError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    # Ensure data directory exists before logging/database work
    try:
        ensure_data_dir(config)
    except OSError as exc:
        print(f"Failed to prepare data directory: {exc}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    try:
        stores = RecordStores.from_connection_string(resolve_connection_string(config))
        app = App(config, stores, args.user)
    except ExpenseTrackerError as e:
        logger.error(f"Failed to initialize: {e}")
        sys.exit(1)

    handlers = {
        "expense": handle_expense_command,
        "exp": handle_expense_command,
        "limit": handle_limit_command,
        "lim": handle_limit_command,
        "dashboard": handle_dashboard_command,
        "dash": handle_dashboard_command,
        "notifications": handle_notifications_command,
        "notif": handle_notifications_command,
        "export": handle_export_command,
        "receipt": handle_receipt_command,
        "advise": handle_advise_command,
        "ask": handle_advise_command,
    }

    try:
        handlers[args.command](args, app)
    except ExpenseTrackerError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        stores.db_manager.close()


if __name__ == "__main__":
    main()
