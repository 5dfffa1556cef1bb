"""
Report generator module for formatting analytics data.

This module formats the derived views into text tables for the CLI,
renders dashboard charts, and produces the CSV and JSON exports.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import matplotlib
matplotlib.use('Agg')  # Non-interactive backend for CLI
import matplotlib.pyplot as plt
import pandas as pd

from analytics import CategoryTotal, LimitProgress, MonthlyTrend, SpendingSummary
from exceptions import ReportError
from utils import quantize_money, utc_now

logger = logging.getLogger(__name__)

CSV_HEADER = ["Date", "Category", "Description", "Amount"]


def expenses_to_dataframe(expenses: Sequence[Any]) -> pd.DataFrame:
    """
    Build a display DataFrame from expense records.

    Amounts are converted to float; exact sums come from the analytics module.
    """
    columns = ["id", "date", "category", "description", "amount", "created_at"]
    rows = [
        {
            "id": e.id,
            "date": e.date,
            "category": str(e.category),
            "description": e.description,
            "amount": float(e.amount),
            "created_at": e.created_at,
        }
        for e in expenses
    ]
    return pd.DataFrame(rows, columns=columns)


def category_totals_to_dataframe(totals: Sequence[CategoryTotal]) -> pd.DataFrame:
    """Category totals sorted by amount with their share of the overall total."""
    df = pd.DataFrame(
        [{"category": str(row.category), "total": float(row.amount)} for row in totals],
        columns=["category", "total"],
    )
    if df.empty:
        return df.assign(percentage=pd.Series(dtype=float))
    grand_total = df["total"].sum()
    df["percentage"] = df["total"] / grand_total * 100 if grand_total else 0.0
    return df.sort_values("total", ascending=False).reset_index(drop=True)


def _csv_quote(text: str) -> str:
    return '"' + text.replace('"', '""') + '"'


def export_expenses_csv(expenses: Sequence[Any]) -> str:
    """
    Render expenses as CSV, newest-created first.

    The description column is always quoted; amounts carry two decimals.

    Raises:
        ReportError: If there are no expenses to export
    """
    if not expenses:
        raise ReportError("No expenses to export")

    # Built by hand: only the description column is quoted, which neither
    # DataFrame.to_csv nor csv.writer can express per column.
    ordered = sorted(expenses, key=lambda e: e.created_at, reverse=True)
    lines = [",".join(CSV_HEADER)]
    for expense in ordered:
        lines.append(",".join([
            expense.date.isoformat(),
            str(expense.category),
            _csv_quote(expense.description),
            f"{quantize_money(expense.amount)}",
        ]))
    return "\n".join(lines)


def build_json_export(
    user: Mapping[str, Any],
    expenses: Sequence[Any],
    export_date: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Bundle a user's data for download.

    Raises:
        ReportError: If there are no expenses to export
    """
    if not expenses:
        raise ReportError("No data to export")

    total = sum((e.amount for e in expenses), Decimal("0"))
    return {
        "user": dict(user),
        "expenses": [e.to_dict() for e in expenses],
        "exportDate": (export_date or utc_now()).isoformat(),
        "summary": {
            "totalExpenses": len(expenses),
            "totalAmount": float(quantize_money(total)),
            "averagePerExpense": float(quantize_money(total / len(expenses))),
        },
    }


def write_export(content: str, output_path: Path, report_name: str = "export") -> None:
    """
    Write export content to a file.

    Raises:
        ReportError: If the file cannot be written
    """
    try:
        Path(output_path).write_text(content, encoding="utf-8")
        logger.info(f"Exported {report_name} to {output_path}")
    except OSError as e:
        logger.error(f"Failed to export {report_name}: {e}")
        raise ReportError(
            f"Failed to export {report_name}",
            details={"path": str(output_path)},
            original_error=e
        ) from e


def dump_json_export(bundle: Dict[str, Any]) -> str:
    return json.dumps(bundle, indent=2)


class ReportGenerator:
    """
    Generate formatted reports from the derived views.

    Supports text tables for the CLI and matplotlib charts for export.
    """

    def __init__(self):
        """Initialize the report generator."""
        logger.info("Report generator initialized")

    def format_currency(self, amount: Any) -> str:
        """
        Format amount as currency string.

        Args:
            amount: Amount to format

        Returns:
            Formatted currency string
        """
        return f"${Decimal(str(amount)):,.2f}"

    def format_percentage(self, percentage: Any) -> str:
        """Format percentage string."""
        return f"{float(percentage):.1f}%"

    def generate_summary_report(self, summary: SpendingSummary, monthly_budget: Optional[Any] = None) -> str:
        """
        Generate text report for the current month's summary.

        Args:
            summary: SpendingSummary from analytics
            monthly_budget: Optional overall budget to compare against

        Returns:
            Formatted text report
        """
        change = summary.monthly_change_pct
        direction = "up" if change > 0 else "down" if change < 0 else "flat"
        report_lines = [
            "=" * 80,
            "THIS MONTH",
            "=" * 80,
            "",
            f"Total Spent:            {self.format_currency(summary.total_this_month):>20}",
            f"Average Per Day:        {self.format_currency(summary.avg_daily):>20}",
            f"Last Month:             {self.format_currency(summary.last_month_total):>20}",
            f"Change vs Last Month:   {self.format_percentage(abs(change)):>20}  ({direction})",
        ]
        if monthly_budget is not None:
            remaining = Decimal(str(monthly_budget)) - summary.total_this_month
            report_lines.append(f"Budget Remaining:       {self.format_currency(remaining):>20}")
        report_lines.append("=" * 80)
        return "\n".join(report_lines)

    def generate_category_report(self, totals: Sequence[CategoryTotal], title: str = "all time") -> str:
        """
        Generate text report for category breakdown.

        Args:
            totals: Category totals from analytics
            title: Label for the period covered

        Returns:
            Formatted text report
        """
        df = category_totals_to_dataframe(totals)
        if df.empty:
            return f"\nNo spending data found for: {title}\n"

        report_lines = [
            "=" * 80,
            f"CATEGORY BREAKDOWN ({title})",
            "=" * 80,
            "",
            f"{'Category':<30} {'Total':>15} {'Percentage':>12}",
            "-" * 80
        ]

        for _, row in df.iterrows():
            report_lines.append(
                f"{row['category']:<30} "
                f"{self.format_currency(row['total']):>15} "
                f"{self.format_percentage(row['percentage']):>12}"
            )

        total = sum((row.amount for row in totals), Decimal("0"))
        report_lines.extend([
            "-" * 80,
            f"{'TOTAL':<30} {self.format_currency(total):>15} {'100.0%':>12}",
            "=" * 80
        ])

        return "\n".join(report_lines)

    def generate_trend_report(self, trends: Sequence[MonthlyTrend]) -> str:
        """Generate text report for the six-month trend."""
        report_lines = [
            "=" * 60,
            "MONTHLY TRENDS",
            "=" * 60,
            "",
            f"{'Month':<12} {'Spent':>15}",
            "-" * 60
        ]
        for row in trends:
            report_lines.append(f"{row.month:<12} {self.format_currency(row.amount):>15}")

        amounts = pd.Series([float(row.amount) for row in trends], dtype=float)
        average = amounts.mean() if not amounts.empty else 0.0
        report_lines.extend([
            "-" * 60,
            f"{'AVERAGE':<12} {self.format_currency(round(average, 2)):>15}",
            "=" * 60
        ])
        return "\n".join(report_lines)

    def generate_limit_report(self, progress: Sequence[LimitProgress]) -> str:
        """Generate text report for spending limit progress."""
        if not progress:
            return "\nNo spending limits set.\n"

        report_lines = [
            "=" * 100,
            "SPENDING LIMITS (month to date)",
            "=" * 100,
            f"{'Category':<25} {'Spent':>15} {'Limit':>15} {'Used %':>10}  Status",
            "-" * 100
        ]
        for row in progress:
            if row.is_over_budget:
                status = f"Over budget by {self.format_currency(row.spent - row.limit)}"
            else:
                status = f"{self.format_currency(row.remaining)} remaining"
            report_lines.append(
                f"{str(row.category):<25} "
                f"{self.format_currency(row.spent):>15} "
                f"{self.format_currency(row.limit):>15} "
                f"{self.format_percentage(row.percentage):>10}  {status}"
            )
        report_lines.append("=" * 100)
        return "\n".join(report_lines)

    def generate_expense_table(self, expenses: Sequence[Any], title: str = "EXPENSES") -> str:
        """Generate a text table of expenses with their total."""
        df = expenses_to_dataframe(expenses)
        if df.empty:
            return "\nNo expenses found.\n"

        report_lines = [
            "=" * 110,
            title,
            "=" * 110,
            f"{'ID':<38} {'Date':<12} {'Category':<20} {'Description':<25} {'Amount':>10}",
            "-" * 110
        ]
        for _, row in df.iterrows():
            report_lines.append(
                f"{row['id']:<38} {row['date'].isoformat():<12} {row['category']:<20} "
                f"{row['description'][:25]:<25} {self.format_currency(row['amount']):>10}"
            )
        total = sum((e.amount for e in expenses), Decimal("0"))
        report_lines.extend([
            "-" * 110,
            f"{len(expenses)} expense(s), total {self.format_currency(total)}",
            "=" * 110
        ])
        return "\n".join(report_lines)

    def generate_notification_list(self, notifications: Sequence[Any], unread_count: int) -> str:
        """Generate the notification listing with an unread badge."""
        report_lines = [f"Notifications ({unread_count} unread)", "-" * 80]
        if not notifications:
            report_lines.append("No notifications.")
        for notification in notifications:
            marker = " " if notification.read else "*"
            stamp = notification.created_at.strftime("%Y-%m-%d %H:%M")
            report_lines.append(
                f"{marker} [{notification.type.value:<7}] {stamp}  {notification.message}  ({notification.id})"
            )
        return "\n".join(report_lines)

    def create_category_pie_chart(
        self,
        totals: Sequence[CategoryTotal],
        output_path: Optional[Path] = None,
        title: str = "Spending by Category"
    ) -> Optional[BytesIO]:
        """
        Create pie chart for category breakdown.

        Args:
            totals: Category totals
            output_path: Optional file path to save chart
            title: Chart title

        Returns:
            BytesIO object if output_path is None, otherwise None
        """
        df = category_totals_to_dataframe(totals)
        if df.empty:
            logger.warning("No data to plot pie chart")
            return None

        fig, ax = plt.subplots(figsize=(8, 8))
        ax.pie(df['total'], labels=df['category'], autopct='%1.1f%%', startangle=90)
        ax.set_title(title)
        ax.axis('equal')
        return self._save_figure(fig, output_path, "category pie chart")

    def create_trend_chart(
        self,
        trends: Sequence[MonthlyTrend],
        output_path: Optional[Path] = None,
        title: str = "Monthly Spending"
    ) -> Optional[BytesIO]:
        """Create bar chart for the six-month trend."""
        fig, ax = plt.subplots(figsize=(10, 5))
        ax.bar([row.month for row in trends], [float(row.amount) for row in trends], color='#3B82F6')
        ax.set_title(title)
        ax.set_ylabel('Amount ($)')
        ax.grid(axis='y', alpha=0.3)
        return self._save_figure(fig, output_path, "trend chart")

    def _save_figure(self, fig, output_path: Optional[Path], name: str) -> Optional[BytesIO]:
        try:
            fig.tight_layout()
            if output_path:
                fig.savefig(output_path, dpi=100)
                logger.info(f"Saved {name} to {output_path}")
                return None
            buf = BytesIO()
            fig.savefig(buf, format='png', dpi=100)
            buf.seek(0)
            return buf
        finally:
            plt.close(fig)


def render_dashboard(
    generator: ReportGenerator,
    summary: SpendingSummary,
    category_totals: List[CategoryTotal],
    trends: List[MonthlyTrend],
    recent: Sequence[Any],
    tips: Sequence[str],
    monthly_budget: Optional[Any] = None
) -> str:
    """Assemble the full dashboard text from its sections."""
    sections = [
        generator.generate_summary_report(summary, monthly_budget),
        generator.generate_category_report(category_totals, title="this month"),
        generator.generate_trend_report(trends),
        generator.generate_limit_report(summary.limits_progress),
        generator.generate_expense_table(recent, title="RECENT EXPENSES"),
        "Tips:\n" + "\n".join(f"  - {tip}" for tip in tips),
    ]
    return "\n\n".join(sections)
