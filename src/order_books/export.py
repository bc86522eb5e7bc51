"""CSV export of a report for the accountant."""

from __future__ import annotations

import csv
import io
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, tzinfo
from decimal import ROUND_HALF_UP, Decimal

from order_books.aggregation import ReportTotals
from order_books.classifier import ChargeBreakdown
from order_books.date_ranges import DateRange, to_store_time
from order_books.models import Order

CENT = Decimal("0.01")
MEDIA_TYPE = "text/csv"

DETAIL_HEADERS = [
    "Order ID",
    "Date",
    "Customer",
    "Subtotal",
    "Discount",
    "Sales Tax",
    "Tip",
    "Processing Fee",
    "Total",
]


@dataclass(frozen=True)
class DetailRow:
    """One realized-sale order in the order-detail table."""

    order_id: int | str
    created_at: datetime
    customer: str
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    tax_exempt: bool
    tip: Decimal
    processing_fee: Decimal
    total: Decimal

    @classmethod
    def from_classified(
        cls, order: Order, breakdown: ChargeBreakdown, tz: tzinfo | None = None
    ) -> DetailRow:
        """Build a row, dating it in the store timezone ``tz``."""
        return cls(
            order_id=order.id,
            created_at=to_store_time(order.created_at, tz),
            customer=order.customer_name,
            subtotal=breakdown.subtotal,
            discount=breakdown.discount,
            tax=breakdown.tax,
            tax_exempt=breakdown.tax_exempt,
            tip=breakdown.tip,
            processing_fee=breakdown.processing_fee,
            total=breakdown.total,
        )


@dataclass(frozen=True)
class ExportedReport:
    """A rendered report ready to be written or served."""

    filename: str
    content: bytes
    media_type: str = MEDIA_TYPE


def format_amount(amount: Decimal, subtracted: bool = False) -> str:
    """Format to exactly two decimals, parenthesizing anything that reduces a total.

    A ``subtracted`` line shows its effect on the total: a negative deduction
    adds to it, so it is printed without parentheses.
    """
    value = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if subtracted:
        value = -value
    if value < 0 or (subtracted and value == 0):
        return f"({abs(value):.2f})"
    # abs() drops the sign of a negative zero
    return f"{abs(value):.2f}"


def report_filename(date_range: DateRange) -> str:
    return (
        f"accounting-report-{date_range.start:%Y-%m-%d}"
        f"-to-{date_range.end:%Y-%m-%d}.csv"
    )


def _summary_rows(totals: ReportTotals) -> list[list[str]]:
    return [
        ["SALES SUMMARY"],
        ["Total Orders", str(totals.order_count)],
        ["Gross Sales (before discounts)", format_amount(totals.gross_sales)],
        ["Discounts Given", format_amount(totals.discounts, subtracted=True)],
        ["Net Sales", format_amount(totals.net_sales)],
        [],
        ["SALES TAX REPORT (For State Remittance)"],
        ["Taxable Sales", format_amount(totals.taxable_sales)],
        ["Tax-Exempt Sales", format_amount(totals.tax_exempt_sales)],
        ["Tax-Exempt Orders", str(totals.tax_exempt_order_count)],
        ["SALES TAX COLLECTED", format_amount(totals.sales_tax_collected)],
        [],
        ["TIPS (For Payroll)"],
        ["Tips Collected", format_amount(totals.tips)],
        [],
        ["PAYMENT PROCESSING"],
        ["Processing Fees (Expense)", format_amount(totals.processing_fees)],
        ["Refunds", format_amount(totals.refunds)],
        [],
        ["CASH FLOW SUMMARY"],
        ["Total Collected from Customers", format_amount(totals.total_collected)],
        ["Less: Processing Fees", format_amount(totals.processing_fees, subtracted=True)],
        ["Less: Refunds", format_amount(totals.refunds, subtracted=True)],
        ["NET BANK DEPOSIT", format_amount(totals.net_deposit)],
    ]


def _detail_cells(row: DetailRow) -> list[str]:
    return [
        str(row.order_id),
        f"{row.created_at:%Y-%m-%d}",
        row.customer,
        format_amount(row.subtotal),
        format_amount(row.discount),
        "Exempt" if row.tax_exempt else format_amount(row.tax),
        format_amount(row.tip),
        format_amount(row.processing_fee),
        format_amount(row.total),
    ]


def render_csv(
    totals: ReportTotals,
    rows: Sequence[DetailRow],
    date_range: DateRange,
    generated_at: datetime | None = None,
    limit: int | None = None,
) -> bytes:
    """Render the accountant CSV.

    Every cell is quoted because customer names are free text. The output
    depends only on the arguments; pass ``generated_at`` to stamp the header.
    """
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")

    writer.writerow(["ACCOUNTING SUMMARY"])
    writer.writerow(["Report Period", date_range.label])
    if generated_at is not None:
        writer.writerow(["Generated", f"{generated_at:%Y-%m-%d %H:%M:%S}"])
    writer.writerow([])

    writer.writerows(_summary_rows(totals))
    writer.writerow([])
    writer.writerow([])

    shown = rows if limit is None else rows[:limit]
    writer.writerow(["ORDER DETAILS"])
    writer.writerow(DETAIL_HEADERS)
    writer.writerows(_detail_cells(row) for row in shown)
    if len(shown) < len(rows):
        writer.writerow([f"Showing first {len(shown)} of {len(rows)} orders"])

    return buffer.getvalue().encode("utf-8")


def export_report(
    totals: ReportTotals,
    rows: Sequence[DetailRow],
    date_range: DateRange,
    generated_at: datetime | None = None,
    limit: int | None = None,
) -> ExportedReport:
    """Render the CSV and pair it with its canonical filename."""
    return ExportedReport(
        filename=report_filename(date_range),
        content=render_csv(totals, rows, date_range, generated_at, limit),
    )
