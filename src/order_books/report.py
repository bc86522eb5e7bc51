"""Report generation: fetch, classify, aggregate, export."""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from pathlib import Path

import structlog

from order_books.aggregation import ReportTotals, aggregate
from order_books.classifier import (
    ChargeBreakdown,
    ClassificationAnomaly,
    ExemptionPolicy,
    classify_order,
)
from order_books.clients.order_source import OrderSourceClient
from order_books.config import get_settings
from order_books.date_ranges import DatePreset, DateRange, resolve_preset, store_zone
from order_books.export import DetailRow, ExportedReport, export_report, format_amount
from order_books.ingestion import (
    CancellationToken,
    IngestionCancelled,
    IngestProgress,
    OrderIngestor,
    ProgressSink,
)
from order_books.models import Order

logger = structlog.get_logger(__name__)


class ReportAnomalyError(Exception):
    """Raised instead of producing a report when anomalies are not tolerated."""

    def __init__(self, anomalies: tuple[ClassificationAnomaly, ...]):
        super().__init__(f"{len(anomalies)} classification anomalies found")
        self.anomalies = anomalies


@dataclass(frozen=True)
class AccountingReport:
    """Everything computed for one date range."""

    date_range: DateRange
    totals: ReportTotals
    detail_rows: tuple[DetailRow, ...]
    anomalies: tuple[ClassificationAnomaly, ...] = ()

    def export(
        self, generated_at: datetime | None = None, limit: int | None = None
    ) -> ExportedReport:
        return export_report(
            self.totals, self.detail_rows, self.date_range, generated_at, limit
        )


def build_report(
    date_range: DateRange,
    orders: Iterable[Order],
    policy: ExemptionPolicy = ExemptionPolicy.FLAG_OR_ZERO_TAX,
    tz: tzinfo | None = None,
) -> AccountingReport:
    """Classify and aggregate already-fetched orders.

    ``tz`` is the store timezone the detail rows are dated in; it should be
    the zone the orders were filtered with.
    """
    classified: list[tuple[Order, ChargeBreakdown]] = [
        (order, classify_order(order, policy)) for order in orders
    ]
    totals = aggregate(classified)
    rows = tuple(
        DetailRow.from_classified(order, breakdown, tz)
        for order, breakdown in classified
        if order.is_realized_sale
    )
    anomalies = tuple(a for _, breakdown in classified for a in breakdown.anomalies)
    return AccountingReport(
        date_range=date_range, totals=totals, detail_rows=rows, anomalies=anomalies
    )


class ReportService:
    """Produces an AccountingReport for a date range from the order source."""

    def __init__(
        self,
        client: OrderSourceClient,
        ingestor: OrderIngestor | None = None,
        policy: ExemptionPolicy | None = None,
        fail_on_anomaly: bool | None = None,
        timezone: tzinfo | None = None,
    ):
        settings = get_settings()
        if timezone is None:
            timezone = ingestor.timezone if ingestor else store_zone(settings.store_timezone)
        self._timezone = timezone
        self._ingestor = ingestor or OrderIngestor(client, timezone=timezone)
        self._policy = policy or ExemptionPolicy(settings.tax_exemption_policy)
        self._fail_on_anomaly = (
            fail_on_anomaly if fail_on_anomaly is not None else settings.fail_on_anomaly
        )
        self._logger = logger.bind(component="report_service")

    async def generate(
        self,
        date_range: DateRange,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> AccountingReport:
        """Fetch and compute a fresh report. Nothing is cached between calls.

        Fetch errors propagate unchanged; no partial report is built.
        """
        orders = await self._ingestor.fetch(date_range, progress, cancel_token)
        report = build_report(date_range, orders, self._policy, self._timezone)

        for anomaly in report.anomalies:
            self._logger.warning(
                "classification_anomaly",
                order_id=anomaly.order_id,
                kind=anomaly.kind.value,
                field=anomaly.field,
                raw_value=anomaly.raw_value,
            )
        if report.anomalies and self._fail_on_anomaly:
            raise ReportAnomalyError(report.anomalies)

        self._logger.info(
            "report_generated",
            orders=report.totals.order_count,
            net_sales=str(report.totals.net_sales),
            anomalies=len(report.anomalies),
        )
        return report


class ReportSession:
    """Keeps at most one report run in flight.

    A new request cancels the previous one, whose caller then gets
    ``IngestionCancelled`` instead of a stale report.
    """

    def __init__(self, service: ReportService):
        self._service = service
        self._current: tuple[CancellationToken, asyncio.Task[AccountingReport]] | None = None

    @property
    def in_flight(self) -> bool:
        return self._current is not None and not self._current[1].done()

    def cancel(self) -> None:
        if self._current is not None:
            token, task = self._current
            token.cancel()
            task.cancel()
            self._current = None

    async def request(
        self, date_range: DateRange, progress: ProgressSink | None = None
    ) -> AccountingReport:
        self.cancel()
        token = CancellationToken()
        task = asyncio.create_task(self._service.generate(date_range, progress, token))
        self._current = (token, task)
        try:
            return await task
        except asyncio.CancelledError:
            if token.cancelled:
                raise IngestionCancelled("Superseded by a newer report request") from None
            raise
        finally:
            if self._current is not None and self._current[1] is task:
                self._current = None


def _print_progress(progress: IngestProgress) -> None:
    if progress.is_complete:
        print(f"Loaded {progress.loaded} orders in {progress.page} page(s)")
    else:
        print(f"  {progress.loaded} orders loaded (page {progress.page})")


def print_summary(report: AccountingReport, detail_limit: int) -> None:
    """Print the report to the console, showing at most ``detail_limit`` orders."""
    totals = report.totals
    print(f"\n{'=' * 60}")
    print(f"Accounting Report: {report.date_range.label}")
    print("=" * 60)
    lines = [
        ("Orders", str(totals.order_count)),
        ("Gross Sales", format_amount(totals.gross_sales)),
        ("Discounts", format_amount(totals.discounts, subtracted=True)),
        ("Net Sales", format_amount(totals.net_sales)),
        ("Taxable Sales", format_amount(totals.taxable_sales)),
        ("Tax-Exempt Sales", format_amount(totals.tax_exempt_sales)),
        ("Sales Tax Collected", format_amount(totals.sales_tax_collected)),
        ("Tips", format_amount(totals.tips)),
        ("Processing Fees", format_amount(totals.processing_fees, subtracted=True)),
        ("Refunds", format_amount(totals.refunds, subtracted=True)),
        ("Net Bank Deposit", format_amount(totals.net_deposit)),
    ]
    width = max(len(label) for label, _ in lines)
    for label, value in lines:
        print(f"  {label.ljust(width)}  {value:>14}")

    rows = report.detail_rows
    if rows:
        print(f"\nOrder Details ({len(rows)})")
        print("-" * 60)
        for row in rows[:detail_limit]:
            tax = "Exempt" if row.tax_exempt else format_amount(row.tax)
            print(
                f"  #{row.order_id} {row.created_at:%Y-%m-%d} {row.customer[:20]:<20}"
                f" {format_amount(row.total):>10} tax {tax:>8}"
            )
        if len(rows) > detail_limit:
            print(
                f"  Showing first {detail_limit} orders. "
                f"Export CSV for complete data ({len(rows)} total orders)."
            )

    if report.anomalies:
        print(f"\n{len(report.anomalies)} data anomalies (amounts counted as found):")
        for anomaly in report.anomalies:
            print(f"  - {anomaly.describe()}")


def _parse_date(value: str) -> date:
    return date.fromisoformat(value)


async def main() -> int:
    """Generate an accounting report from the command line.

    Usage:
        # This month so far, CSV written to the current directory
        python -m order_books.report

        # A fixed period
        python -m order_books.report --start 2024-01-01 --end 2024-03-31

        # Last month, print only
        python -m order_books.report --preset last-month --no-export
    """
    import argparse

    from order_books.clients.order_source import OrderSourceError, TransientFetchError
    from order_books.config import configure_logging

    configure_logging()
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Accounting report from order records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                      # This month so far
  %(prog)s --preset last-month                  # Whole previous month
  %(prog)s --start 2024-01-01 --end 2024-03-31  # Custom period
        """,
    )
    parser.add_argument(
        "--preset",
        choices=[p.value.replace("_", "-") for p in DatePreset],
        default="this-month",
        help="Report period (default: this-month)",
    )
    parser.add_argument("--start", type=_parse_date, help="Custom start date (YYYY-MM-DD)")
    parser.add_argument("--end", type=_parse_date, help="Custom end date (YYYY-MM-DD)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("."),
        help="Directory for the CSV file (default: current directory)",
    )
    parser.add_argument(
        "--no-export", action="store_true", help="Print the summary without writing a CSV"
    )
    parser.add_argument(
        "--exemption-policy",
        choices=[p.value for p in ExemptionPolicy],
        default=settings.tax_exemption_policy,
        help="How tax-exempt sales are identified",
    )

    args = parser.parse_args()

    if (args.start is None) != (args.end is None):
        parser.error("--start and --end must be given together")
    if args.start is not None:
        try:
            date_range = DateRange.custom(args.start, args.end)
        except ValueError as e:
            parser.error(str(e))
    else:
        date_range = resolve_preset(args.preset.replace("-", "_"))

    logger.info("report_requested", start=str(date_range.start), end=str(date_range.end))

    try:
        async with OrderSourceClient() as client:
            service = ReportService(client, policy=ExemptionPolicy(args.exemption_policy))
            report = await service.generate(date_range, progress=_print_progress)
    except TransientFetchError as e:
        logger.error("report_fetch_failed", error=str(e))
        print(f"\nFailed to fetch orders: {e}. Please run the command again to retry.")
        return 1
    except (OrderSourceError, ReportAnomalyError) as e:
        logger.error("report_failed", error=str(e))
        print(f"\nReport not generated: {e}")
        return 1

    print_summary(report, settings.detail_row_limit)

    if not args.no_export:
        exported = report.export(generated_at=datetime.now())
        args.output_dir.mkdir(parents=True, exist_ok=True)
        path = args.output_dir / exported.filename
        path.write_bytes(exported.content)
        print(f"\nExported {path}")

    return 0


def run() -> None:
    """Console script entry point."""
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    run()
