"""Tests for report generation, sessions and the command line."""

import asyncio
from datetime import date, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from order_books.aggregation import ReportTotals
from order_books.classifier import AnomalyKind, ExemptionPolicy
from order_books.clients.order_source import TransientFetchError
from order_books.config import configure_logging
from order_books.date_ranges import DateRange
from order_books.ingestion import IngestionCancelled
from order_books.models import Order
from order_books.report import (
    AccountingReport,
    ReportAnomalyError,
    ReportService,
    ReportSession,
    build_report,
    main,
)

JANUARY = DateRange.custom(date(2024, 1, 1), date(2024, 1, 31))
FEBRUARY = DateRange.custom(date(2024, 2, 1), date(2024, 2, 29))


@pytest.fixture
def worked_orders(order_a_payload, order_b_payload, order_c_payload):
    return [Order.from_api(p) for p in (order_a_payload, order_b_payload, order_c_payload)]


def _service(orders, **kwargs):
    ingestor = MagicMock()
    ingestor.fetch = AsyncMock(return_value=orders)
    ingestor.timezone = timezone.utc
    kwargs.setdefault("policy", ExemptionPolicy.FLAG_OR_ZERO_TAX)
    kwargs.setdefault("fail_on_anomaly", False)
    return ReportService(MagicMock(), ingestor=ingestor, **kwargs), ingestor


class TestBuildReport:
    """Tests for build_report."""

    def test_worked_example(self, worked_orders):
        report = build_report(JANUARY, worked_orders)

        assert report.totals.net_sales == Decimal("132.00")
        assert report.totals.taxable_sales == Decimal("82.00")
        assert report.totals.tax_exempt_sales == Decimal("50.00")
        assert report.totals.net_deposit == Decimal("118.50")
        assert [row.order_id for row in report.detail_rows] == [101, 102]
        assert report.anomalies == ()

    def test_anomalies_collected(self, make_payload):
        orders = [Order.from_api(make_payload(7, total="12,50"))]

        report = build_report(JANUARY, orders)

        assert len(report.anomalies) == 1
        assert report.anomalies[0].kind is AnomalyKind.UNPARSEABLE_AMOUNT
        assert report.totals.total_collected == Decimal("0")

    def test_export_uses_report_range(self, worked_orders):
        exported = build_report(JANUARY, worked_orders).export()

        assert exported.filename == "accounting-report-2024-01-01-to-2024-01-31.csv"
        assert b'"NET BANK DEPOSIT","118.50"' in exported.content


class TestReportService:
    """Tests for ReportService."""

    @pytest.mark.asyncio
    async def test_generate(self, worked_orders):
        service, ingestor = _service(worked_orders)
        progress = MagicMock()

        report = await service.generate(JANUARY, progress=progress)

        assert report.totals.order_count == 2
        ingestor.fetch.assert_awaited_once_with(JANUARY, progress, None)

    @pytest.mark.asyncio
    async def test_policy_is_applied(self, worked_orders):
        service, _ = _service(worked_orders, policy=ExemptionPolicy.ZERO_TAX_ONLY)

        report = await service.generate(JANUARY)

        # Order B has zero tax, so it stays exempt under either reading
        assert report.totals.tax_exempt_order_count == 1

    @pytest.mark.asyncio
    async def test_detail_rows_dated_in_ingestor_timezone(self, make_payload):
        orders = [
            Order.from_api(
                make_payload(1, date_created="2024-02-01T05:00:00+00:00", total="10.00")
            )
        ]
        ingestor = MagicMock()
        ingestor.fetch = AsyncMock(return_value=orders)
        ingestor.timezone = timezone(timedelta(hours=-7))
        service = ReportService(MagicMock(), ingestor=ingestor, fail_on_anomaly=False)

        report = await service.generate(JANUARY)

        assert report.detail_rows[0].created_at.date() == date(2024, 1, 31)

    @pytest.mark.asyncio
    async def test_fail_on_anomaly(self, make_payload):
        orders = [Order.from_api(make_payload(7, total="n/a"))]
        service, _ = _service(orders, fail_on_anomaly=True)

        with pytest.raises(ReportAnomalyError) as exc_info:
            await service.generate(JANUARY)

        assert exc_info.value.anomalies[0].order_id == 7

    @pytest.mark.asyncio
    async def test_fetch_error_propagates(self):
        service, ingestor = _service([])
        ingestor.fetch.side_effect = TransientFetchError("Request failed: timeout")

        with pytest.raises(TransientFetchError):
            await service.generate(JANUARY)

    @pytest.mark.asyncio
    async def test_each_call_refetches(self, worked_orders):
        service, ingestor = _service(worked_orders)

        first = await service.generate(JANUARY)
        second = await service.generate(JANUARY)

        assert ingestor.fetch.await_count == 2
        assert first == second


class _BlockingService:
    """Service whose first run waits until released."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.tokens = []

    async def generate(self, date_range, progress=None, cancel_token=None):
        self.tokens.append(cancel_token)
        if len(self.tokens) == 1:
            self.started.set()
            await self.release.wait()
        return AccountingReport(date_range=date_range, totals=ReportTotals(), detail_rows=())


class TestReportSession:
    """Tests for superseding in-flight report requests."""

    @pytest.mark.asyncio
    async def test_new_request_supersedes_previous(self):
        service = _BlockingService()
        session = ReportSession(service)

        first = asyncio.create_task(session.request(JANUARY))
        await service.started.wait()
        assert session.in_flight

        report = await session.request(FEBRUARY)

        assert report.date_range == FEBRUARY
        assert service.tokens[0].cancelled
        with pytest.raises(IngestionCancelled):
            await first
        assert not session.in_flight

    @pytest.mark.asyncio
    async def test_single_request_completes(self):
        service = _BlockingService()
        service.release.set()
        session = ReportSession(service)

        report = await session.request(JANUARY)

        assert report.date_range == JANUARY
        assert not session.in_flight


class TestMain:
    """Tests for the command-line entry point."""

    @pytest.mark.asyncio
    async def test_writes_csv(self, tmp_path, worked_orders):
        report = build_report(JANUARY, worked_orders)
        argv = [
            "order-books",
            "--start", "2024-01-01",
            "--end", "2024-01-31",
            "--output-dir", str(tmp_path),
        ]

        with patch("sys.argv", argv), \
             patch("order_books.report.OrderSourceClient", MagicMock()), \
             patch("order_books.report.ReportService") as mock_service:
            mock_service.return_value.generate = AsyncMock(return_value=report)
            exit_code = await main()

        assert exit_code == 0
        written = tmp_path / "accounting-report-2024-01-01-to-2024-01-31.csv"
        assert written.exists()
        assert b'"Generated"' in written.read_bytes()

    @pytest.mark.asyncio
    async def test_fetch_failure_suggests_retry(self, capsys):
        argv = ["order-books", "--preset", "last-month", "--no-export"]

        with patch("sys.argv", argv), \
             patch("order_books.report.OrderSourceClient", MagicMock()), \
             patch("order_books.report.ReportService") as mock_service:
            mock_service.return_value.generate = AsyncMock(
                side_effect=TransientFetchError("Request failed: timeout")
            )
            exit_code = await main()

        assert exit_code == 1
        assert "run the command again" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_start_without_end_rejected(self):
        with patch("sys.argv", ["order-books", "--start", "2024-01-01"]):
            with pytest.raises(SystemExit):
                await main()


def test_configure_logging_configures_structlog():
    configure_logging(level="WARNING", format="json")

    assert structlog.is_configured()
