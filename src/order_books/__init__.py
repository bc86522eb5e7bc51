"""Order Books - financial reconciliation and accountant reports for order platforms."""

__version__ = "0.1.0"

from order_books.aggregation import ReportTotals, TotalsAccumulator, aggregate
from order_books.classifier import (
    AnomalyKind,
    ChargeBreakdown,
    ClassificationAnomaly,
    ExemptionPolicy,
    TipSource,
    classify_order,
)
from order_books.clients import (
    MalformedPageError,
    OrderSourceClient,
    OrderSourceError,
    TransientFetchError,
)
from order_books.config import configure_logging, get_settings
from order_books.date_ranges import DatePreset, DateRange, resolve_preset
from order_books.export import DetailRow, ExportedReport, export_report, render_csv
from order_books.ingestion import (
    CancellationToken,
    IngestionCancelled,
    IngestProgress,
    OrderIngestor,
)
from order_books.models import FeeLine, Order, OrderStatus, OrderTag
from order_books.report import (
    AccountingReport,
    ReportAnomalyError,
    ReportService,
    ReportSession,
    build_report,
)

__all__ = [
    # Version
    "__version__",
    # Orders
    "Order",
    "OrderStatus",
    "FeeLine",
    "OrderTag",
    # Classification
    "classify_order",
    "ChargeBreakdown",
    "ClassificationAnomaly",
    "AnomalyKind",
    "ExemptionPolicy",
    "TipSource",
    # Aggregation
    "aggregate",
    "ReportTotals",
    "TotalsAccumulator",
    # Ingestion
    "OrderIngestor",
    "IngestProgress",
    "CancellationToken",
    "IngestionCancelled",
    # Order source
    "OrderSourceClient",
    "OrderSourceError",
    "TransientFetchError",
    "MalformedPageError",
    # Date ranges
    "DateRange",
    "DatePreset",
    "resolve_preset",
    # Export
    "DetailRow",
    "ExportedReport",
    "export_report",
    "render_csv",
    # Reports
    "AccountingReport",
    "ReportService",
    "ReportSession",
    "ReportAnomalyError",
    "build_report",
    # Config
    "get_settings",
    "configure_logging",
]
