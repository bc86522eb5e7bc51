"""Paged ingestion of orders for a report window.

The order source filters by ``after``/``before``, but ``before`` is exclusive
and only roughly timezone aware. The ingestor therefore asks for one extra day
and then re-filters every record against the exact window using the order's
own timestamp. Only that client-side filter decides what is in the report.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta, tzinfo
from typing import Any

import structlog

from order_books.clients.order_source import MalformedPageError, OrderSourceClient
from order_books.config import get_settings
from order_books.date_ranges import DateRange, store_zone
from order_books.models import Order

logger = structlog.get_logger(__name__)

SERVER_WINDOW_BUFFER = timedelta(days=1)


class IngestionCancelled(Exception):
    """The fetch was superseded before it finished."""

    pass


@dataclass(frozen=True)
class IngestProgress:
    """Progress reported after each page and once more on completion."""

    loaded: int
    page: int
    is_complete: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"loaded": self.loaded, "page": self.page, "isComplete": self.is_complete}


ProgressSink = Callable[[IngestProgress], None]


class CancellationToken:
    """Signal checked between pages so a superseded fetch stops early."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise IngestionCancelled("Order fetch was cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep, waking early and raising if cancelled meanwhile."""
        if seconds > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except TimeoutError:
                pass
        self.raise_if_cancelled()


class OrderIngestor:
    """Fetches all orders in a DateRange, one page at a time."""

    def __init__(
        self,
        client: OrderSourceClient,
        page_size: int | None = None,
        max_pages: int | None = None,
        page_delay: float | None = None,
        timezone: tzinfo | None = None,
    ):
        settings = get_settings()
        self._client = client
        self._page_size = page_size or settings.ingest_page_size
        self._max_pages = max_pages or settings.ingest_max_pages
        self._page_delay = (
            page_delay if page_delay is not None else settings.ingest_page_delay_seconds
        )
        self._timezone = timezone or store_zone(settings.store_timezone)
        self._logger = logger.bind(component="order_ingestor")

    @property
    def timezone(self) -> tzinfo:
        """Store timezone used to place aware order timestamps in the window."""
        return self._timezone

    @staticmethod
    def server_window(date_range: DateRange) -> tuple[str, str]:
        """Return the ``(after, before)`` query bounds, widened by one day."""
        after = date_range.start.replace(microsecond=0)
        before = (date_range.end + SERVER_WINDOW_BUFFER).replace(microsecond=0)
        return after.isoformat(), before.isoformat()

    async def fetch(
        self,
        date_range: DateRange,
        progress: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[Order]:
        """Fetch every order created within ``date_range``.

        Pages are requested strictly in sequence: the next page is only
        requested once the previous one came back full. Any fetch error
        aborts the whole operation and nothing gathered so far is returned.

        Raises:
            TransientFetchError: Network or backend failure.
            MalformedPageError: A page could not be read as order records.
            IngestionCancelled: ``cancel_token`` was cancelled mid-fetch.
        """
        token = cancel_token or CancellationToken()
        after, before = self.server_window(date_range)
        self._logger.info("ingest_started", after=after, before=before)

        orders: list[Order] = []
        seen_ids: set[int | str] = set()
        page = 1

        while True:
            token.raise_if_cancelled()
            records = await self._client.list_orders(
                after=after,
                before=before,
                page=page,
                per_page=self._page_size,
            )
            token.raise_if_cancelled()

            for order in self._parse_page(records, page):
                if order.id in seen_ids:
                    self._logger.debug("duplicate_order_skipped", order_id=order.id, page=page)
                    continue
                seen_ids.add(order.id)
                orders.append(order)

            self._logger.debug("page_fetched", page=page, count=len(records), loaded=len(orders))
            if progress:
                progress(IngestProgress(loaded=len(orders), page=page))

            if len(records) < self._page_size:
                break
            if page >= self._max_pages:
                self._logger.warning("page_cap_reached", max_pages=self._max_pages)
                break

            page += 1
            await token.sleep(self._page_delay)

        if progress:
            progress(IngestProgress(loaded=len(orders), page=page, is_complete=True))

        in_range = [o for o in orders if date_range.contains(o.created_at, self._timezone)]
        self._logger.info(
            "ingest_completed",
            pages=page,
            fetched=len(orders),
            in_range=len(in_range),
        )
        return in_range

    @staticmethod
    def _parse_page(records: list[dict[str, Any]], page: int) -> list[Order]:
        parsed: list[Order] = []
        for record in records:
            try:
                parsed.append(Order.from_api(record))
            except (KeyError, TypeError, ValueError) as e:
                raise MalformedPageError(
                    f"Unreadable order record on page {page}: {e}",
                    details={"record_id": record.get("id")},
                ) from e
        return parsed
