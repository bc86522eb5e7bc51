"""Read-only order records as delivered by the order source.

Monetary fields are kept exactly as the API returned them (usually strings
such as ``"100.00"``). Parsing and defaulting happen in the classifier so that
unparseable values can be reported as anomalies instead of vanishing here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

RawAmount = str | int | float | None


class OrderStatus(str, Enum):
    """Lifecycle states an order can be in at the order source."""

    PENDING = "pending"
    PROCESSING = "processing"
    ON_HOLD = "on-hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    FAILED = "failed"


# Orders in these states count as sales; matched by equality with plain strings too
REALIZED_STATUSES: tuple[OrderStatus, ...] = (OrderStatus.COMPLETED, OrderStatus.PROCESSING)


@dataclass(frozen=True)
class FeeLine:
    """A named fee attached to an order (tips are often encoded this way)."""

    name: str
    total: RawAmount = None


@dataclass(frozen=True)
class OrderTag:
    """A free-form key/value attribute on an order (``meta_data`` upstream)."""

    key: str
    value: Any = None


@dataclass(frozen=True)
class Order:
    """An order as exposed by the order source."""

    id: int | str
    created_at: datetime
    status: OrderStatus | str
    total: RawAmount = None
    total_tax: RawAmount = None
    discount_total: RawAmount = None
    fee_lines: tuple[FeeLine, ...] = ()
    tags: tuple[OrderTag, ...] = ()
    customer_name: str = ""
    # Canonical tip field; absent on orders created before it existed
    tip_total: RawAmount = None

    @property
    def is_realized_sale(self) -> bool:
        return self.status in REALIZED_STATUSES

    @property
    def is_refund(self) -> bool:
        return self.status == OrderStatus.REFUNDED

    def find_tag(self, *keys: str) -> OrderTag | None:
        """Return the first tag whose key is one of ``keys``."""
        for tag in self.tags:
            if tag.key in keys:
                return tag
        return None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> Order:
        """Build an Order from an order-source JSON record.

        Raises:
            KeyError: If ``id`` or ``date_created`` is missing.
            ValueError: If ``date_created`` is not ISO-8601.
        """
        status_raw = str(payload.get("status", ""))
        try:
            status: OrderStatus | str = OrderStatus(status_raw)
        except ValueError:
            status = status_raw

        billing = payload.get("billing")
        if not isinstance(billing, dict):
            billing = {}
        first = billing.get("first_name") or ""
        last = billing.get("last_name") or ""

        fee_lines = tuple(
            FeeLine(name=str(line.get("name") or ""), total=line.get("total"))
            for line in payload.get("fee_lines") or []
            if isinstance(line, dict)
        )
        tags = tuple(
            OrderTag(key=str(meta.get("key") or ""), value=meta.get("value"))
            for meta in payload.get("meta_data") or []
            if isinstance(meta, dict)
        )

        return cls(
            id=payload["id"],
            created_at=parse_timestamp(payload["date_created"]),
            status=status,
            total=payload.get("total"),
            total_tax=payload.get("total_tax"),
            discount_total=payload.get("discount_total"),
            fee_lines=fee_lines,
            tags=tags,
            customer_name=f"{first} {last}".strip(),
            tip_total=payload.get("tip_total"),
        )


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp from the order source."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid timestamp: {value!r}")
    return datetime.fromisoformat(value)
