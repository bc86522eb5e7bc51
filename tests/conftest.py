"""Pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing settings
os.environ.setdefault("ORDER_SOURCE_CONSUMER_KEY", "ck_test")
os.environ.setdefault("ORDER_SOURCE_CONSUMER_SECRET", "cs_test")


@pytest.fixture
def mock_httpx_client():
    """Create a mock httpx AsyncClient."""
    client = AsyncMock()
    client.request = AsyncMock()
    client.aclose = AsyncMock()
    return client


def make_order_payload(
    order_id: int,
    date_created: str = "2024-01-15T12:00:00",
    status: str = "completed",
    total: str = "0.00",
    total_tax: str = "0.00",
    discount_total: str = "0.00",
    fee_lines: list[dict] | None = None,
    meta_data: list[dict] | None = None,
    first_name: str = "Test",
    last_name: str = "Customer",
) -> dict:
    """Build an order record shaped like the order source returns it."""
    return {
        "id": order_id,
        "date_created": date_created,
        "status": status,
        "total": total,
        "total_tax": total_tax,
        "discount_total": discount_total,
        "fee_lines": fee_lines or [],
        "meta_data": meta_data or [],
        "billing": {"first_name": first_name, "last_name": last_name},
    }


@pytest.fixture
def make_payload():
    """Factory for order-source records."""
    return make_order_payload


@pytest.fixture
def order_a_payload():
    """Completed order with an 8.00 tax and a 10.00 tip fee line."""
    return make_order_payload(
        101,
        total="100.00",
        total_tax="8.00",
        fee_lines=[{"name": "Tip", "total": "10.00"}],
    )


@pytest.fixture
def order_b_payload():
    """Completed, flagged tax-exempt order carrying a processing fee."""
    return make_order_payload(
        102,
        total="50.00",
        total_tax="0.00",
        meta_data=[
            {"key": "_stripe_fee", "value": "1.50"},
            {"key": "tax_exempt", "value": "yes"},
        ],
        first_name="Acme",
        last_name="School District",
    )


@pytest.fixture
def order_c_payload():
    """Refunded order."""
    return make_order_payload(103, status="refunded", total="30.00", total_tax="2.40")
