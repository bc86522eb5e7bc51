"""Clients for external systems."""

from order_books.clients.order_source import (
    AuthenticationError,
    MalformedPageError,
    OrderSourceClient,
    OrderSourceError,
    RateLimitError,
    TransientFetchError,
)

__all__ = [
    "OrderSourceClient",
    "OrderSourceError",
    "AuthenticationError",
    "TransientFetchError",
    "RateLimitError",
    "MalformedPageError",
]
