"""Configuration module for order books."""

from order_books.config.logging import configure_logging
from order_books.config.settings import FlatSettings, get_settings

__all__ = ["FlatSettings", "get_settings", "configure_logging"]
