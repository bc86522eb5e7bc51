"""Configuration settings for the order books reporting engine."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

ExemptionPolicyName = Literal["flag_or_zero_tax", "flag_only", "zero_tax_only"]


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Order source (WooCommerce-style REST API)
    order_source_url: str = Field(
        default="http://localhost:8080/wp-json/wc/v3",
        validation_alias="ORDER_SOURCE_URL",
    )
    order_source_consumer_key: str = Field(
        ..., validation_alias="ORDER_SOURCE_CONSUMER_KEY"
    )
    order_source_consumer_secret: SecretStr = Field(
        ..., validation_alias="ORDER_SOURCE_CONSUMER_SECRET"
    )
    order_source_timeout: float = Field(
        default=300.0, validation_alias="ORDER_SOURCE_TIMEOUT"
    )
    order_source_max_retries: int = Field(
        default=3, validation_alias="ORDER_SOURCE_MAX_RETRIES"
    )

    # Ingestion
    ingest_page_size: int = Field(default=100, validation_alias="INGEST_PAGE_SIZE")
    ingest_max_pages: int = Field(default=50, validation_alias="INGEST_MAX_PAGES")
    ingest_page_delay_seconds: float = Field(
        default=0.1, validation_alias="INGEST_PAGE_DELAY_SECONDS"
    )
    store_timezone: str = Field(default="UTC", validation_alias="STORE_TIMEZONE")

    # Reporting
    tax_exemption_policy: ExemptionPolicyName = Field(
        default="flag_or_zero_tax", validation_alias="TAX_EXEMPTION_POLICY"
    )
    detail_row_limit: int = Field(default=100, validation_alias="DETAIL_ROW_LIMIT")
    fail_on_anomaly: bool = Field(default=False, validation_alias="FAIL_ON_ANOMALY")

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
