"""Configuration for the insights event pipeline."""
from __future__ import annotations

from functools import lru_cache
import logging
from typing import Annotated, List, Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger("insights.config")


class Settings(BaseSettings):
    """Connection settings, usually loaded from ``INSIGHTS_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INSIGHTS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    account_id: int = Field(default=0, ge=0, description="Collector account identifier.")
    app_id: int = Field(default=0, ge=0, description="Optional application identifier attached to every event.")
    insert_key: str = Field(default="", description="API key sent in the X-Insert-Key header.")
    collector_host: str = Field(
        default="insights-collector.newrelic.com",
        description="Host name of the event collection endpoint.",
    )
    collector_scheme: Literal["http", "https"] = Field(default="https", description="URL scheme for the collector.")
    event_type: str = Field(default="Transaction", description="Value of the eventType field on new events.")
    send_interval_seconds: float = Field(default=60.0, gt=0, description="How often pending events are batched.")
    send_queue_size: int = Field(
        default=20,
        ge=1,
        description="Undelivered batches kept for resend; interval * size is the outage tolerated before dropping.",
    )
    max_events_per_call: int = Field(default=1000, ge=1, description="Collector limit on events per call.")
    max_size_per_call: int = Field(default=5_000_000, ge=16, description="Collector limit on bytes per call.")
    flush_threshold: float = Field(
        default=0.9,
        gt=0,
        lt=1,
        description="Fraction of the per-call limits at which a batch is flushed early.",
    )
    http_timeout_seconds: float = Field(default=10.0, gt=0, description="Timeout for delivery requests.")
    shutdown_http_timeout_seconds: float = Field(
        default=2.0,
        gt=0,
        description="Timeout for delivery requests made while shutting down.",
    )
    event_buffer_size: int = Field(default=10, ge=1, description="Events buffered between producers and the batcher.")
    query_params_to_skip: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Query parameters never recorded by the request middleware.",
    )
    flatten_posts: bool = Field(
        default=False,
        description="Record each key of a JSON POST body separately instead of one body value.",
    )
    flatten_style: Literal["dot", "rails"] = Field(default="dot", description="Key style for flattened POST bodies.")
    log_level: str = Field(default="INFO", description="Application log level.")

    @field_validator("query_params_to_skip", mode="before")
    def _split_params(cls, value: str | list[str]) -> list[str]:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @model_validator(mode="after")
    def _check_timeouts(self) -> "Settings":
        if self.shutdown_http_timeout_seconds > self.http_timeout_seconds:
            logger.warning(
                "Shutdown timeout %ss is longer than the regular timeout %ss",
                self.shutdown_http_timeout_seconds,
                self.http_timeout_seconds,
            )
        return self

    @property
    def events_url(self) -> str:
        return f"{self.collector_scheme}://{self.collector_host}/v1/accounts/{self.account_id}/events"


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings loaded from the environment."""

    settings = Settings()
    if not settings.insert_key:
        logger.warning("INSIGHTS_INSERT_KEY is not set; the collector will reject deliveries")
    return settings
