"""
Application configuration.

Loads settings from environment variables and .env file.
All configuration is centralized here. List fields take JSON arrays.
Settings are read once at process start; the pipeline never re-reads them.
"""

from datetime import timedelta
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from marketwatch.domain.anomaly.alerts import AlertThresholds
from marketwatch.domain.anomaly.mechanical_filter import FilterThresholds
from marketwatch.domain.anomaly.risk_scoring import ScoringConfig


class Settings(BaseSettings):
    """Application settings loaded from environment.

    Attributes:
        project_name: Display name for the API.
        version: Current API version string.
        debug: Enable debug mode. Must be False in production.
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
        database_url: SQLAlchemy URL of the job store.
        run_pipeline_in_api: Start the watcher/worker loops inside the API process.

    The remaining fields group into loop cadence, universe selection,
    Layer 1 / Layer 2 thresholds, notification thresholds, and the
    external HTTP collaborators (market data, market caps, LLM, webhooks).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MARKETWATCH_",
        extra="ignore",
    )

    project_name: str = "MarketWatch"
    version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    rate_limit_default: str = "60/minute"
    rate_limit_heavy: str = "6/minute"

    database_url: str = "sqlite:///marketwatch.db"
    run_pipeline_in_api: bool = False

    # --- Loop cadence ---
    scan_interval_seconds: float = 60.0
    worker_poll_interval_seconds: float = 5.0
    worker_instances: int = Field(default=1, ge=1)
    reaper_interval_seconds: float = 60.0
    stale_job_timeout_minutes: float = 10.0
    dedup_window_minutes: float = 15.0

    # --- Universe ---
    tracked_symbol_count: int = Field(default=50, ge=1)
    tracked_symbols: list[str] = Field(default_factory=list)
    quote_asset: str = "USDT"
    fetch_concurrency: int = Field(default=4, ge=1)
    candle_limit: int = 30
    average_volume_period: int = 20
    rsi_window: int = 14
    orderbook_band: float = 0.02
    orderbook_depth_limit: int = 100

    # --- Layer 1: mechanical filter ---
    price_change_threshold: float = 2.0
    volume_multiplier_threshold: float = 3.0
    market_cap_floor: float = 10_000_000

    # --- Layer 2: risk scoring ---
    rsi_overbought: float = 85.0
    rsi_weight: int = 20
    orderbook_thin_ratio: float = 0.33
    orderbook_weight: int = 30
    volume_to_cap_threshold: float = 0.2
    volume_to_cap_weight: int = 15
    panic_buy_threshold: float = 5.0
    panic_buy_weight: int = 20

    # --- Notifications ---
    warning_threshold: int = 75
    opportunity_min: int = 60
    favorable_scenarios: list[str] = Field(
        default_factory=lambda: ["organic", "breakout", "accumulation", "healthy"]
    )
    webhook_urls: list[str] = Field(default_factory=list)
    webhook_timeout_seconds: float = 10.0

    # --- Market data ---
    market_data_base_url: str = "https://api.binance.com"
    market_cap_base_url: str = "https://api.coingecko.com"
    market_cap_ttl_seconds: float = 600.0
    market_cap_retry_seconds: float = 60.0
    http_timeout_seconds: float = 10.0

    # --- Qualitative analysis (LLM) ---
    llm_base_url: str = "https://api.groq.com/openai/v1"
    llm_api_key: Optional[str] = None
    llm_model: str = "llama-3.3-70b-versatile"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 300
    llm_timeout_seconds: float = 20.0
    llm_max_retries: int = Field(default=3, ge=1)
    llm_backoff_factor: float = 1.0

    @property
    def dedup_window(self) -> timedelta:
        return timedelta(minutes=self.dedup_window_minutes)

    @property
    def stale_job_timeout(self) -> timedelta:
        return timedelta(minutes=self.stale_job_timeout_minutes)

    def filter_thresholds(self) -> FilterThresholds:
        """Return the Layer 1 thresholds."""
        return FilterThresholds(
            price_change_threshold=self.price_change_threshold,
            volume_multiplier_threshold=self.volume_multiplier_threshold,
            market_cap_floor=self.market_cap_floor,
        )

    def scoring_config(self) -> ScoringConfig:
        """Return the Layer 2 thresholds and weights."""
        return ScoringConfig(
            rsi_overbought=self.rsi_overbought,
            rsi_weight=self.rsi_weight,
            orderbook_thin_ratio=self.orderbook_thin_ratio,
            orderbook_weight=self.orderbook_weight,
            volume_to_cap_threshold=self.volume_to_cap_threshold,
            volume_to_cap_weight=self.volume_to_cap_weight,
            panic_buy_threshold=self.panic_buy_threshold,
            panic_buy_weight=self.panic_buy_weight,
        )

    def alert_thresholds(self) -> AlertThresholds:
        """Return the notification thresholds."""
        return AlertThresholds(
            warning_threshold=self.warning_threshold,
            opportunity_min=self.opportunity_min,
            favorable_scenarios=tuple(self.favorable_scenarios),
        )


settings = Settings()
