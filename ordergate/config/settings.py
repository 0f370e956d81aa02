"""
Configuration management with Pydantic validation.

Loads settings from YAML config file and environment variables.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class BridgeConfig(BaseModel):
    """MT5 bridge REST API configuration."""

    base_url: str = "http://localhost:8080/api"
    request_timeout_sec: float = Field(default=10.0, ge=1.0, le=60.0)
    bar_poll_interval_sec: float = Field(default=1.0, ge=0.1, le=60.0)


class RunConfig(BaseModel):
    """Runtime mode configuration."""

    dry_run: bool = Field(default=True, validation_alias="RUN_DRY_RUN")

    model_config = {
        "populate_by_name": True,
    }


class InstrumentConfig(BaseModel):
    """The single instrument this process trades."""

    symbol: str = "EURUSD"
    period_seconds: int = Field(default=60, ge=1, le=7 * 24 * 60 * 60)
    history_bars: int = Field(default=100, ge=2, le=5000)


class IndicatorConfig(BaseModel):
    """Momentum indicator parameters."""

    fast_period: int = Field(default=12, ge=2, le=100)
    slow_period: int = Field(default=26, ge=3, le=200)
    signal_period: int = Field(default=9, ge=2, le=100)
    volume_sma_period: int = Field(default=20, ge=2, le=200)

    @field_validator("slow_period")
    @classmethod
    def validate_slow_period(cls, v: int, info) -> int:
        fast = info.data.get("fast_period", 12)
        if v <= fast:
            raise ValueError(f"slow_period ({v}) must exceed fast_period ({fast})")
        return v


class TrendConfig(BaseModel):
    """Trend confirmation rules."""

    strict_confirmation: bool = True
    macd_confirmation: bool = True
    check_market_structure: bool = False
    structure_window: int = Field(default=10, ge=3, le=100)
    structure_bias_lookback: int = Field(default=5, ge=2, le=50)


class RiskConfig(BaseModel):
    """Risk sizing configuration - contains hard limits."""

    risk_per_trade: float = Field(default=0.02, gt=0.0, le=0.1)
    risk_reward_ratio: float = Field(default=2.0, gt=0.0, le=10.0)
    stop_loss_buffer: float = Field(default=0.002, gt=0.0)
    max_position_size: float = Field(default=10.0, gt=0.0)
    stop_anchor: Literal["entry", "previous_extreme"] = "entry"


class DecisionConfig(BaseModel):
    """Trade proposal engine configuration."""

    strategy: Literal["trend_following", "simple_threshold", "user_order_approval"] = (
        "user_order_approval"
    )
    entry_price_source: Literal["close", "open"] = "close"
    duplicate_tolerance: float = Field(default=0.001, ge=0.0)
    recent_proposal_limit: int = Field(default=100, ge=1, le=10_000)
    macd_strength_scale: float = Field(default=10.0, ge=0.0)
    # Simple threshold strategy bands
    buy_above: float | None = None
    sell_below: float | None = None


class ApprovalConfig(BaseModel):
    """Delayed-execution approval of manually placed orders."""

    scan_interval_sec: int = Field(default=3, ge=1, le=600)
    decision_second: int = Field(default=45, ge=0)
    decision_window_sec: int = Field(default=5, ge=1, le=60)
    decision_tick_sec: float = Field(default=1.0, gt=0.0, le=10.0)
    cleanup_interval_sec: int = Field(default=10, ge=1, le=3600)
    status_interval_sec: int = Field(default=60, ge=5, le=3600)
    max_order_hold_sec: int = Field(default=300, ge=1)
    auto_pause_orders: bool = False
    auto_cancel_orders: bool = False
    cancel_on_expiry: bool = True
    price_tolerance: float = Field(default=0.0005, ge=0.0)
    neutral_buy_advantage: float = Field(default=0.0002, ge=0.0)
    neutral_sell_advantage: float = Field(default=0.0002, ge=0.0)
    price_history_size: int = Field(default=10, ge=1, le=1000)
    # Signed percentages, most extreme first
    strong_bullish_threshold: float = 0.5
    bullish_threshold: float = 0.1
    bearish_threshold: float = -0.1
    strong_bearish_threshold: float = -0.5
    system_markers: list[str] = Field(default_factory=lambda: ["AUTO", "SYSTEM"])

    @model_validator(mode="after")
    def validate_threshold_order(self) -> "ApprovalConfig":
        ordered = (
            self.strong_bullish_threshold
            > self.bullish_threshold
            > self.bearish_threshold
            > self.strong_bearish_threshold
        )
        if not ordered:
            raise ValueError(
                "thresholds must satisfy strong_bullish > bullish > bearish > strong_bearish"
            )
        return self


class StorageConfig(BaseModel):
    """Storage paths configuration."""

    ledger_path: str = "./data/ledger"
    logs_path: str = "./logs"


class MonitoringConfig(BaseModel):
    """Monitoring and logging configuration."""

    metrics_enabled: bool = True
    metrics_port: int = Field(default=9090, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    error_log_max_bytes: int = Field(default=5_000_000, ge=100_000, le=50_000_000)
    error_log_backup_count: int = Field(default=3, ge=1, le=20)


class Settings(BaseSettings):
    """Main application settings."""

    run: RunConfig = Field(default_factory=RunConfig)
    bridge_api_token: str = Field(default="", alias="MT5_BRIDGE_TOKEN")

    bridge: BridgeConfig = Field(default_factory=BridgeConfig)
    instrument: InstrumentConfig = Field(default_factory=InstrumentConfig)
    indicators: IndicatorConfig = Field(default_factory=IndicatorConfig)
    trend: TrendConfig = Field(default_factory=TrendConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    decision: DecisionConfig = Field(default_factory=DecisionConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "env_nested_delimiter": "__",
        "populate_by_name": True,
    }

    @model_validator(mode="after")
    def validate_decision_second(self) -> "Settings":
        period = self.instrument.period_seconds
        if not 0 <= self.approval.decision_second < period:
            raise ValueError(
                f"approval.decision_second ({self.approval.decision_second}) "
                f"must be in [0, {period})"
            )
        return self

    def validate_for_trading(self) -> list[str]:
        """Validate settings are suitable for live trading. Returns list of errors."""
        errors = []
        if not self.run.dry_run and not self.bridge.base_url:
            errors.append("bridge.base_url not set")
        if self.risk.risk_per_trade > 0.05:
            errors.append("risk_per_trade exceeds safe limit of 5%")
        if self.decision.strategy == "simple_threshold":
            if self.decision.buy_above is None or self.decision.sell_below is None:
                errors.append("simple_threshold strategy needs buy_above and sell_below")
        if self.approval.max_order_hold_sec < self.approval.scan_interval_sec:
            errors.append("max_order_hold_sec shorter than scan_interval_sec")
        return errors


def load_settings(config_path: str | Path | None = None) -> Settings:
    """
    Load settings from YAML config file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file values
    3. Default values
    """
    config_data = {}

    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", "config.yaml")

    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config_data = yaml.safe_load(f) or {}

    env_dry_run = os.environ.get("RUN_DRY_RUN")
    if env_dry_run is not None:
        config_data.setdefault("run", {})["dry_run"] = env_dry_run

    env_path = config_file.parent / ".env"
    settings = Settings(**config_data, _env_file=env_path)

    return settings


def create_default_config(path: str | Path = "config.yaml") -> None:
    """Create a default configuration file."""
    default_config = {
        "run": {"dry_run": True},
        "bridge": {
            "base_url": "http://localhost:8080/api",
            "request_timeout_sec": 10.0,
            "bar_poll_interval_sec": 1.0,
        },
        "instrument": {
            "symbol": "EURUSD",
            "period_seconds": 60,
            "history_bars": 100,
        },
        "indicators": {
            "fast_period": 12,
            "slow_period": 26,
            "signal_period": 9,
        },
        "trend": {
            "strict_confirmation": True,
            "macd_confirmation": True,
            "check_market_structure": False,
        },
        "risk": {
            "risk_per_trade": 0.02,
            "risk_reward_ratio": 2.0,
            "stop_loss_buffer": 0.002,
            "max_position_size": 10.0,
        },
        "decision": {
            "strategy": "user_order_approval",
            "entry_price_source": "close",
            "duplicate_tolerance": 0.001,
        },
        "approval": {
            "scan_interval_sec": 3,
            "decision_second": 45,
            "decision_window_sec": 5,
            "cleanup_interval_sec": 10,
            "max_order_hold_sec": 300,
            "auto_pause_orders": False,
            "auto_cancel_orders": False,
            "cancel_on_expiry": True,
            "price_tolerance": 0.0005,
            "neutral_buy_advantage": 0.0002,
            "neutral_sell_advantage": 0.0002,
            "strong_bullish_threshold": 0.5,
            "bullish_threshold": 0.1,
            "bearish_threshold": -0.1,
            "strong_bearish_threshold": -0.5,
        },
        "storage": {
            "ledger_path": "./data/ledger",
            "logs_path": "./logs",
        },
        "monitoring": {
            "metrics_enabled": True,
            "metrics_port": 9090,
            "log_level": "INFO",
        },
    }

    with open(path, "w") as f:
        yaml.dump(default_config, f, default_flow_style=False, sort_keys=False)
