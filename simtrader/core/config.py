"""Core configuration management module."""
from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, ValidationInfo, field_validator

from simtrader.core.types import to_decimal


def _as_decimal(v: object) -> object:
    # YAML floats go through str() so 0.1 stays 0.1
    if isinstance(v, (float, int)) and not isinstance(v, bool):
        return to_decimal(v)
    return v


class SystemConfig(BaseModel):
    """System-level configuration."""

    model_config = ConfigDict(use_enum_values=True)

    name: str = "simtrader"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str | None = "logs"


class SimulationConfig(BaseModel):
    """Sizing, fee and order-placement parameters for one run."""

    model_config = ConfigDict(use_enum_values=True)

    symbol: str = "BTCUSDT"
    initial_capital: Decimal = Decimal("10000")
    fee_rate: Decimal = Decimal("0.001")
    position_size_percent: Decimal = Decimal("0.95")
    min_trade_amount: Decimal = Decimal("10")
    buy_buffer: Decimal = Decimal("0.001")
    sell_buffer: Decimal = Decimal("0.001")
    order_expiry_hours: int = 24
    max_fill_attempts: int | None = None
    progress_interval: int = 200

    @field_validator(
        "initial_capital", "fee_rate", "position_size_percent",
        "min_trade_amount", "buy_buffer", "sell_buffer",
        mode="before",
    )
    @classmethod
    def coerce_decimal(cls, v: object) -> object:
        return _as_decimal(v)

    @field_validator("initial_capital")
    @classmethod
    def validate_capital(cls, v: Decimal) -> Decimal:
        """Validate that initial capital is positive."""
        if v <= 0:
            raise ValueError("initial_capital must be positive")
        return v

    @field_validator("position_size_percent")
    @classmethod
    def validate_position_size(cls, v: Decimal, info: ValidationInfo) -> Decimal:
        """Entry size plus its commission must stay below the cash it is taken from."""
        if not 0 < v < 1:
            raise ValueError("position_size_percent must be in (0, 1)")
        fee_rate = info.data.get("fee_rate")
        if fee_rate is not None and v * (1 + fee_rate) >= 1:
            raise ValueError(
                f"position_size_percent {v} leaves no room for a {fee_rate} commission"
            )
        return v

    @field_validator("fee_rate", "buy_buffer", "sell_buffer")
    @classmethod
    def validate_rates(cls, v: Decimal) -> Decimal:
        """Validate that rates are between 0 and 1."""
        if not 0 <= v < 1:
            raise ValueError("Rate values must be between 0 and 1")
        return v

    @field_validator("min_trade_amount")
    @classmethod
    def validate_min_trade(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("min_trade_amount must not be negative")
        return v

    @field_validator("order_expiry_hours", "progress_interval")
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("max_fill_attempts")
    @classmethod
    def validate_attempts(cls, v: int | None) -> int | None:
        if v is not None and v <= 0:
            raise ValueError("max_fill_attempts must be positive or null")
        return v


class ExitStrategyConfig(BaseModel):
    """Exit-decision strategy parameters.

    Fractions throughout: ``take_profit: 0.2`` exits at +20 %.
    """

    model_config = ConfigDict(use_enum_values=True)

    type: Literal["fixed", "trailing", "technical", "combo", "partial"] = "fixed"
    name: str = ""
    take_profit: Decimal = Decimal("0.20")
    trailing_percent: Decimal = Decimal("0.05")
    min_profit: Decimal = Decimal("0.15")
    max_holding_days: int = 0
    partial_levels: list[tuple[Decimal, Decimal]] = [
        (Decimal("0.20"), Decimal("0.30")),
        (Decimal("0.40"), Decimal("0.40")),
        (Decimal("0.60"), Decimal("1.00")),
    ]

    @field_validator("take_profit", "trailing_percent", "min_profit", mode="before")
    @classmethod
    def coerce_decimal(cls, v: object) -> object:
        return _as_decimal(v)

    @field_validator("partial_levels", mode="before")
    @classmethod
    def coerce_levels(cls, v: object) -> object:
        if isinstance(v, list):
            return [
                tuple(_as_decimal(x) for x in level) if isinstance(level, (list, tuple)) else level
                for level in v
            ]
        return v

    @field_validator("take_profit", "trailing_percent")
    @classmethod
    def validate_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("value must be positive")
        return v

    @field_validator("min_profit")
    @classmethod
    def validate_min_profit(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("min_profit must not be negative")
        return v

    @field_validator("max_holding_days")
    @classmethod
    def validate_holding_days(cls, v: int) -> int:
        if v < 0:
            raise ValueError("max_holding_days must not be negative")
        return v

    @field_validator("partial_levels")
    @classmethod
    def validate_levels(cls, v: list[tuple[Decimal, Decimal]]) -> list[tuple[Decimal, Decimal]]:
        """Validate that levels are ascending and sell fractions are in (0, 1]."""
        previous: Decimal | None = None
        for profit, sell in v:
            if not 0 < sell <= 1:
                raise ValueError("sell fraction of each level must be in (0, 1]")
            if previous is not None and profit <= previous:
                raise ValueError("partial_levels must be strictly ascending by profit")
            previous = profit
        return v


class LiveFeedConfig(BaseModel):
    """Polling parameters for the live bar source."""

    model_config = ConfigDict(use_enum_values=True)

    exchange: str = "paper"
    base: str = "BTC"
    quote: str = "USDT"
    interval: str = "1h"
    poll_seconds: float = 60.0

    @field_validator("poll_seconds")
    @classmethod
    def validate_poll(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_seconds must be positive")
        return v


class ReportConfig(BaseModel):
    """Post-run report output."""

    model_config = ConfigDict(use_enum_values=True)

    enabled: bool = True
    results_dir: str = "results"
    recent_trades: int = 10


class Settings(BaseModel):
    """Root settings configuration."""

    model_config = ConfigDict(use_enum_values=True)

    system: SystemConfig = SystemConfig()
    simulation: SimulationConfig = SimulationConfig()
    exit_strategy: ExitStrategyConfig | None = None
    live: LiveFeedConfig = LiveFeedConfig()
    report: ReportConfig = ReportConfig()


def load_settings(path: Path | str) -> Settings:
    """Load settings from a YAML configuration file.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Settings instance with loaded configuration.

    Raises:
        FileNotFoundError: If configuration file does not exist.
        yaml.YAMLError: If YAML is invalid.
        pydantic.ValidationError: If configuration is invalid.
    """
    config_path = Path(path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, encoding="utf-8") as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    return Settings.model_validate(raw_config)
