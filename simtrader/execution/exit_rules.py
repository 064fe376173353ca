"""Exit-decision strategies for an open long position.

Strategies are stateless objects. Anything that has to persist across bars
for one position (the partial-exit level reached, whether the trailing stop
is armed) lives in an ``ExitState`` owned by the caller, which replaces it
with ``strategy.new_state()`` when the position is closed.

Available rules:
  - fixed: take profit once P&L reaches a threshold
  - trailing: after the peak P&L reached a floor, exit on a pullback from
    the peak
  - technical: placeholder threshold exit, 15 % once above a 10 % floor
  - combo: max holding days, then trailing, then fixed at 1.5x take profit
  - partial: laddered fractional exits at ascending profit levels
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from simtrader.core.config import ExitStrategyConfig
from simtrader.core.exceptions import ConfigError
from simtrader.core.types import ONE, Bar, TradeInfo

logger = logging.getLogger(__name__)

_TECHNICAL_MIN_PROFIT: Decimal = Decimal("0.10")
_TECHNICAL_TRIGGER: Decimal = Decimal("0.15")

# Backstop take profit inside combo is this multiple of the configured one
_COMBO_FIXED_MULTIPLIER: Decimal = Decimal("1.5")

_PARAM_KEYS: frozenset[str] = frozenset(
    {"take_profit", "trailing_percent", "min_profit", "max_holding_days"}
)


def _pct(value: Decimal) -> str:
    return f"{value * 100:.2f}%"


@dataclass
class ExitState:
    """Per-position exit bookkeeping.

    Attributes:
        executed_level: Index of the last partial level sold, -1 for none.
        trailing_armed: True once the peak P&L has reached the floor.
    """

    executed_level: int = -1
    trailing_armed: bool = False

    def reset(self) -> None:
        self.executed_level = -1
        self.trailing_armed = False


@dataclass(frozen=True)
class ExitDecision:
    """Result of an exit evaluation for a single bar.

    Attributes:
        should_sell: True when the position (or a slice of it) should go.
        reason: Human-readable reason for logs and trade records.
        strength: Fraction of the position to sell; 1 means all of it.
    """

    should_sell: bool
    reason: str = ""
    strength: Decimal = ONE


_HOLD = ExitDecision(should_sell=False)


class ExitStrategy(ABC):
    name: str = "exit"

    @abstractmethod
    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision: ...

    def new_state(self) -> ExitState:
        return ExitState()


class FixedExit(ExitStrategy):
    def __init__(self, take_profit: Decimal, name: str = "fixed") -> None:
        if take_profit <= 0:
            raise ConfigError("take_profit must be positive")
        self.take_profit = take_profit
        self.name = name

    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision:
        if trade.current_pnl >= self.take_profit:
            return ExitDecision(
                True, f"take profit {_pct(trade.current_pnl)} >= {_pct(self.take_profit)}",
            )
        return _HOLD


class TrailingExit(ExitStrategy):
    """Pullback exit once the trade has been far enough in profit.

    The call that first sees the peak at or above ``min_profit`` only arms
    the stop. Later calls sell when the pullback from ``highest_price``
    reaches ``trailing_percent``.
    """

    def __init__(self, trailing_percent: Decimal, min_profit: Decimal, name: str = "trailing") -> None:
        if trailing_percent <= 0:
            raise ConfigError("trailing_percent must be positive")
        if min_profit < 0:
            raise ConfigError("min_profit must not be negative")
        self.trailing_percent = trailing_percent
        self.min_profit = min_profit
        self.name = name

    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision:
        if trade.highest_price <= 0:
            return _HOLD

        if not state.trailing_armed:
            if trade.peak_pnl >= self.min_profit:
                state.trailing_armed = True
                logger.debug(
                    "Trailing stop armed at peak %s (%s)", trade.highest_price, _pct(trade.peak_pnl),
                )
            return _HOLD

        pullback = (trade.highest_price - trade.current_price) / trade.highest_price
        if pullback >= self.trailing_percent:
            return ExitDecision(
                True,
                f"trailing stop {_pct(pullback)} off peak {trade.highest_price} "
                f">= {_pct(self.trailing_percent)}",
            )
        return _HOLD


class TechnicalExit(ExitStrategy):
    """Threshold stand-in for an indicator-driven exit."""

    def __init__(self, name: str = "technical") -> None:
        self.name = name

    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision:
        if trade.current_pnl < _TECHNICAL_MIN_PROFIT:
            return _HOLD
        if trade.current_pnl >= _TECHNICAL_TRIGGER:
            return ExitDecision(True, f"technical exit at {_pct(trade.current_pnl)}")
        return _HOLD


class ComboExit(ExitStrategy):
    def __init__(
        self,
        take_profit: Decimal,
        trailing_percent: Decimal,
        min_profit: Decimal,
        max_holding_days: int = 0,
        name: str = "combo",
    ) -> None:
        if max_holding_days < 0:
            raise ConfigError("max_holding_days must not be negative")
        self.max_holding_days = max_holding_days
        self._trailing = TrailingExit(trailing_percent, min_profit)
        self._fixed = FixedExit(take_profit * _COMBO_FIXED_MULTIPLIER)
        self.name = name

    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision:
        if self.max_holding_days > 0 and trade.holding_days >= self.max_holding_days:
            return ExitDecision(
                True, f"max holding period {trade.holding_days}d >= {self.max_holding_days}d",
            )

        decision = self._trailing.should_sell(bar, trade, state)
        if decision.should_sell:
            return decision

        decision = self._fixed.should_sell(bar, trade, state)
        if decision.should_sell:
            return ExitDecision(True, f"enhanced {decision.reason}", decision.strength)
        return _HOLD


class PartialExit(ExitStrategy):
    """Sells a slice of the position at each profit level, lowest first.

    At most one level fires per call and a level never fires twice for the
    same position.
    """

    def __init__(self, levels: list[tuple[Decimal, Decimal]], name: str = "partial") -> None:
        if not levels:
            raise ConfigError("partial exit needs at least one level")
        for _, sell in levels:
            if not 0 < sell <= 1:
                raise ConfigError("sell fraction of each level must be in (0, 1]")
        self.levels = sorted(levels, key=lambda level: level[0])
        self.name = name

    def should_sell(self, bar: Bar, trade: TradeInfo, state: ExitState) -> ExitDecision:
        next_level = state.executed_level + 1
        if next_level >= len(self.levels):
            return _HOLD

        profit, sell = self.levels[next_level]
        if trade.current_pnl >= profit:
            state.executed_level = next_level
            return ExitDecision(
                True,
                f"partial exit level {next_level + 1}/{len(self.levels)}: "
                f"{_pct(trade.current_pnl)} >= {_pct(profit)}, selling {_pct(sell)}",
                sell,
            )
        return _HOLD


# ----------------------------------------------------------------------
# Construction
# ----------------------------------------------------------------------


def create_exit_strategy(config: ExitStrategyConfig) -> ExitStrategy:
    name = config.name or config.type
    if config.type == "fixed":
        return FixedExit(config.take_profit, name=name)
    if config.type == "trailing":
        return TrailingExit(config.trailing_percent, config.min_profit, name=name)
    if config.type == "technical":
        return TechnicalExit(name=name)
    if config.type == "combo":
        return ComboExit(
            config.take_profit,
            config.trailing_percent,
            config.min_profit,
            config.max_holding_days,
            name=name,
        )
    if config.type == "partial":
        return PartialExit(list(config.partial_levels), name=name)
    raise ConfigError(f"Unknown exit strategy type: {config.type}")


def default_exit_configs() -> dict[str, ExitStrategyConfig]:
    """Named presets usable wherever an exit strategy name is accepted."""
    return {
        "conservative": ExitStrategyConfig(
            type="fixed", name="conservative", take_profit=Decimal("0.15"),
        ),
        "moderate": ExitStrategyConfig(
            type="fixed", name="moderate", take_profit=Decimal("0.20"),
        ),
        "aggressive": ExitStrategyConfig(
            type="fixed", name="aggressive", take_profit=Decimal("0.30"),
        ),
        "trailing_5": ExitStrategyConfig(
            type="trailing", name="trailing_5",
            trailing_percent=Decimal("0.05"), min_profit=Decimal("0.15"),
        ),
        "trailing_10": ExitStrategyConfig(
            type="trailing", name="trailing_10",
            trailing_percent=Decimal("0.10"), min_profit=Decimal("0.20"),
        ),
        "combo_smart": ExitStrategyConfig(
            type="combo", name="combo_smart",
            take_profit=Decimal("0.25"), trailing_percent=Decimal("0.08"),
            min_profit=Decimal("0.18"), max_holding_days=180,
        ),
        "partial_pyramid": ExitStrategyConfig(
            type="partial", name="partial_pyramid",
            partial_levels=[
                (Decimal("0.20"), Decimal("0.30")),
                (Decimal("0.40"), Decimal("0.40")),
                (Decimal("0.60"), Decimal("1.00")),
            ],
        ),
    }


def parse_exit_params(text: str) -> dict[str, Decimal | int]:
    """Parse ``"take_profit=0.25,max_holding_days=90"`` into typed values."""
    params: dict[str, Decimal | int] = {}
    if not text or not text.strip():
        return params

    for pair in text.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, raw = pair.partition("=")
        key, raw = key.strip(), raw.strip()
        if not sep or not key or not raw:
            raise ConfigError(f"Invalid exit parameter: {pair!r}")
        if key not in _PARAM_KEYS:
            raise ConfigError(f"Unknown exit parameter: {key}")
        try:
            params[key] = int(raw) if key == "max_holding_days" else Decimal(raw)
        except (ValueError, InvalidOperation) as exc:
            raise ConfigError(f"Invalid value for {key}: {raw!r}") from exc
    return params


def create_exit_strategy_with_params(
    name: str,
    params: dict[str, Decimal | int] | None = None,
) -> ExitStrategy:
    """Build a preset or a plain rule type, overriding fields from ``params``.

    ``name`` is either a preset from ``default_exit_configs`` or one of the
    rule types, which start from the config defaults.
    """
    presets = default_exit_configs()
    if name in presets:
        base = presets[name]
    elif name in ("fixed", "trailing", "technical", "combo", "partial"):
        base = ExitStrategyConfig(type=name)
    else:
        raise ConfigError(f"Unknown exit strategy: {name}")

    if params:
        unknown = set(params) - _PARAM_KEYS
        if unknown:
            raise ConfigError(f"Unknown exit parameter: {', '.join(sorted(unknown))}")
        merged = base.model_dump()
        merged.update(params)
        try:
            base = ExitStrategyConfig.model_validate(merged)
        except ValueError as exc:
            raise ConfigError(f"Invalid parameters for {name}: {exc}") from exc

    return create_exit_strategy(base)
