"""Order matching, accounting and exit decisions.

This package contains:
- OrderBookSimulator: pending limit orders filled against OHLC bars
- Ledger: cash/position accounting with commission and realized P&L
- BacktestVenue / LiveVenue: where a ledger fill is carried out
- Exit strategies: fixed, trailing, technical, combo and partial exits
- TradeTracker: open-trade view and exit state for the engine
"""
from simtrader.execution.exit_rules import (
    ComboExit,
    ExitDecision,
    ExitState,
    ExitStrategy,
    FixedExit,
    PartialExit,
    TechnicalExit,
    TrailingExit,
    create_exit_strategy,
    create_exit_strategy_with_params,
    default_exit_configs,
    parse_exit_params,
)
from simtrader.execution.ledger import Ledger
from simtrader.execution.order_book import OrderBookSimulator
from simtrader.execution.trade_tracker import TradeTracker
from simtrader.execution.venues import BacktestVenue, ExecutionVenue, LiveVenue

__all__ = [
    "BacktestVenue",
    "ComboExit",
    "ExecutionVenue",
    "ExitDecision",
    "ExitState",
    "ExitStrategy",
    "FixedExit",
    "Ledger",
    "LiveVenue",
    "OrderBookSimulator",
    "PartialExit",
    "TechnicalExit",
    "TradeTracker",
    "TrailingExit",
    "create_exit_strategy",
    "create_exit_strategy_with_params",
    "default_exit_configs",
    "parse_exit_params",
]
