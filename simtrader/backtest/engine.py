"""Bar-by-bar simulation loop.

States: NOT_STARTED -> RUNNING -> FINISHED, or STOPPED after ``stop()`` or
cancellation. Each tick fills pending orders, snapshots the portfolio,
asks the exit strategy and the entry strategy for signals and turns the
signals into new limit orders. Bad signals, strategy failures and fill
failures are logged and the run carries on; only a source that cannot
start or yields no data at all aborts it.
"""
from __future__ import annotations

import enum
import logging
import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from simtrader.analysis.performance import PerformanceStats, analyze
from simtrader.core.config import SimulationConfig
from simtrader.core.exceptions import (
    DataSourceError,
    OperationCancelled,
    SimTraderError,
    StrategyError,
    UnknownSignalType,
)
from simtrader.core.types import (
    ONE,
    Bar,
    OrderResult,
    PendingOrder,
    PendingOrderType,
    Portfolio,
    Signal,
    SignalType,
    to_decimal,
)
from simtrader.data.source import BarSource
from simtrader.execution.exit_rules import ExitStrategy
from simtrader.execution.ledger import Ledger
from simtrader.execution.order_book import OrderBookSimulator
from simtrader.execution.trade_tracker import TradeTracker
from simtrader.strategy.base import Strategy

logger = logging.getLogger(__name__)


class EngineState(str, enum.Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    FINISHED = "finished"
    STOPPED = "stopped"


@dataclass
class SimulationResult:
    state: EngineState
    bars: list[Bar]
    orders: list[OrderResult]
    stats: PerformanceStats
    ledger_stats: dict
    errors: list[str] = field(default_factory=list)


class SimulationEngine:
    def __init__(
        self,
        source: BarSource,
        ledger: Ledger,
        strategy: Strategy,
        *,
        order_book: OrderBookSimulator | None = None,
        exit_strategy: ExitStrategy | None = None,
        config: SimulationConfig | None = None,
    ) -> None:
        self._config = config or SimulationConfig()
        self._source = source
        self._ledger = ledger
        self._strategy = strategy
        self._order_book = order_book or OrderBookSimulator(
            ledger, max_fill_attempts=self._config.max_fill_attempts,
        )
        self._exit_strategy = exit_strategy
        self._tracker = TradeTracker(exit_strategy)
        self._state = EngineState.NOT_STARTED
        self._state_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._bars: list[Bar] = []
        self._errors: list[str] = []

    @property
    def state(self) -> EngineState:
        with self._state_lock:
            return self._state

    @property
    def order_book(self) -> OrderBookSimulator:
        return self._order_book

    @property
    def ledger(self) -> Ledger:
        return self._ledger

    @property
    def tracker(self) -> TradeTracker:
        return self._tracker

    def stop(self) -> None:
        """Request the loop to end; safe from any thread, any number of times."""
        if self._stop_event.is_set():
            return
        self._stop_event.set()
        self._source.stop()
        logger.info("Stop requested")

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self, cancel: threading.Event | None = None) -> SimulationResult:
        with self._state_lock:
            if self._state != EngineState.NOT_STARTED:
                raise RuntimeError(f"engine already {self._state.value}")
            self._state = EngineState.RUNNING

        try:
            self._source.start()
        except DataSourceError:
            self._set_state(EngineState.STOPPED)
            raise
        except Exception as exc:
            self._set_state(EngineState.STOPPED)
            raise DataSourceError(f"bar source failed to start: {exc}") from exc

        logger.info(
            "Simulation started: capital %s, fee %s, exit %s",
            self._ledger.initial_capital, self._ledger.fee_rate,
            self._exit_strategy.name if self._exit_strategy else "none",
        )

        try:
            final_state = self._loop(cancel)
        finally:
            self._source.stop()

        self._set_state(final_state)
        if final_state == EngineState.FINISHED and not self._bars:
            raise DataSourceError("no data")

        result = self._build_result()
        logger.info(
            "Simulation %s after %d bars: %d fills, final equity %s",
            final_state.value, len(self._bars), len(result.orders), result.stats.final_equity,
        )
        return result

    def _loop(self, cancel: threading.Event | None) -> EngineState:
        while True:
            if self._stop_event.is_set():
                return EngineState.STOPPED
            try:
                bar = self._source.next(cancel)
            except OperationCancelled:
                logger.info("Simulation cancelled")
                return EngineState.STOPPED
            except DataSourceError as exc:
                self._record_error(f"data source: {exc}")
                continue

            if bar is None:
                if self._stop_event.is_set():
                    return EngineState.STOPPED
                return EngineState.FINISHED

            self._tick(bar)

    def _tick(self, bar: Bar) -> None:
        self._bars.append(bar)

        try:
            fills = self._order_book.check_and_execute(bar)
        except SimTraderError as exc:
            self._record_error(f"order execution at {bar.open_time}: {exc}")
            fills = []

        self._tracker.on_fills(fills, self._ledger.position)
        portfolio = replace(self._ledger.portfolio(mark_price=bar.close), timestamp=bar.open_time)

        signals = self._exit_signals(bar)

        try:
            signals.extend(self._strategy.on_data(bar, portfolio) or [])
        except Exception as exc:
            error = exc if isinstance(exc, StrategyError) else StrategyError(
                f"{self._strategy.name} failed on bar {bar.open_time}: {exc}"
            )
            self._record_error(str(error))
            signals = None

        if signals:
            for signal in signals:
                try:
                    self._handle_signal(signal, bar, portfolio)
                except UnknownSignalType as exc:
                    self._record_error(str(exc))

        if len(self._bars) % self._config.progress_interval == 0:
            logger.info(
                "Processed %d bars (%s): equity %s, pending orders %d",
                len(self._bars), bar.open_time, portfolio.equity, self._order_book.count(),
            )

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    def _exit_signals(self, bar: Bar) -> list[Signal]:
        trade = self._tracker.update(bar)
        if trade is None or self._exit_strategy is None:
            return []
        decision = self._exit_strategy.should_sell(bar, trade, self._tracker.state)
        if not decision.should_sell:
            return []
        logger.info("Exit triggered (%s): %s", self._exit_strategy.name, decision.reason)
        return [
            Signal(
                type=SignalType.SELL,
                strength=decision.strength,
                reason=decision.reason,
                timestamp=bar.open_time,
            )
        ]

    def _handle_signal(self, signal: Signal, bar: Bar, portfolio: Portfolio) -> None:
        try:
            kind = SignalType(signal.type)
        except ValueError as exc:
            raise UnknownSignalType(signal.type) from exc

        if kind == SignalType.BUY:
            self._place_buy(signal, bar, portfolio)
        elif kind == SignalType.SELL:
            self._place_sell(signal, bar, portfolio, _sell_fraction(signal.strength))
        else:
            self._place_sell(signal, bar, portfolio, ONE)

    def _place_buy(self, signal: Signal, bar: Bar, portfolio: Portfolio) -> None:
        cfg = self._config
        trade_amount = portfolio.cash * cfg.position_size_percent
        if trade_amount < cfg.min_trade_amount:
            logger.debug("Buy skipped: %s below minimum %s", trade_amount, cfg.min_trade_amount)
            return

        limit_price = bar.close * (ONE - cfg.buy_buffer)
        order = PendingOrder(
            id=_order_id("buy"),
            type=PendingOrderType.BUY_LIMIT,
            quantity=trade_amount / limit_price,
            price=limit_price,
            create_time=bar.open_time,
            expire_time=bar.open_time + timedelta(hours=cfg.order_expiry_hours),
            reason=signal.reason,
            origin_signal=signal.type,
            symbol=bar.symbol or cfg.symbol,
        )
        self._order_book.place(order)
        logger.info("BUY order %s: %s @ %s (%s)", order.id, order.quantity, limit_price, signal.reason)

    def _place_sell(self, signal: Signal, bar: Bar, portfolio: Portfolio, fraction: Decimal | None) -> None:
        cfg = self._config
        if portfolio.position <= 0:
            logger.debug("Sell skipped: no open position")
            return

        if fraction is None:
            quantity = portfolio.position
        else:
            quantity = min(portfolio.position * fraction, portfolio.position)

        replaced = self._order_book.cancel_all(PendingOrderType.SELL_LIMIT)
        if replaced:
            logger.debug("Cancelled %d pending sell orders", replaced)

        limit_price = bar.close * (ONE + cfg.sell_buffer)
        order = PendingOrder(
            id=_order_id("sell"),
            type=PendingOrderType.SELL_LIMIT,
            quantity=quantity,
            price=limit_price,
            create_time=bar.open_time,
            expire_time=bar.open_time + timedelta(hours=cfg.order_expiry_hours),
            reason=signal.reason,
            origin_signal=signal.type,
            symbol=bar.symbol or cfg.symbol,
        )
        self._order_book.place(order)
        logger.info("SELL order %s: %s @ %s (%s)", order.id, quantity, limit_price, signal.reason)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _set_state(self, state: EngineState) -> None:
        with self._state_lock:
            self._state = state

    def _record_error(self, message: str) -> None:
        logger.error(message)
        self._errors.append(message)

    def _build_result(self) -> SimulationResult:
        orders = self._ledger.orders()
        return SimulationResult(
            state=self.state,
            bars=list(self._bars),
            orders=orders,
            stats=analyze(orders, self._bars, self._ledger.initial_capital),
            ledger_stats=self._ledger.statistics(),
            errors=list(self._errors),
        )


def _order_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def _sell_fraction(strength: object) -> Decimal | None:
    """Fraction of the position a sell signal asks for; ``None`` means all of it.

    Anything that is not a finite number in (0, 1] sells the whole position.
    """
    try:
        value = to_decimal(strength)
    except (InvalidOperation, TypeError, ValueError):
        return None
    if not value.is_finite() or value <= 0 or value > 1:
        return None
    return value
