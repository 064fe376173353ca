from __future__ import annotations

import logging
import threading

from simtrader.analysis.report import format_summary, write_report
from simtrader.backtest.engine import SimulationEngine, SimulationResult
from simtrader.broker.base import TradingPair
from simtrader.broker.paper import PaperExchange
from simtrader.broker.registry import ExchangeRegistry
from simtrader.core.config import Settings
from simtrader.core.logger import setup_logging
from simtrader.core.types import Bar
from simtrader.data.source import BarSource, LiveBarSource, ReplayBarSource
from simtrader.execution.exit_rules import ExitStrategy, create_exit_strategy
from simtrader.execution.ledger import Ledger
from simtrader.execution.venues import BacktestVenue, ExecutionVenue, LiveVenue
from simtrader.strategy.base import Strategy

logger = logging.getLogger(__name__)


def default_registry() -> ExchangeRegistry:
    return ExchangeRegistry({"paper": PaperExchange})


class SimTrader:
    """Wires settings into a source, ledger, exit strategy and engine."""

    def __init__(self, settings: Settings, exchanges: ExchangeRegistry | None = None) -> None:
        setup_logging("simtrader", level=settings.system.log_level, log_dir=settings.system.log_dir)
        self._settings = settings
        self._exchanges = exchanges or default_registry()
        self._engine: SimulationEngine | None = None
        self._lock = threading.Lock()

    def run_backtest(self, bars: list[Bar], strategy: Strategy) -> SimulationResult:
        return self._run(ReplayBarSource(bars), BacktestVenue(), strategy, None)

    def run_live(self, strategy: Strategy, cancel: threading.Event | None = None) -> SimulationResult:
        live = self._settings.live
        client = self._exchanges.create(live.exchange)
        pair = TradingPair(live.base, live.quote)
        source = LiveBarSource(client, pair, live.interval, live.poll_seconds)
        return self._run(source, LiveVenue(client, pair), strategy, cancel)

    def stop(self) -> None:
        with self._lock:
            engine = self._engine
        if engine is not None:
            engine.stop()

    def _create_exit_strategy(self) -> ExitStrategy | None:
        if self._settings.exit_strategy is None:
            return None
        return create_exit_strategy(self._settings.exit_strategy)

    def _run(
        self,
        source: BarSource,
        venue: ExecutionVenue,
        strategy: Strategy,
        cancel: threading.Event | None,
    ) -> SimulationResult:
        sim = self._settings.simulation
        exit_strategy = self._create_exit_strategy()
        engine = SimulationEngine(
            source,
            Ledger(sim.initial_capital, sim.fee_rate, venue=venue),
            strategy,
            exit_strategy=exit_strategy,
            config=sim,
        )
        with self._lock:
            self._engine = engine

        logger.info("Starting %s (%s, %s)", self._settings.system.name, venue.name, sim.symbol)
        result = engine.run(cancel)

        report = self._settings.report
        if report.enabled:
            write_report(report.results_dir, self._settings, result.stats, sim.symbol)
        name = exit_strategy.name if exit_strategy else strategy.name
        logger.info("\n%s", format_summary(result.stats, name, report.recent_trades))
        return result
