from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable

from simtrader.backtest.engine import SimulationEngine, SimulationResult
from simtrader.core.config import ExitStrategyConfig, SimulationConfig
from simtrader.core.types import Bar
from simtrader.data.source import ReplayBarSource
from simtrader.execution.exit_rules import create_exit_strategy
from simtrader.execution.ledger import Ledger
from simtrader.strategy.base import Strategy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepCase:
    """One parameter combination to simulate."""

    name: str
    simulation: SimulationConfig
    exit_strategy: ExitStrategyConfig | None = None


def run_case(bars: list[Bar], case: SweepCase, strategy_factory: Callable[[], Strategy]) -> SimulationResult:
    """Run one case on its own source, ledger, order book and engine."""
    ledger = Ledger(case.simulation.initial_capital, case.simulation.fee_rate)
    exit_strategy = create_exit_strategy(case.exit_strategy) if case.exit_strategy else None
    engine = SimulationEngine(
        ReplayBarSource(bars),
        ledger,
        strategy_factory(),
        exit_strategy=exit_strategy,
        config=case.simulation,
    )
    return engine.run()


def run_sweep(
    bars: list[Bar],
    cases: list[SweepCase],
    strategy_factory: Callable[[], Strategy],
    max_workers: int = 4,
) -> dict[str, SimulationResult]:
    """Run every case concurrently; results keyed by case name, in input order.

    ``strategy_factory`` is called once per case so no strategy instance is
    shared between runs. The first failing case re-raises after the pool
    shuts down.
    """
    names = [c.name for c in cases]
    if len(set(names)) != len(names):
        raise ValueError("sweep case names must be unique")
    if not cases:
        return {}

    max_workers = min(max(1, max_workers), len(cases))
    results: dict[str, SimulationResult] = {}
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        future_map = {
            pool.submit(run_case, bars, case, strategy_factory): case.name
            for case in cases
        }
        for future in as_completed(future_map):
            name = future_map[future]
            results[name] = future.result()
            logger.info(
                "Sweep case %s done: return %s, trades %d",
                name, results[name].stats.total_return, results[name].stats.total_trades,
            )

    return {name: results[name] for name in names}
