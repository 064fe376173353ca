from simtrader.backtest.engine import EngineState, SimulationEngine, SimulationResult
from simtrader.backtest.sweep import SweepCase, run_case, run_sweep

__all__ = ["EngineState", "SimulationEngine", "SimulationResult", "SweepCase", "run_case", "run_sweep"]
