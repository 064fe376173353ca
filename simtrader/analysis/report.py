"""Post-run report: a JSON document on disk and a plain-text summary.

The JSON document holds the run configuration, the statistics, the closed
trades and a generation timestamp. Decimals are written as strings so no
precision is lost.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

from simtrader.analysis.performance import ClosedTrade, PerformanceStats
from simtrader.core.config import Settings

logger = logging.getLogger(__name__)


def _pct(v: Decimal) -> str:
    """Format ratio as percentage string (0.03 -> '3.00%')."""
    return f"{v * 100:.2f}%"


def _f2(v: Decimal) -> str:
    return f"{v:.2f}"


def _json_default(value: object) -> object:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _trade_record(trade: ClosedTrade) -> dict:
    record = asdict(trade)
    record["return_pct"] = trade.return_pct
    record["is_win"] = trade.is_win
    return record


def build_report(settings: Settings, stats: PerformanceStats, generated_at: datetime | None = None) -> dict:
    dd = stats.drawdown
    return {
        "config": settings.model_dump(mode="json"),
        "statistics": {
            "initial_capital": stats.initial_capital,
            "final_equity": stats.final_equity,
            "total_return": stats.total_return,
            "annualized_return": stats.annualized_return,
            "max_drawdown": dd.max_drawdown,
            "max_drawdown_peak": dd.peak_equity,
            "max_drawdown_trough": dd.trough_equity,
            "sharpe_ratio": stats.sharpe_ratio,
            "total_trades": stats.total_trades,
            "winning_trades": stats.winning_trades,
            "losing_trades": stats.losing_trades,
            "win_rate": stats.win_rate,
            "total_pnl": stats.total_pnl,
            "profit_factor": stats.profit_factor,
            "total_commission": stats.total_commission,
            "total_orders": stats.total_orders,
            "elapsed_days": stats.elapsed_days,
            "open_position": asdict(stats.open_position) if stats.open_position else None,
        },
        "trades": [_trade_record(t) for t in stats.trades],
        "timestamp": (generated_at or datetime.now(timezone.utc)).isoformat(),
    }


def write_report(
    results_dir: Path | str,
    settings: Settings,
    stats: PerformanceStats,
    symbol: str,
    generated_at: datetime | None = None,
) -> Path:
    """Write ``backtest_<symbol>_<YYYYmmdd_HHMMSS>.json`` and return its path."""
    generated_at = generated_at or datetime.now(timezone.utc)
    out_dir = Path(results_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"backtest_{symbol}_{generated_at:%Y%m%d_%H%M%S}.json"
    report = build_report(settings, stats, generated_at)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(report, f, indent=2, default=_json_default)
    logger.info("Report written to %s", path)
    return path


def format_summary(stats: PerformanceStats, name: str = "", recent_trades: int = 10) -> str:
    """Multi-section text summary of a finished run."""
    title = "SIMULATION RESULTS"
    if name:
        title += f" [{name}]"
    pf = _f2(stats.profit_factor) if stats.profit_factor is not None else "n/a"
    lines = [
        "=" * 64,
        f"  {title}",
        "=" * 64,
        "  PERFORMANCE",
        f"  Initial Capital:       {_f2(stats.initial_capital)}",
        f"  Final Equity:          {_f2(stats.final_equity)}",
        f"  Total Return:          {_pct(stats.total_return)}",
        f"  Annualized Return:     {_pct(stats.annualized_return)}",
        f"  Max Drawdown:          {_pct(stats.max_drawdown)}",
        f"  Sharpe Ratio:          {_f2(stats.sharpe_ratio)}",
        "",
        "  TRADING",
        f"  Closed Trades:         {stats.total_trades}",
        f"  Winning / Losing:      {stats.winning_trades} / {stats.losing_trades}",
        f"  Win Rate:              {_pct(stats.win_rate)}",
        f"  Total P&L:             {_f2(stats.total_pnl)}",
        f"  Profit Factor:         {pf}",
        f"  Total Commission:      {_f2(stats.total_commission)}",
        f"  Orders Filled:         {stats.total_orders}",
    ]
    if stats.open_position is not None:
        op = stats.open_position
        lines.append(
            f"  Open Position:         {op.quantity} @ {_f2(op.entry_price)} "
            f"(unrealized {_f2(op.unrealized_pnl)})"
        )

    recent = list(stats.trades)[-recent_trades:] if recent_trades > 0 else []
    if recent:
        lines += [
            "",
            f"  LAST {len(recent)} TRADES",
            f"  {'Exit Time':<20} {'Entry':>12} {'Exit':>12} {'P&L':>12} {'Return':>8}",
            f"  {'-' * 20} {'-' * 12} {'-' * 12} {'-' * 12} {'-' * 8}",
        ]
        for t in recent:
            lines.append(
                f"  {t.exit_time:%Y-%m-%d %H:%M}     {_f2(t.entry_price):>12} "
                f"{_f2(t.exit_price):>12} {_f2(t.pnl):>12} {_pct(t.return_pct):>8}"
            )
    return "\n".join(lines)
