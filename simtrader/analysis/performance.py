"""Post-run performance statistics.

Everything here is a pure function of the order history and the bar
history; nothing is kept between calls. Money stays in ``Decimal``; the
only float step is the fractional power in the annualized return.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal

import pandas as pd

from simtrader.core.types import ONE, ZERO, Bar, OrderResult, OrderSide, to_decimal

_DAYS_PER_YEAR = 365
_SECONDS_PER_DAY = 86_400


@dataclass(frozen=True)
class EquityPoint:
    timestamp: datetime
    equity: Decimal
    cash: Decimal
    position: Decimal
    price: Decimal


@dataclass(frozen=True)
class DrawdownStats:
    max_drawdown: Decimal = ZERO
    peak_equity: Decimal = ZERO
    trough_equity: Decimal = ZERO
    peak_time: datetime | None = None
    trough_time: datetime | None = None


@dataclass(frozen=True)
class ClosedTrade:
    buy_order_id: str
    sell_order_id: str
    entry_time: datetime
    exit_time: datetime
    entry_price: Decimal
    exit_price: Decimal
    quantity: Decimal
    pnl: Decimal
    commission: Decimal
    reason: str = ""

    @property
    def is_win(self) -> bool:
        return self.pnl > 0

    @property
    def return_pct(self) -> Decimal:
        if self.entry_price <= 0:
            return ZERO
        return (self.exit_price - self.entry_price) / self.entry_price


@dataclass(frozen=True)
class OpenPosition:
    entry_time: datetime
    entry_price: Decimal
    quantity: Decimal
    mark_price: Decimal
    unrealized_pnl: Decimal


@dataclass(frozen=True)
class PerformanceStats:
    initial_capital: Decimal
    final_equity: Decimal
    total_return: Decimal
    annualized_return: Decimal
    drawdown: DrawdownStats
    sharpe_ratio: Decimal
    total_trades: int
    winning_trades: int
    losing_trades: int
    win_rate: Decimal
    total_pnl: Decimal
    profit_factor: Decimal | None
    total_commission: Decimal
    total_orders: int
    elapsed_days: Decimal
    equity_curve: tuple[EquityPoint, ...] = field(default_factory=tuple)
    trades: tuple[ClosedTrade, ...] = field(default_factory=tuple)
    open_position: OpenPosition | None = None

    @property
    def max_drawdown(self) -> Decimal:
        return self.drawdown.max_drawdown

    def equity_frame(self) -> pd.DataFrame:
        """Equity curve as a frame indexed by timestamp."""
        columns = ["timestamp", "equity", "cash", "position", "price"]
        df = pd.DataFrame([asdict(p) for p in self.equity_curve], columns=columns)
        return df.set_index("timestamp")

    def trades_frame(self) -> pd.DataFrame:
        rows = [{**asdict(t), "return_pct": t.return_pct} for t in self.trades]
        return pd.DataFrame(rows)


# ----------------------------------------------------------------------
# Curve and drawdown
# ----------------------------------------------------------------------


def equity_curve(
    orders: list[OrderResult],
    bars: list[Bar],
    initial_capital: Decimal,
) -> list[EquityPoint]:
    """Replay fills onto a cash/position pair, sampling at every bar close.

    A fill belongs to the first bar whose ``open_time`` is at or after the
    fill timestamp.
    """
    fills = [o for o in orders if o.success]
    cash = initial_capital
    position = ZERO
    i = 0
    curve: list[EquityPoint] = []
    for bar in bars:
        while i < len(fills) and fills[i].timestamp <= bar.open_time:
            fill = fills[i]
            if fill.side == OrderSide.BUY:
                cash -= fill.notional + fill.commission
                position += fill.quantity
            else:
                cash += fill.notional - fill.commission
                position -= fill.quantity
            i += 1
        curve.append(
            EquityPoint(
                timestamp=bar.open_time,
                equity=cash + position * bar.close,
                cash=cash,
                position=position,
                price=bar.close,
            )
        )
    return curve


def max_drawdown(curve: list[EquityPoint]) -> DrawdownStats:
    if not curve:
        return DrawdownStats()

    peak = curve[0]
    worst = DrawdownStats(peak_equity=peak.equity, trough_equity=peak.equity,
                          peak_time=peak.timestamp, trough_time=peak.timestamp)
    for point in curve:
        if point.equity > peak.equity:
            peak = point
        if peak.equity <= 0:
            continue
        drawdown = (peak.equity - point.equity) / peak.equity
        if drawdown > worst.max_drawdown:
            worst = DrawdownStats(
                max_drawdown=drawdown,
                peak_equity=peak.equity,
                trough_equity=point.equity,
                peak_time=peak.timestamp,
                trough_time=point.timestamp,
            )
    return worst


# ----------------------------------------------------------------------
# Returns
# ----------------------------------------------------------------------


def total_return(final_equity: Decimal, initial_capital: Decimal) -> Decimal:
    if initial_capital <= 0:
        return ZERO
    return (final_equity - initial_capital) / initial_capital


def annualized_return(total: Decimal, elapsed_days: Decimal) -> Decimal:
    """``(1 + total) ** (365 / days) - 1``; zero for an empty period."""
    if elapsed_days <= 0:
        return ZERO
    base = ONE + total
    if base <= 0:
        return -ONE
    exponent = _DAYS_PER_YEAR / float(elapsed_days)
    return to_decimal(float(base) ** exponent) - ONE


def bar_returns(curve: list[EquityPoint]) -> list[Decimal]:
    returns: list[Decimal] = []
    for prev, cur in zip(curve, curve[1:]):
        if prev.equity > 0:
            returns.append((cur.equity - prev.equity) / prev.equity)
        else:
            returns.append(ZERO)
    return returns


def sharpe_ratio(curve: list[EquityPoint]) -> Decimal:
    """Mean over sample std-dev of bar returns, scaled by sqrt(365).

    Zero risk-free rate. Reported as zero with fewer than two returns or
    no variation.
    """
    returns = bar_returns(curve)
    n = len(returns)
    if n < 2:
        return ZERO
    mean = sum(returns, ZERO) / n
    variance = sum(((r - mean) ** 2 for r in returns), ZERO) / (n - 1)
    if variance <= 0:
        return ZERO
    return mean / variance.sqrt() * Decimal(_DAYS_PER_YEAR).sqrt()


def elapsed_days(bars: list[Bar]) -> Decimal:
    if len(bars) < 2:
        return ZERO
    seconds = (bars[-1].open_time - bars[0].open_time).total_seconds()
    return Decimal(str(seconds)) / _SECONDS_PER_DAY


# ----------------------------------------------------------------------
# Trades
# ----------------------------------------------------------------------


def pair_trades(
    orders: list[OrderResult],
    mark_price: Decimal | None = None,
) -> tuple[list[ClosedTrade], OpenPosition | None]:
    """Pair every sell with the latest buy before it, in emission order.

    Whatever is still held after the last sell is the open position,
    priced at ``mark_price`` (the entry price when not given).
    """
    trades: list[ClosedTrade] = []
    last_buy: OrderResult | None = None
    position = ZERO

    for order in orders:
        if not order.success:
            continue
        if order.side == OrderSide.BUY:
            last_buy = order
            position += order.quantity
            continue

        position -= order.quantity
        if last_buy is None:
            continue
        pnl = order.realized_pnl
        if pnl is None:
            pnl = order.quantity * (order.price - last_buy.price) - order.commission
        trades.append(
            ClosedTrade(
                buy_order_id=last_buy.order_id,
                sell_order_id=order.order_id,
                entry_time=last_buy.timestamp,
                exit_time=order.timestamp,
                entry_price=last_buy.price,
                exit_price=order.price,
                quantity=order.quantity,
                pnl=pnl,
                commission=order.commission,
                reason=order.reason,
            )
        )

    open_position = None
    if position > 0 and last_buy is not None:
        mark = mark_price if mark_price is not None else last_buy.price
        open_position = OpenPosition(
            entry_time=last_buy.timestamp,
            entry_price=last_buy.price,
            quantity=position,
            mark_price=mark,
            unrealized_pnl=position * (mark - last_buy.price),
        )
    return trades, open_position


def analyze(
    orders: list[OrderResult],
    bars: list[Bar],
    initial_capital: Decimal,
) -> PerformanceStats:
    """Recompute every statistic from scratch."""
    bars = sorted(bars, key=lambda b: b.open_time)
    curve = equity_curve(orders, bars, initial_capital)
    final_equity = curve[-1].equity if curve else initial_capital
    days = elapsed_days(bars)
    total = total_return(final_equity, initial_capital)

    mark = bars[-1].close if bars else None
    trades, open_position = pair_trades(orders, mark)
    wins = [t for t in trades if t.is_win]
    losses = [t for t in trades if t.pnl < 0]
    gross_profit = sum((t.pnl for t in wins), ZERO)
    gross_loss = -sum((t.pnl for t in losses), ZERO)
    fills = [o for o in orders if o.success]

    return PerformanceStats(
        initial_capital=initial_capital,
        final_equity=final_equity,
        total_return=total,
        annualized_return=annualized_return(total, days),
        drawdown=max_drawdown(curve),
        sharpe_ratio=sharpe_ratio(curve),
        total_trades=len(trades),
        winning_trades=len(wins),
        losing_trades=len(losses),
        win_rate=Decimal(len(wins)) / len(trades) if trades else ZERO,
        total_pnl=sum((t.pnl for t in trades), ZERO),
        profit_factor=gross_profit / gross_loss if gross_loss > 0 else None,
        total_commission=sum((o.commission for o in fills), ZERO),
        total_orders=len(fills),
        elapsed_days=days,
        equity_curve=tuple(curve),
        trades=tuple(trades),
        open_position=open_position,
    )
