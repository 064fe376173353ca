from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pandas as pd

from simtrader.core.exceptions import DataSourceError
from simtrader.core.types import Bar, to_decimal

_PRICE_COLUMNS = ("open", "high", "low", "close", "volume")


def _to_datetime(value: object) -> datetime:
    ts = pd.Timestamp(value)
    if ts.tzinfo is None:
        ts = ts.tz_localize(timezone.utc)
    return ts.to_pydatetime()


def bars_from_frame(
    df: pd.DataFrame,
    symbol: str = "",
    interval: timedelta | None = None,
) -> list[Bar]:
    """Build bars from a frame with ``open_time`` and OHLCV columns.

    ``close_time`` is taken from the frame when present, otherwise it is
    ``open_time + interval`` (or ``open_time`` when no interval is given).
    Prices go through ``str`` so CSV text such as ``"0.1"`` stays exact.
    """
    missing = [c for c in ("open_time", *_PRICE_COLUMNS) if c not in df.columns]
    if missing:
        raise DataSourceError(f"bar frame missing columns: {', '.join(missing)}")

    has_close_time = "close_time" in df.columns
    bars: list[Bar] = []
    for _, row in df.iterrows():
        open_time = _to_datetime(row["open_time"])
        if has_close_time:
            close_time = _to_datetime(row["close_time"])
        else:
            close_time = open_time + interval if interval else open_time
        bars.append(
            Bar(
                open_time=open_time,
                close_time=close_time,
                open=to_decimal(row["open"]),
                high=to_decimal(row["high"]),
                low=to_decimal(row["low"]),
                close=to_decimal(row["close"]),
                volume=to_decimal(row["volume"]),
                symbol=str(row["symbol"]) if "symbol" in df.columns else symbol,
            )
        )
    bars.sort(key=lambda b: b.open_time)
    return bars


def load_bars_csv(
    path: Path | str,
    symbol: str = "",
    interval: timedelta | None = None,
) -> list[Bar]:
    csv_path = Path(path)
    if not csv_path.exists():
        raise DataSourceError(f"bar file not found: {csv_path}")
    df = pd.read_csv(csv_path, dtype={c: str for c in _PRICE_COLUMNS})
    return bars_from_frame(df, symbol=symbol, interval=interval)
