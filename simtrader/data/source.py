"""Bar sources: a finite replay of stored bars and a live polling feed.

Both follow the same contract. ``start()`` rewinds, ``next()`` yields the
next bar or ``None`` once there is nothing more, ``stop()`` ends the
stream for good and ``current_time()`` reports the open time of the last
bar handed out.
"""
from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone

from simtrader.broker.base import ExchangeClient, TradingPair
from simtrader.core.exceptions import DataSourceError, OperationCancelled
from simtrader.core.types import Bar

logger = logging.getLogger(__name__)

# Upper bound on a single wait so the cancel event is noticed quickly
_WAIT_SLICE_SECONDS: float = 0.05


class BarSource(ABC):
    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def next(self, cancel: threading.Event | None = None) -> Bar | None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def current_time(self) -> datetime: ...


class ReplayBarSource(BarSource):
    """Deterministic, restartable source over an in-memory bar list."""

    def __init__(self, bars: list[Bar]) -> None:
        self._bars = sorted(bars, key=lambda b: b.open_time)
        self._index = 0
        self._finished = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._bars)

    def start(self) -> None:
        if not self._bars:
            raise DataSourceError("no bars to replay")
        with self._lock:
            self._index = 0
            self._finished = False
        logger.info(
            "Replay started: %d bars %s -> %s",
            len(self._bars), self._bars[0].open_time, self._bars[-1].open_time,
        )

    def next(self, cancel: threading.Event | None = None) -> Bar | None:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("replay cancelled")
        with self._lock:
            if self._finished or self._index >= len(self._bars):
                self._finished = True
                return None
            bar = self._bars[self._index]
            self._index += 1
            return bar

    def stop(self) -> None:
        with self._lock:
            self._finished = True

    def current_time(self) -> datetime:
        with self._lock:
            if not self._bars:
                return datetime.now(timezone.utc)
            if self._index == 0:
                return self._bars[0].open_time
            return self._bars[self._index - 1].open_time


class LiveBarSource(BarSource):
    """Polls an exchange for the latest bar every ``poll_interval`` seconds.

    ``next()`` blocks until the interval elapses. A ``stop()`` from any
    thread makes it return ``None``; the caller's ``cancel`` event makes it
    raise ``OperationCancelled``. Neither starts a new fetch once it fired.
    Fetch failures surface as ``DataSourceError`` without retrying.
    """

    def __init__(
        self,
        client: ExchangeClient,
        pair: TradingPair,
        interval: str,
        poll_interval: float = 60.0,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self._client = client
        self._pair = pair
        self._interval = interval
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._current_time = datetime.now(timezone.utc)

    def start(self) -> None:
        self._stop_event.clear()
        self._current_time = datetime.now(timezone.utc)
        logger.info(
            "Live feed started: %s %s every %.1fs",
            self._pair.symbol, self._interval, self._poll_interval,
        )

    def next(self, cancel: threading.Event | None = None) -> Bar | None:
        deadline = time.monotonic() + self._poll_interval
        while True:
            if self._stop_event.is_set():
                return None
            if cancel is not None and cancel.is_set():
                raise OperationCancelled("live feed cancelled")
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            self._stop_event.wait(min(remaining, _WAIT_SLICE_SECONDS))

        try:
            bars = self._client.get_bars(self._pair, self._interval, 1)
        except Exception as exc:
            raise DataSourceError(f"failed to fetch {self._pair.symbol} bar: {exc}") from exc

        if not bars:
            raise DataSourceError(f"no bar returned for {self._pair.symbol}")

        bar = bars[-1]
        self._current_time = bar.open_time
        return bar

    def stop(self) -> None:
        self._stop_event.set()

    def current_time(self) -> datetime:
        return self._current_time
