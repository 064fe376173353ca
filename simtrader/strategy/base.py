from __future__ import annotations

from abc import ABC, abstractmethod

from simtrader.core.types import Bar, Portfolio, Signal


class Strategy(ABC):
    """Entry-signal producer driven once per bar.

    ``on_data`` only reads the portfolio snapshot; orders are placed by the
    engine from the returned signals. Raising marks the bar as a strategy
    error and no signals from it are used.
    """

    name: str = "strategy"

    @abstractmethod
    def on_data(self, bar: Bar, portfolio: Portfolio) -> list[Signal]: ...

    def reset(self) -> None:
        pass
