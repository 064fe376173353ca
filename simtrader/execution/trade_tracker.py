from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from simtrader.core.types import ZERO, Bar, OrderResult, OrderSide, TradeInfo
from simtrader.execution.exit_rules import ExitState, ExitStrategy

logger = logging.getLogger(__name__)


class TradeTracker:
    """Follows the open position for the exit strategy.

    The trade opens on the first buy fill while flat. A later buy moves the
    entry price to that fill, matching the ledger's most-recent-buy P&L.
    The peak price follows bar closes. When the ledger is flat again the
    peak goes back to zero and the exit state is replaced once.
    """

    def __init__(self, exit_strategy: ExitStrategy | None = None) -> None:
        self._exit_strategy = exit_strategy
        self.state = self._fresh_state()
        self.entry_price: Decimal = ZERO
        self.entry_time: datetime | None = None
        self.highest_price: Decimal = ZERO
        self.closed_trades = 0

    @property
    def is_open(self) -> bool:
        return self.entry_time is not None

    def on_fills(self, fills: list[OrderResult], position: Decimal) -> None:
        """Apply this bar's fills; ``position`` is the ledger's position after them."""
        for fill in fills:
            if fill.side != OrderSide.BUY:
                continue
            if not self.is_open:
                self.entry_time = fill.timestamp
                self.highest_price = fill.price
            self.entry_price = fill.price
            self.highest_price = max(self.highest_price, fill.price)

        if self.is_open and position <= 0:
            self._close()

    def update(self, bar: Bar) -> TradeInfo | None:
        """Raise the peak with ``bar.close`` and return the trade view."""
        if not self.is_open or self.entry_price <= 0:
            return None
        self.highest_price = max(self.highest_price, bar.close)
        current_pnl = (bar.close - self.entry_price) / self.entry_price
        return TradeInfo(
            entry_price=self.entry_price,
            entry_time=self.entry_time,
            highest_price=self.highest_price,
            current_price=bar.close,
            current_pnl=current_pnl,
            holding_days=(bar.open_time - self.entry_time).days,
        )

    def _close(self) -> None:
        logger.debug("Trade closed: entry %s at %s", self.entry_price, self.entry_time)
        self.entry_price = ZERO
        self.entry_time = None
        self.highest_price = ZERO
        self.state = self._fresh_state()
        self.closed_trades += 1

    def _fresh_state(self) -> ExitState:
        if self._exit_strategy is None:
            return ExitState()
        return self._exit_strategy.new_state()
