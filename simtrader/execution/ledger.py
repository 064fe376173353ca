"""Cash/position ledger with commission and realized P&L accounting.

Each ``buy``/``sell`` is one transaction under the ledger lock: validate,
hand the fill to the venue, then apply it. A rejected or failed fill
leaves cash, position and order history exactly as they were.

Realized P&L on a sell is matched against the most recent buy in the
order history, not against per-lot cost basis. With several buys at
different prices the figure is approximate.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import replace
from decimal import Decimal

from simtrader.core.exceptions import InsufficientCash, InsufficientPosition, OrderError, SimTraderError
from simtrader.core.types import (
    ZERO,
    FillRequest,
    OrderResult,
    OrderSide,
    Portfolio,
    to_decimal,
)
from simtrader.execution.venues import BacktestVenue, ExecutionVenue

logger = logging.getLogger(__name__)


class Ledger:
    def __init__(
        self,
        initial_capital: Decimal | float | str,
        fee_rate: Decimal | float | str = Decimal("0.001"),
        venue: ExecutionVenue | None = None,
    ) -> None:
        self._initial_capital = to_decimal(initial_capital)
        self._fee_rate = to_decimal(fee_rate)
        if self._initial_capital < 0:
            raise ValueError("initial_capital must not be negative")
        if self._fee_rate < 0:
            raise ValueError("fee_rate must not be negative")
        self._venue = venue or BacktestVenue()
        self._cash = self._initial_capital
        self._position = ZERO
        self._last_price: Decimal | None = None
        self._orders: list[OrderResult] = []
        self._lock = threading.RLock()

    @property
    def initial_capital(self) -> Decimal:
        return self._initial_capital

    @property
    def fee_rate(self) -> Decimal:
        return self._fee_rate

    @property
    def cash(self) -> Decimal:
        with self._lock:
            return self._cash

    @property
    def position(self) -> Decimal:
        with self._lock:
            return self._position

    # ------------------------------------------------------------------
    # Fills
    # ------------------------------------------------------------------

    def buy(self, request: FillRequest) -> OrderResult:
        _validate(request)
        with self._lock:
            notional = request.quantity * request.price
            commission = notional * self._fee_rate
            if self._cash < notional + commission:
                raise InsufficientCash(
                    request.order_id,
                    notional + commission,
                    self._cash,
                    self._rejected(OrderSide.BUY, request, commission, "insufficient_cash"),
                )

            result = self._normalize(self._execute(OrderSide.BUY, request, commission))
            cost = result.notional + result.commission
            if cost > self._cash:
                raise InsufficientCash(request.order_id, cost, self._cash, result)

            self._cash -= cost
            self._position += result.quantity
            self._last_price = result.price
            self._orders.append(result)
            logger.debug(
                "BUY %s @ %s fee %s -> cash %s position %s",
                result.quantity, result.price, result.commission, self._cash, self._position,
            )
            return result

    def sell(self, request: FillRequest) -> OrderResult:
        _validate(request)
        with self._lock:
            notional = request.quantity * request.price
            commission = notional * self._fee_rate
            if self._position < request.quantity:
                raise InsufficientPosition(
                    request.order_id,
                    request.quantity,
                    self._position,
                    self._rejected(OrderSide.SELL, request, commission, "insufficient_position"),
                )

            result = self._normalize(self._execute(OrderSide.SELL, request, commission))
            if result.quantity > self._position:
                raise InsufficientPosition(request.order_id, result.quantity, self._position, result)

            buy_price = self._last_buy_price()
            pnl = None
            if buy_price is not None:
                pnl = result.quantity * (result.price - buy_price) - result.commission
            result = replace(result, realized_pnl=pnl)

            self._cash += result.notional - result.commission
            self._position -= result.quantity
            self._last_price = result.price
            self._orders.append(result)
            logger.debug(
                "SELL %s @ %s fee %s pnl %s -> cash %s position %s",
                result.quantity, result.price, result.commission, pnl, self._cash, self._position,
            )
            return result

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def portfolio(self, mark_price: Decimal | None = None) -> Portfolio:
        with self._lock:
            mark = mark_price if mark_price is not None else self._last_price
            equity = self._cash + self._position * (mark if mark is not None else ZERO)
            return Portfolio(
                cash=self._cash,
                position=self._position,
                mark_price=mark,
                equity=equity,
            )

    def orders(self) -> list[OrderResult]:
        with self._lock:
            return list(self._orders)

    def statistics(self) -> dict:
        """Running counters over the order history."""
        with self._lock:
            final = self.portfolio().equity
            sells = [o for o in self._orders if o.side == OrderSide.SELL and o.realized_pnl is not None]
            total_return = ZERO
            if self._initial_capital > 0:
                total_return = (final - self._initial_capital) / self._initial_capital
            return {
                "initial_capital": self._initial_capital,
                "final_portfolio": final,
                "total_return": total_return,
                "total_trades": len(self._orders),
                "winning_trades": sum(1 for o in sells if o.realized_pnl > 0),
                "losing_trades": sum(1 for o in sells if o.realized_pnl < 0),
                "total_commission": sum((o.commission for o in self._orders), ZERO),
                "cash": self._cash,
                "position": self._position,
            }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, side: OrderSide, request: FillRequest, commission: Decimal) -> OrderResult:
        try:
            return self._venue.execute(side, request, commission)
        except SimTraderError:
            raise
        except Exception as exc:
            raise OrderError(request.order_id, f"{self._venue.name} venue failed: {exc}") from exc

    def _normalize(self, result: OrderResult) -> OrderResult:
        # The ledger's fee schedule is authoritative, whatever the venue reports
        if result.quantity <= 0 or result.price <= 0:
            raise OrderError(result.order_id, "venue returned an empty fill")
        return replace(result, commission=result.quantity * result.price * self._fee_rate, success=True)

    def _last_buy_price(self) -> Decimal | None:
        for order in reversed(self._orders):
            if order.side == OrderSide.BUY:
                return order.price
        return None

    @staticmethod
    def _rejected(side: OrderSide, request: FillRequest, commission: Decimal, error: str) -> OrderResult:
        return OrderResult(
            order_id=request.order_id,
            side=side,
            quantity=request.quantity,
            price=request.price,
            commission=commission,
            timestamp=request.timestamp,
            success=False,
            error=error,
            reason=request.reason,
            symbol=request.symbol,
        )


def _validate(request: FillRequest) -> None:
    if request.quantity <= 0:
        raise ValueError(f"quantity must be positive, got {request.quantity}")
    if request.price <= 0:
        raise ValueError(f"price must be positive, got {request.price}")
