"""Pending limit orders matched against OHLC bars.

Per bar, in order:
  1. Orders with ``expire_time <= bar.open_time`` are dropped unfilled.
  2. Buy limits fill when ``bar.low <= price`` at ``min(bar.open, price)``;
     sell limits fill when ``bar.high >= price`` at ``max(bar.open, price)``.
  3. Fills go through the ledger. A rejected fill stays pending and is
     tried again on the next bar.
  4. Filled orders leave the book; the successful fills are returned.

The pending map and the fill loop share one lock so other threads may
inspect the book while a run is in progress.
"""
from __future__ import annotations

import logging
import threading
from decimal import Decimal

from simtrader.core.exceptions import OrderNotFound, SimTraderError
from simtrader.core.types import Bar, FillRequest, OrderResult, PendingOrder, PendingOrderType
from simtrader.execution.ledger import Ledger

logger = logging.getLogger(__name__)


def fill_price(order: PendingOrder, bar: Bar) -> Decimal | None:
    """Price the order fills at on ``bar``, or ``None`` if it does not fill."""
    if order.type == PendingOrderType.BUY_LIMIT:
        if bar.low <= order.price:
            return min(bar.open, order.price)
        return None
    if bar.high >= order.price:
        return max(bar.open, order.price)
    return None


class OrderBookSimulator:
    def __init__(self, ledger: Ledger, max_fill_attempts: int | None = None) -> None:
        if max_fill_attempts is not None and max_fill_attempts <= 0:
            raise ValueError("max_fill_attempts must be positive")
        self._ledger = ledger
        self._max_fill_attempts = max_fill_attempts
        # dicts keep insertion order, which is the evaluation order
        self._pending: dict[str, PendingOrder] = {}
        self._attempts: dict[str, int] = {}
        self._lock = threading.RLock()

    def place(self, order: PendingOrder) -> None:
        if order.quantity <= 0 or order.price <= 0:
            raise ValueError(f"order {order.id} needs positive quantity and price")
        with self._lock:
            if order.id in self._pending:
                raise ValueError(f"duplicate order id: {order.id}")
            self._pending[order.id] = order
        logger.debug(
            "Placed %s %s qty=%s @ %s expires=%s",
            order.type.value, order.id, order.quantity, order.price, order.expire_time,
        )

    def cancel(self, order_id: str) -> None:
        with self._lock:
            if order_id not in self._pending:
                raise OrderNotFound(order_id)
            del self._pending[order_id]
            self._attempts.pop(order_id, None)

    def cancel_all(self, order_type: PendingOrderType | None = None) -> int:
        """Remove every pending order, or only those of ``order_type``."""
        with self._lock:
            ids = [
                oid for oid, o in self._pending.items()
                if order_type is None or o.type == order_type
            ]
            for oid in ids:
                del self._pending[oid]
                self._attempts.pop(oid, None)
            return len(ids)

    def pending_orders(self) -> list[PendingOrder]:
        with self._lock:
            return list(self._pending.values())

    def count(self) -> int:
        with self._lock:
            return len(self._pending)

    def check_and_execute(self, bar: Bar) -> list[OrderResult]:
        with self._lock:
            self._expire(bar)

            fills: list[OrderResult] = []
            for order in list(self._pending.values()):
                price = fill_price(order, bar)
                if price is None:
                    continue

                request = FillRequest(
                    order_id=order.id,
                    quantity=order.quantity,
                    price=price,
                    timestamp=bar.open_time,
                    reason=order.reason,
                    symbol=order.symbol or bar.symbol,
                )
                try:
                    if order.type == PendingOrderType.BUY_LIMIT:
                        result = self._ledger.buy(request)
                    else:
                        result = self._ledger.sell(request)
                except SimTraderError as exc:
                    self._record_failure(order, exc)
                    continue

                del self._pending[order.id]
                self._attempts.pop(order.id, None)
                fills.append(result)
                logger.info(
                    "Filled %s %s qty=%s @ %s",
                    order.type.value, order.id, result.quantity, result.price,
                )
            return fills

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _expire(self, bar: Bar) -> None:
        expired = [oid for oid, o in self._pending.items() if o.is_expired(bar.open_time)]
        for oid in expired:
            del self._pending[oid]
            self._attempts.pop(oid, None)
            logger.info("Order %s expired at %s", oid, bar.open_time)

    def _record_failure(self, order: PendingOrder, exc: SimTraderError) -> None:
        attempts = self._attempts.get(order.id, 0) + 1
        self._attempts[order.id] = attempts
        if self._max_fill_attempts is not None and attempts >= self._max_fill_attempts:
            del self._pending[order.id]
            del self._attempts[order.id]
            logger.warning(
                "Order %s cancelled after %d failed fill attempts: %s",
                order.id, attempts, exc,
            )
            return
        logger.warning("Order %s not filled, kept pending: %s", order.id, exc)
