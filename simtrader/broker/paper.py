from __future__ import annotations

import threading
import uuid
from datetime import datetime
from decimal import Decimal

from simtrader.broker.base import (
    AccountBalance,
    ExchangeClient,
    ExchangeOrderRequest,
    ExchangeOrderResult,
    TradingPair,
)
from simtrader.core.exceptions import ConnectivityError, InsufficientCash, InsufficientPosition
from simtrader.core.types import Bar, OrderSide


class PaperExchange(ExchangeClient):
    """In-memory exchange for dry runs and tests.

    ``get_bars`` walks forward through the supplied bars, one bar per call,
    so a live bar source polling it sees a new "latest" candle each tick.
    Orders fill immediately at the requested price.
    """

    name = "paper"

    def __init__(
        self,
        bars: list[Bar] | None = None,
        quote_balance: Decimal = Decimal("10000"),
        fee_rate: Decimal = Decimal("0.001"),
    ) -> None:
        self._bars = sorted(bars or [], key=lambda b: b.open_time)
        self._cursor = 0
        self._fee_rate = fee_rate
        self._balances: dict[str, Decimal] = {"quote": quote_balance, "base": Decimal("0")}
        self._lock = threading.Lock()
        self.connected = True
        self.fetch_count = 0
        self.orders: list[ExchangeOrderResult] = []

    def get_bars(self, pair: TradingPair, interval: str, limit: int) -> list[Bar]:
        with self._lock:
            self.fetch_count += 1
            if not self._bars:
                return []
            end = min(self._cursor + 1, len(self._bars))
            if self._cursor < len(self._bars) - 1:
                self._cursor += 1
            return self._bars[max(0, end - limit):end]

    def get_bars_in_range(
        self,
        pair: TradingPair,
        interval: str,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[Bar]:
        selected = [b for b in self._bars if start <= b.open_time < end]
        return selected[:limit]

    def buy(self, request: ExchangeOrderRequest) -> ExchangeOrderResult:
        return self._fill(request)

    def sell(self, request: ExchangeOrderRequest) -> ExchangeOrderResult:
        return self._fill(request)

    def get_account_balances(self) -> list[AccountBalance]:
        with self._lock:
            return [AccountBalance(asset=k, free=v) for k, v in self._balances.items()]

    def ping(self) -> None:
        if not self.connected:
            raise ConnectivityError(self.name, "exchange unreachable")

    def _fill(self, request: ExchangeOrderRequest) -> ExchangeOrderResult:
        notional = request.quantity * request.price
        commission = notional * self._fee_rate
        order_id = request.client_order_id or uuid.uuid4().hex
        with self._lock:
            if request.side == OrderSide.BUY:
                if self._balances["quote"] < notional + commission:
                    raise InsufficientCash(order_id, notional + commission, self._balances["quote"])
                self._balances["quote"] -= notional + commission
                self._balances["base"] += request.quantity
            else:
                if self._balances["base"] < request.quantity:
                    raise InsufficientPosition(order_id, request.quantity, self._balances["base"])
                self._balances["quote"] += notional - commission
                self._balances["base"] -= request.quantity
            stamp = self._bars[self._cursor].open_time if self._bars else datetime.now()
            result = ExchangeOrderResult(
                order_id=order_id,
                side=request.side,
                quantity=request.quantity,
                price=request.price,
                commission=commission,
                timestamp=stamp,
            )
            self.orders.append(result)
            return result
