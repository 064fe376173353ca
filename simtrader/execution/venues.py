"""Where a ledger fill actually happens.

The ledger owns cash and position in every mode. A venue only decides how
the fill is carried out: recorded locally for a backtest, or sent to an
exchange for live trading.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from decimal import Decimal

from simtrader.broker.base import ExchangeClient, ExchangeOrderRequest, TradingPair
from simtrader.core.exceptions import ConnectivityError, SimTraderError
from simtrader.core.types import FillRequest, OrderResult, OrderSide

logger = logging.getLogger(__name__)


class ExecutionVenue(ABC):
    name: str = "venue"

    @abstractmethod
    def execute(self, side: OrderSide, request: FillRequest, commission: Decimal) -> OrderResult:
        """Carry out the fill and return what actually happened.

        Raising leaves the ledger untouched.
        """


class BacktestVenue(ExecutionVenue):
    """Local bookkeeping only; fills at exactly the requested price."""

    name = "backtest"

    def execute(self, side: OrderSide, request: FillRequest, commission: Decimal) -> OrderResult:
        logger.info(
            "TRADE_RECORD side=%s order=%s qty=%s price=%s commission=%s time=%s reason=%s",
            side.value, request.order_id, request.quantity, request.price,
            commission, request.timestamp.isoformat(), request.reason,
        )
        return OrderResult(
            order_id=request.order_id,
            side=side,
            quantity=request.quantity,
            price=request.price,
            commission=commission,
            timestamp=request.timestamp,
            reason=request.reason,
            symbol=request.symbol,
        )


class LiveVenue(ExecutionVenue):
    """Sends the fill to an exchange after checking it is reachable."""

    name = "live"

    def __init__(self, client: ExchangeClient, pair: TradingPair) -> None:
        self._client = client
        self._pair = pair

    def execute(self, side: OrderSide, request: FillRequest, commission: Decimal) -> OrderResult:
        exchange_request = ExchangeOrderRequest(
            pair=self._pair,
            side=side,
            quantity=request.quantity,
            price=request.price,
            client_order_id=request.order_id,
        )
        try:
            self._client.ping()
            if side == OrderSide.BUY:
                response = self._client.buy(exchange_request)
            else:
                response = self._client.sell(exchange_request)
        except SimTraderError:
            raise
        except Exception as exc:
            raise ConnectivityError(self._client.name, f"{side.value} {request.order_id} failed: {exc}") from exc

        logger.info(
            "Exchange %s filled %s %s @ %s (exchange id %s)",
            self._client.name, side.value, response.quantity, response.price, response.order_id,
        )
        return OrderResult(
            order_id=request.order_id,
            side=side,
            quantity=response.quantity,
            price=response.price,
            commission=response.commission,
            timestamp=request.timestamp,
            reason=request.reason,
            symbol=request.symbol or self._pair.symbol,
        )
