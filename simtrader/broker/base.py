from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from simtrader.core.types import Bar, OrderSide


@dataclass(frozen=True)
class TradingPair:
    base: str
    quote: str

    @property
    def symbol(self) -> str:
        return f"{self.base}{self.quote}"


@dataclass(frozen=True)
class ExchangeOrderRequest:
    pair: TradingPair
    side: OrderSide
    quantity: Decimal
    price: Decimal
    client_order_id: str = ""


@dataclass(frozen=True)
class ExchangeOrderResult:
    order_id: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    commission: Decimal
    timestamp: datetime
    status: str = "filled"


@dataclass(frozen=True)
class AccountBalance:
    asset: str
    free: Decimal
    locked: Decimal = Decimal("0")


class ExchangeClient(ABC):
    """Method shapes the simulation core needs from an exchange.

    Transport, signing and retries live in concrete clients.
    """

    name: str = "exchange"

    @abstractmethod
    def get_bars(self, pair: TradingPair, interval: str, limit: int) -> list[Bar]: ...

    @abstractmethod
    def get_bars_in_range(
        self,
        pair: TradingPair,
        interval: str,
        start: datetime,
        end: datetime,
        limit: int,
    ) -> list[Bar]: ...

    @abstractmethod
    def buy(self, request: ExchangeOrderRequest) -> ExchangeOrderResult: ...

    @abstractmethod
    def sell(self, request: ExchangeOrderRequest) -> ExchangeOrderResult: ...

    @abstractmethod
    def get_account_balances(self) -> list[AccountBalance]: ...

    @abstractmethod
    def ping(self) -> None: ...
