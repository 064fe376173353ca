from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


def to_decimal(value: Decimal | float | int | str) -> Decimal:
    """Convert a number to Decimal through its string form.

    ``to_decimal(0.05)`` is exactly ``Decimal("0.05")``, not the binary
    float expansion.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


ZERO = Decimal("0")
ONE = Decimal("1")


class OrderSide(str, enum.Enum):
    BUY = "buy"
    SELL = "sell"


class PendingOrderType(str, enum.Enum):
    BUY_LIMIT = "buy_limit"
    SELL_LIMIT = "sell_limit"

    @property
    def side(self) -> OrderSide:
        return OrderSide.BUY if self is PendingOrderType.BUY_LIMIT else OrderSide.SELL


class SignalType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    CLOSE = "CLOSE"


@dataclass(frozen=True)
class Bar:
    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal
    symbol: str = ""


@dataclass(frozen=True)
class Signal:
    type: SignalType | str
    strength: Decimal = ONE
    reason: str = ""
    timestamp: datetime | None = None


@dataclass(frozen=True)
class PendingOrder:
    id: str
    type: PendingOrderType
    quantity: Decimal
    price: Decimal
    create_time: datetime
    expire_time: datetime | None = None
    reason: str = ""
    origin_signal: SignalType | str | None = None
    symbol: str = ""

    def is_expired(self, at: datetime) -> bool:
        return self.expire_time is not None and self.expire_time <= at


@dataclass(frozen=True)
class FillRequest:
    """What the order book asks the ledger to execute."""

    order_id: str
    quantity: Decimal
    price: Decimal
    timestamp: datetime
    reason: str = ""
    symbol: str = ""


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    side: OrderSide
    quantity: Decimal
    price: Decimal
    commission: Decimal
    timestamp: datetime
    success: bool = True
    error: str | None = None
    realized_pnl: Decimal | None = None
    reason: str = ""
    symbol: str = ""

    @property
    def notional(self) -> Decimal:
        return self.quantity * self.price


@dataclass(frozen=True)
class Portfolio:
    cash: Decimal
    position: Decimal
    mark_price: Decimal | None = None
    equity: Decimal = ZERO
    timestamp: datetime | None = None


@dataclass(frozen=True)
class TradeInfo:
    """Read-only view of the open trade handed to exit strategies.

    ``current_pnl`` is a fraction: 0.15 means +15 % over entry.
    """

    entry_price: Decimal
    entry_time: datetime
    highest_price: Decimal
    current_price: Decimal
    current_pnl: Decimal
    holding_days: int

    @property
    def peak_pnl(self) -> Decimal:
        if self.entry_price <= 0:
            return ZERO
        return (self.highest_price - self.entry_price) / self.entry_price
