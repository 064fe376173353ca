"""Core exception hierarchy for SimTrader.

Every error the simulation core raises derives from ``SimTraderError`` so
callers can catch all framework errors with a single except clause.
"""
from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from simtrader.core.types import OrderResult


class SimTraderError(Exception):
    """Base exception class for all SimTrader errors."""


class ConfigError(SimTraderError):
    """Invalid settings, unknown strategy names or malformed parameters."""


class OrderError(SimTraderError):
    """Order placement and execution errors.

    Attributes:
        order_id: Identifier of the problematic order.
        reason: Detailed reason for the failure.
        result: Failed ``OrderResult`` when the ledger produced one.
    """

    def __init__(self, order_id: str, reason: str, result: OrderResult | None = None):
        super().__init__(f"[{order_id}] Order error: {reason}")
        self.order_id = order_id
        self.reason = reason
        self.result = result


class InsufficientCash(OrderError):
    """Raised when a buy would drive cash below zero.

    Attributes:
        required: Notional plus commission.
        available: Cash on hand when the buy was attempted.
    """

    def __init__(
        self,
        order_id: str,
        required: Decimal,
        available: Decimal,
        result: OrderResult | None = None,
    ):
        super().__init__(
            order_id,
            f"insufficient cash: need {required}, have {available}",
            result,
        )
        self.required = required
        self.available = available


class InsufficientPosition(OrderError):
    """Raised when a sell asks for more units than are held."""

    def __init__(
        self,
        order_id: str,
        required: Decimal,
        available: Decimal,
        result: OrderResult | None = None,
    ):
        super().__init__(
            order_id,
            f"insufficient position: need {required}, have {available}",
            result,
        )
        self.required = required
        self.available = available


class OrderNotFound(OrderError):
    """Raised when cancelling an order id that is not pending."""

    def __init__(self, order_id: str):
        super().__init__(order_id, "order not found")


class UnknownSignalType(SimTraderError):
    """A signal carried a type the orchestrator does not handle.

    Attributes:
        signal_type: The offending type value.
    """

    def __init__(self, signal_type: object):
        super().__init__(f"Unknown signal type: {signal_type!r}")
        self.signal_type = signal_type


class StrategyError(SimTraderError):
    """Strategy execution and logic errors.

    Raised when an entry strategy fails while producing signals for a bar.
    """


class DataSourceError(SimTraderError):
    """Bar source failures: no data, failed start or failed fetch."""


class ConnectivityError(SimTraderError):
    """Exchange connectivity failures.

    Attributes:
        exchange: Name of the exchange that could not be reached.
        reason: Detailed reason for the failure.
    """

    def __init__(self, exchange: str, reason: str):
        super().__init__(f"[{exchange}] Connection failed: {reason}")
        self.exchange = exchange
        self.reason = reason


class OperationCancelled(SimTraderError):
    """The caller's cancellation event fired during a blocking call."""
