"""Unit tests for core exceptions."""
from datetime import datetime, timezone
from decimal import Decimal

from simtrader.core.exceptions import (
    ConfigError,
    ConnectivityError,
    DataSourceError,
    InsufficientCash,
    InsufficientPosition,
    OperationCancelled,
    OrderError,
    OrderNotFound,
    SimTraderError,
    StrategyError,
    UnknownSignalType,
)
from simtrader.core.types import OrderResult, OrderSide


class TestExceptionHierarchy:
    def test_exception_hierarchy(self):
        assert issubclass(ConfigError, SimTraderError)
        assert issubclass(OrderError, SimTraderError)
        assert issubclass(InsufficientCash, OrderError)
        assert issubclass(InsufficientPosition, OrderError)
        assert issubclass(OrderNotFound, OrderError)
        assert issubclass(UnknownSignalType, SimTraderError)
        assert issubclass(StrategyError, SimTraderError)
        assert issubclass(DataSourceError, SimTraderError)
        assert issubclass(ConnectivityError, SimTraderError)
        assert issubclass(OperationCancelled, SimTraderError)

    def test_base_exception_is_exception(self):
        assert issubclass(SimTraderError, Exception)


class TestOrderErrors:
    def test_order_error_message(self):
        err = OrderError("buy_1", "rejected")
        assert str(err) == "[buy_1] Order error: rejected"
        assert err.order_id == "buy_1"
        assert err.reason == "rejected"
        assert err.result is None

    def test_insufficient_cash_carries_amounts_and_result(self):
        result = OrderResult(
            order_id="buy_1", side=OrderSide.BUY, quantity=Decimal("1"),
            price=Decimal("50000"), commission=Decimal("50"),
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
            success=False, error="insufficient_cash",
        )
        err = InsufficientCash("buy_1", Decimal("50050"), Decimal("10"), result)
        assert err.required == Decimal("50050")
        assert err.available == Decimal("10")
        assert err.result is result
        assert "need 50050, have 10" in str(err)

    def test_insufficient_position_message(self):
        err = InsufficientPosition("sell_1", Decimal("2"), Decimal("1"))
        assert "insufficient position" in str(err)
        assert err.required == Decimal("2")

    def test_order_not_found(self):
        err = OrderNotFound("missing")
        assert err.order_id == "missing"
        assert "not found" in str(err)


class TestOtherErrors:
    def test_unknown_signal_type_keeps_value(self):
        err = UnknownSignalType("HOLD")
        assert err.signal_type == "HOLD"
        assert "HOLD" in str(err)

    def test_connectivity_error_message(self):
        err = ConnectivityError("paper", "timeout")
        assert str(err) == "[paper] Connection failed: timeout"
        assert err.exchange == "paper"
        assert err.reason == "timeout"

    def test_catch_all_with_base(self):
        try:
            raise DataSourceError("no data")
        except SimTraderError as e:
            assert str(e) == "no data"
