"""Unit tests for Ledger (simtrader/execution/ledger.py)."""
from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from simtrader.core.exceptions import ConnectivityError, InsufficientCash, InsufficientPosition, OrderError
from simtrader.core.types import FillRequest, OrderResult, OrderSide
from simtrader.execution.ledger import Ledger
from simtrader.execution.venues import ExecutionVenue

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _req(quantity: str, price: str, order_id: str = "o", hours: int = 0) -> FillRequest:
    return FillRequest(
        order_id=order_id,
        quantity=Decimal(quantity),
        price=Decimal(price),
        timestamp=T0 + timedelta(hours=hours),
    )


class _BrokenVenue(ExecutionVenue):
    name = "broken"

    def execute(self, side, request, commission) -> OrderResult:
        raise ConnectivityError("test", "down")


class _CrashingVenue(ExecutionVenue):
    name = "crashing"

    def execute(self, side, request, commission) -> OrderResult:
        raise RuntimeError("HTTP 502")


@pytest.fixture
def ledger():
    return Ledger(Decimal("10000"), Decimal("0.001"))


class TestRoundTripScenario:
    def test_buy_then_sell(self, ledger):
        buy = ledger.buy(_req("0.1", "50000", "b1"))
        assert buy.commission == Decimal("5")
        assert ledger.cash == Decimal("4995")
        assert ledger.position == Decimal("0.1")

        sell = ledger.sell(_req("0.1", "55000", "s1", hours=1))
        assert sell.commission == Decimal("5.5")
        assert ledger.cash == Decimal("10489.5")
        assert ledger.position == Decimal("0")
        assert sell.realized_pnl == Decimal("494.5")

        stats = ledger.statistics()
        assert stats["winning_trades"] == 1
        assert stats["losing_trades"] == 0
        assert stats["total_trades"] == 2
        assert stats["total_commission"] == Decimal("10.5")
        assert stats["final_portfolio"] == Decimal("10489.5")
        assert stats["total_return"] == Decimal("0.04895")

    def test_history_in_order(self, ledger):
        ledger.buy(_req("0.1", "50000", "b1"))
        ledger.sell(_req("0.05", "51000", "s1"))
        assert [o.order_id for o in ledger.orders()] == ["b1", "s1"]
        assert all(o.success for o in ledger.orders())


class TestRejections:
    def test_insufficient_cash_no_mutation(self, ledger):
        with pytest.raises(InsufficientCash) as exc_info:
            ledger.buy(_req("1", "50000"))
        assert ledger.cash == Decimal("10000")
        assert ledger.position == Decimal("0")
        assert ledger.orders() == []
        result = exc_info.value.result
        assert result.success is False
        assert result.error == "insufficient_cash"

    def test_commission_counts_toward_cash_check(self):
        ledger = Ledger(Decimal("100"), Decimal("0.01"))
        with pytest.raises(InsufficientCash):
            ledger.buy(_req("1", "100"))
        ledger.buy(_req("0.99", "100"))
        assert ledger.cash == Decimal("0.01")

    def test_exact_cash_allowed(self):
        ledger = Ledger(Decimal("1001"), Decimal("0.001"))
        ledger.buy(_req("1", "1000"))
        assert ledger.cash == Decimal("0")

    def test_insufficient_position_no_mutation(self, ledger):
        ledger.buy(_req("0.1", "50000"))
        with pytest.raises(InsufficientPosition) as exc_info:
            ledger.sell(_req("0.2", "50000"))
        assert ledger.position == Decimal("0.1")
        assert ledger.cash == Decimal("4995")
        assert len(ledger.orders()) == 1
        assert exc_info.value.result.error == "insufficient_position"

    def test_venue_failure_no_mutation(self):
        ledger = Ledger(Decimal("10000"), venue=_BrokenVenue())
        with pytest.raises(ConnectivityError):
            ledger.buy(_req("0.1", "100"))
        assert ledger.cash == Decimal("10000")
        assert ledger.orders() == []

    def test_unexpected_venue_error_becomes_order_error(self):
        ledger = Ledger(Decimal("10000"), venue=_CrashingVenue())
        with pytest.raises(OrderError) as exc_info:
            ledger.buy(_req("0.1", "100", order_id="b1"))
        assert exc_info.value.order_id == "b1"
        assert "HTTP 502" in str(exc_info.value)
        assert ledger.cash == Decimal("10000")
        assert ledger.position == 0
        assert ledger.orders() == []

    def test_non_positive_quantity(self, ledger):
        with pytest.raises(ValueError):
            ledger.buy(_req("0", "100"))
        with pytest.raises(ValueError):
            ledger.sell(_req("1", "-1"))


class TestRealizedPnl:
    def test_uses_most_recent_buy(self, ledger):
        ledger.buy(_req("0.05", "40000", "b1"))
        ledger.buy(_req("0.05", "50000", "b2"))
        sell = ledger.sell(_req("0.1", "45000", "s1"))
        # matched against 50000, not a blended cost basis
        assert sell.realized_pnl == Decimal("0.1") * Decimal("-5000") - Decimal("4.5")
        assert ledger.statistics()["losing_trades"] == 1

    def test_partial_sells_match_same_buy(self, ledger):
        ledger.buy(_req("0.1", "50000"))
        first = ledger.sell(_req("0.05", "55000"))
        second = ledger.sell(_req("0.05", "60000"))
        assert first.realized_pnl == Decimal("0.05") * 5000 - Decimal("2.75")
        assert second.realized_pnl == Decimal("0.05") * 10000 - Decimal("3")


class TestPortfolio:
    def test_snapshot_marks_position(self, ledger):
        ledger.buy(_req("0.1", "50000"))
        snap = ledger.portfolio(mark_price=Decimal("60000"))
        assert snap.cash == Decimal("4995")
        assert snap.position == Decimal("0.1")
        assert snap.mark_price == Decimal("60000")
        assert snap.equity == Decimal("10995")

    def test_snapshot_defaults_to_last_fill_price(self, ledger):
        assert ledger.portfolio().equity == Decimal("10000")
        ledger.buy(_req("0.1", "50000"))
        assert ledger.portfolio().equity == Decimal("9995")

    def test_snapshot_is_immutable(self, ledger):
        snap = ledger.portfolio()
        with pytest.raises(FrozenInstanceError):
            snap.cash = Decimal("0")

    def test_orders_returns_copy(self, ledger):
        ledger.buy(_req("0.1", "50000"))
        ledger.orders().clear()
        assert len(ledger.orders()) == 1

    def test_invariants_over_sequence(self, ledger):
        ops = [
            ("buy", "0.1", "50000"), ("sell", "0.3", "50000"), ("buy", "1", "50000"),
            ("sell", "0.05", "52000"), ("buy", "0.05", "49000"), ("sell", "0.1", "51000"),
        ]
        for side, qty, price in ops:
            fn = ledger.buy if side == "buy" else ledger.sell
            try:
                fn(_req(qty, price))
            except (InsufficientCash, InsufficientPosition):
                pass
            assert ledger.cash >= 0
            assert ledger.position >= 0
        assert ledger.position == Decimal("0")
