"""Unit tests for OrderBookSimulator (simtrader/execution/order_book.py).

Tests cover:
- Buy limit: no fill while bar.low > limit, fill at open on a gap below the
  limit, fill at the limit otherwise
- Sell limit: no fill while bar.high < limit, fill at max(open, limit)
- Expiry is applied before fill evaluation on the same bar
- Ledger rejections keep the order pending across bars
- Optional max_fill_attempts auto-cancel
- place/cancel/cancel_all/pending_orders/count bookkeeping
- Concurrent readers while bars are processed
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from simtrader.core.exceptions import OrderNotFound
from simtrader.core.types import Bar, OrderSide, PendingOrder, PendingOrderType
from simtrader.execution.ledger import Ledger
from simtrader.execution.order_book import OrderBookSimulator, fill_price

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_bar(
    open_: str,
    high: str,
    low: str,
    close: str,
    hours: int = 0,
) -> Bar:
    t = T0 + timedelta(hours=hours)
    return Bar(
        open_time=t,
        close_time=t + timedelta(hours=1),
        open=Decimal(open_),
        high=Decimal(high),
        low=Decimal(low),
        close=Decimal(close),
        volume=Decimal("10"),
    )


def _make_order(
    order_id: str = "o1",
    order_type: PendingOrderType = PendingOrderType.BUY_LIMIT,
    quantity: str = "0.1",
    price: str = "50000",
    expire_hours: int | None = 24,
) -> PendingOrder:
    return PendingOrder(
        id=order_id,
        type=order_type,
        quantity=Decimal(quantity),
        price=Decimal(price),
        create_time=T0,
        expire_time=T0 + timedelta(hours=expire_hours) if expire_hours is not None else None,
    )


def _make_book(capital: str = "10000", **kwargs) -> tuple[OrderBookSimulator, Ledger]:
    ledger = Ledger(Decimal(capital), Decimal("0.001"))
    return OrderBookSimulator(ledger, **kwargs), ledger


# ---------------------------------------------------------------------------
# Fill pricing
# ---------------------------------------------------------------------------


class TestFillPrice:
    def test_buy_not_filled_when_low_above_limit(self):
        order = _make_order(price="100")
        assert fill_price(order, _make_bar("105", "110", "100.01", "106")) is None

    def test_buy_fills_at_limit_when_touched(self):
        order = _make_order(price="100")
        assert fill_price(order, _make_bar("105", "110", "100", "106")) == Decimal("100")

    def test_buy_fills_at_open_on_gap_down(self):
        order = _make_order(price="100")
        assert fill_price(order, _make_bar("95", "99", "94", "98")) == Decimal("95")

    def test_sell_not_filled_when_high_below_limit(self):
        order = _make_order(order_type=PendingOrderType.SELL_LIMIT, price="100")
        assert fill_price(order, _make_bar("95", "99.99", "94", "98")) is None

    def test_sell_fills_at_limit(self):
        order = _make_order(order_type=PendingOrderType.SELL_LIMIT, price="100")
        assert fill_price(order, _make_bar("95", "100", "94", "98")) == Decimal("100")

    def test_sell_fills_at_open_on_gap_up(self):
        order = _make_order(order_type=PendingOrderType.SELL_LIMIT, price="100")
        assert fill_price(order, _make_bar("104", "106", "103", "105")) == Decimal("104")


# ---------------------------------------------------------------------------
# check_and_execute
# ---------------------------------------------------------------------------


class TestCheckAndExecute:
    def test_buy_fill_updates_ledger_and_removes_order(self):
        book, ledger = _make_book()
        book.place(_make_order())
        fills = book.check_and_execute(_make_bar("50000", "50500", "49900", "50100", hours=1))

        assert len(fills) == 1
        assert fills[0].side == OrderSide.BUY
        assert fills[0].price == Decimal("50000")
        assert fills[0].timestamp == T0 + timedelta(hours=1)
        assert book.count() == 0
        assert ledger.cash == Decimal("4995")
        assert ledger.position == Decimal("0.1")

    def test_gap_fill_at_open(self):
        book, _ = _make_book()
        book.place(_make_order(price="50000"))
        fills = book.check_and_execute(_make_bar("48000", "49000", "47500", "48500", hours=1))
        assert fills[0].price == Decimal("48000")

    def test_no_fill_leaves_order_pending(self):
        book, ledger = _make_book()
        book.place(_make_order(price="50000"))
        assert book.check_and_execute(_make_bar("51000", "52000", "50001", "51500", hours=1)) == []
        assert book.count() == 1
        assert ledger.orders() == []

    def test_expired_order_not_filled_on_same_bar(self):
        book, ledger = _make_book()
        book.place(_make_order(price="50000", expire_hours=24))
        # price condition satisfied but the bar opens exactly at expiry
        fills = book.check_and_execute(_make_bar("49000", "49500", "48000", "49200", hours=24))
        assert fills == []
        assert book.count() == 0
        assert ledger.position == Decimal("0")

    def test_order_without_expiry_never_expires(self):
        book, _ = _make_book()
        book.place(_make_order(price="40000", expire_hours=None))
        book.check_and_execute(_make_bar("50000", "50000", "49000", "50000", hours=24 * 365))
        assert book.count() == 1

    def test_unaffordable_order_stays_pending(self):
        book, ledger = _make_book(capital="10")
        book.place(_make_order(quantity="1", price="50000", expire_hours=None))
        for h in range(1, 6):
            fills = book.check_and_execute(_make_bar("49000", "50000", "48000", "49500", hours=h))
            assert fills == []
            assert book.count() == 1
        assert ledger.cash == Decimal("10")
        assert ledger.position == Decimal("0")
        assert ledger.orders() == []

    def test_rejected_fill_retried_after_cash_arrives(self):
        book, ledger = _make_book(capital="10000")
        book.place(_make_order("big", quantity="0.3", price="50000", expire_hours=None))
        assert book.check_and_execute(_make_bar("50000", "50000", "50000", "50000", hours=1)) == []
        ledger._cash += Decimal("6000")
        fills = book.check_and_execute(_make_bar("50000", "50000", "50000", "50000", hours=2))
        assert [f.order_id for f in fills] == ["big"]

    def test_sell_without_position_stays_pending(self):
        book, _ = _make_book()
        book.place(_make_order(order_type=PendingOrderType.SELL_LIMIT, price="100"))
        assert book.check_and_execute(_make_bar("101", "102", "99", "101", hours=1)) == []
        assert book.count() == 1

    def test_multiple_fills_in_placement_order(self):
        book, ledger = _make_book(capital="100000")
        book.place(_make_order("a", quantity="0.1", price="50000"))
        book.place(_make_order("b", quantity="0.2", price="49000"))
        fills = book.check_and_execute(_make_bar("50000", "50000", "48000", "49000", hours=1))
        assert [f.order_id for f in fills] == ["a", "b"]
        assert ledger.position == Decimal("0.3")

    def test_max_fill_attempts_cancels(self):
        book, _ = _make_book(capital="10", max_fill_attempts=2)
        book.place(_make_order(quantity="1", price="50000", expire_hours=None))
        book.check_and_execute(_make_bar("49000", "50000", "48000", "49500", hours=1))
        assert book.count() == 1
        book.check_and_execute(_make_bar("49000", "50000", "48000", "49500", hours=2))
        assert book.count() == 0


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------


class TestBookkeeping:
    def test_place_then_cancel_round_trip(self):
        book, ledger = _make_book()
        book.place(_make_order())
        book.cancel("o1")
        assert book.count() == 0
        assert book.check_and_execute(_make_bar("40000", "40000", "40000", "40000", hours=1)) == []
        assert ledger.orders() == []

    def test_cancel_unknown_raises(self):
        book, _ = _make_book()
        with pytest.raises(OrderNotFound):
            book.cancel("nope")

    def test_cancel_all(self):
        book, _ = _make_book()
        book.place(_make_order("a"))
        book.place(_make_order("b", order_type=PendingOrderType.SELL_LIMIT))
        book.place(_make_order("c", order_type=PendingOrderType.SELL_LIMIT))
        assert book.cancel_all(PendingOrderType.SELL_LIMIT) == 2
        assert [o.id for o in book.pending_orders()] == ["a"]
        assert book.cancel_all() == 1
        assert book.count() == 0

    def test_pending_orders_is_a_copy(self):
        book, _ = _make_book()
        book.place(_make_order())
        snapshot = book.pending_orders()
        snapshot.clear()
        assert book.count() == 1

    def test_duplicate_id_rejected(self):
        book, _ = _make_book()
        book.place(_make_order())
        with pytest.raises(ValueError):
            book.place(_make_order())

    def test_non_positive_quantity_rejected(self):
        book, _ = _make_book()
        with pytest.raises(ValueError):
            book.place(_make_order(quantity="0"))


class TestConcurrency:
    def test_readers_during_processing(self):
        book, _ = _make_book(capital="1000000")
        for i in range(50):
            book.place(_make_order(f"o{i}", quantity="0.01", price="100", expire_hours=None))

        stop = threading.Event()
        seen: list[int] = []

        def reader():
            while not stop.is_set():
                seen.append(len(book.pending_orders()))

        t = threading.Thread(target=reader)
        t.start()
        try:
            for h in range(1, 20):
                book.check_and_execute(_make_bar("120", "130", "110", "125", hours=h))
            fills = book.check_and_execute(_make_bar("99", "101", "95", "100", hours=20))
        finally:
            stop.set()
            t.join()

        assert len(fills) == 50
        assert book.count() == 0
        assert all(n in (0, 50) for n in seen)
