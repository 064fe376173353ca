from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import aiosqlite

from simtrader.core.types import Bar


class SQLiteBarStore:
    """Bar history on disk. Prices are stored as TEXT to keep them exact."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        self._db = await aiosqlite.connect(self._db_path)
        await self._db.execute("""
            CREATE TABLE IF NOT EXISTS bars (
                symbol TEXT NOT NULL,
                open_time TEXT NOT NULL,
                close_time TEXT NOT NULL,
                open TEXT NOT NULL,
                high TEXT NOT NULL,
                low TEXT NOT NULL,
                close TEXT NOT NULL,
                volume TEXT NOT NULL,
                PRIMARY KEY (symbol, open_time)
            )
        """)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def save_bars(self, bars: list[Bar]) -> None:
        assert self._db is not None
        await self._db.executemany(
            "INSERT OR REPLACE INTO bars (symbol, open_time, close_time, open, high, low, close, volume) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    b.symbol, b.open_time.isoformat(), b.close_time.isoformat(),
                    str(b.open), str(b.high), str(b.low), str(b.close), str(b.volume),
                )
                for b in bars
            ],
        )
        await self._db.commit()

    async def load_bars(self, symbol: str, start: datetime, end: datetime) -> list[Bar]:
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT symbol, open_time, close_time, open, high, low, close, volume FROM bars "
            "WHERE symbol = ? AND open_time >= ? AND open_time < ? ORDER BY open_time",
            (symbol, start.isoformat(), end.isoformat()),
        )
        rows = await cursor.fetchall()
        return [
            Bar(
                symbol=r[0],
                open_time=datetime.fromisoformat(r[1]),
                close_time=datetime.fromisoformat(r[2]),
                open=Decimal(r[3]), high=Decimal(r[4]), low=Decimal(r[5]),
                close=Decimal(r[6]), volume=Decimal(r[7]),
            )
            for r in rows
        ]

    async def count(self, symbol: str) -> int:
        assert self._db is not None
        cursor = await self._db.execute("SELECT COUNT(*) FROM bars WHERE symbol = ?", (symbol,))
        row = await cursor.fetchone()
        return int(row[0]) if row else 0
