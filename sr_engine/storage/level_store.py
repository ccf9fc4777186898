"""
Level stores for computed S/R results.

Results are append-only: every calculation inserts a new record and
"latest" is always a query over history, never an update.
"""

import asyncio
import functools
import json
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..types import CandidateLevel, SRResult, Symbol, Timeframe
from ..utils.exceptions import PersistenceError
from ..utils.helpers import parse_symbol, parse_timeframe
from ..utils.logger import LoggerMixin


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class LevelStore(ABC):
    """Persistence contract for S/R results"""

    @abstractmethod
    async def insert(self, result: SRResult) -> None:
        """Append a result; raises PersistenceError on write failure"""

    @abstractmethod
    async def find_latest_valid(
        self,
        symbol: Union[str, Symbol],
        timeframe: Union[str, Timeframe],
        as_of: datetime
    ) -> Optional[SRResult]:
        """Most recently calculated result with ``valid_until > as_of``"""

    @abstractmethod
    async def find_latest(
        self,
        symbol: Union[str, Symbol],
        timeframe: Union[str, Timeframe]
    ) -> Optional[SRResult]:
        """Most recently calculated result regardless of validity"""

    @abstractmethod
    async def count_records(self, as_of: datetime) -> Dict[str, int]:
        """Total, valid and expired record counts"""


class InMemoryLevelStore(LevelStore):
    """Process-local store, mainly for tests and dry runs"""

    def __init__(self):
        self._records: List[SRResult] = []
        self._lock = threading.Lock()

    @property
    def records(self) -> List[SRResult]:
        with self._lock:
            return list(self._records)

    async def insert(self, result: SRResult) -> None:
        with self._lock:
            self._records.append(result)

    def _matching(self, symbol, timeframe) -> List[SRResult]:
        symbol, timeframe = parse_symbol(symbol), parse_timeframe(timeframe)
        with self._lock:
            matching = [r for r in self._records if r.symbol == symbol and r.timeframe == timeframe]
        return sorted(matching, key=lambda r: _utc(r.calculated_at), reverse=True)

    async def find_latest_valid(self, symbol, timeframe, as_of: datetime) -> Optional[SRResult]:
        as_of = _utc(as_of)
        for result in self._matching(symbol, timeframe):
            if _utc(result.valid_until) > as_of:
                return result
        return None

    async def find_latest(self, symbol, timeframe) -> Optional[SRResult]:
        matching = self._matching(symbol, timeframe)
        return matching[0] if matching else None

    async def count_records(self, as_of: datetime) -> Dict[str, int]:
        as_of = _utc(as_of)
        records = self.records
        valid = sum(1 for r in records if _utc(r.valid_until) > as_of)
        return {'total': len(records), 'valid': valid, 'expired': len(records) - valid}


_SCHEMA = """
CREATE TABLE IF NOT EXISTS support_resistance_levels (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symbol TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    current_price REAL NOT NULL,
    support1 REAL NOT NULL,
    support1_strength INTEGER NOT NULL,
    support1_sources TEXT NOT NULL,
    support2 REAL,
    support2_strength INTEGER,
    support2_sources TEXT,
    resistance1 REAL NOT NULL,
    resistance1_strength INTEGER NOT NULL,
    resistance1_sources TEXT NOT NULL,
    resistance2 REAL,
    resistance2_strength INTEGER,
    resistance2_sources TEXT,
    calculation_method TEXT NOT NULL DEFAULT 'hybrid',
    calculated_at TEXT NOT NULL,
    valid_until TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sr_symbol_timeframe_calculated
    ON support_resistance_levels (symbol, timeframe, calculated_at);
"""

_LEVEL_SLOTS = ('support1', 'support2', 'resistance1', 'resistance2')


class SQLiteLevelStore(LevelStore, LoggerMixin):
    """
    SQLite-backed append-only store.

    Timestamps are stored as UTC ISO-8601 strings so lexical order matches
    chronological order. Blocking sqlite calls run in the default executor.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.path = Path(db_path)
        self.set_log_context(db_path=str(self.path))
        try:
            if str(self.path) != ":memory:":
                self.path.parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._lock = threading.Lock()
            with self._lock:
                self._conn.executescript(_SCHEMA)
                self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(
                f"Cannot open level store at {self.path}",
                operation="open",
                original_exception=e
            ) from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, functools.partial(func, *args))

    # === Запись ===

    async def insert(self, result: SRResult) -> None:
        await self._run(self._insert_sync, result)
        self.logger.debug(
            "Levels stored",
            symbol=result.symbol.value,
            timeframe=result.timeframe.value,
            calculated_at=result.calculated_at.isoformat()
        )

    def _insert_sync(self, result: SRResult) -> None:
        data: Dict[str, Any] = {
            'symbol': result.symbol.value,
            'timeframe': result.timeframe.value,
            'current_price': result.current_price,
            'calculation_method': result.calculation_method,
            'calculated_at': _utc(result.calculated_at).isoformat(timespec='microseconds'),
            'valid_until': _utc(result.valid_until).isoformat(timespec='microseconds'),
        }
        for slot in _LEVEL_SLOTS:
            level: Optional[CandidateLevel] = getattr(result, slot)
            data[slot] = level.price if level else None
            data[f"{slot}_strength"] = level.strength if level else None
            data[f"{slot}_sources"] = json.dumps(list(level.sources)) if level else None

        columns = ", ".join(data.keys())
        placeholders = ", ".join("?" for _ in data)
        try:
            with self._lock, self._conn:
                self._conn.execute(
                    f"INSERT INTO support_resistance_levels ({columns}) VALUES ({placeholders})",
                    list(data.values())
                )
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to store levels for {result.symbol.value} {result.timeframe.value}",
                operation="insert",
                original_exception=e
            ) from e

    # === Чтение ===

    async def find_latest_valid(self, symbol, timeframe, as_of: datetime) -> Optional[SRResult]:
        return await self._run(
            self._find_sync,
            parse_symbol(symbol),
            parse_timeframe(timeframe),
            _utc(as_of).isoformat(timespec='microseconds')
        )

    async def find_latest(self, symbol, timeframe) -> Optional[SRResult]:
        return await self._run(self._find_sync, parse_symbol(symbol), parse_timeframe(timeframe), None)

    def _find_sync(self, symbol: Symbol, timeframe: Timeframe, as_of: Optional[str]) -> Optional[SRResult]:
        query = "SELECT * FROM support_resistance_levels WHERE symbol = ? AND timeframe = ?"
        params: List[Any] = [symbol.value, timeframe.value]
        if as_of is not None:
            query += " AND valid_until > ?"
            params.append(as_of)
        query += " ORDER BY calculated_at DESC, id DESC LIMIT 1"

        try:
            with self._lock:
                row = self._conn.execute(query, params).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError(
                f"Failed to read levels for {symbol.value} {timeframe.value}",
                operation="select",
                original_exception=e
            ) from e

        return self._row_to_result(row) if row is not None else None

    async def count_records(self, as_of: datetime) -> Dict[str, int]:
        return await self._run(self._count_sync, _utc(as_of).isoformat(timespec='microseconds'))

    def _count_sync(self, as_of: str) -> Dict[str, int]:
        try:
            with self._lock:
                row = self._conn.execute(
                    """
                    SELECT COUNT(*) AS total,
                           COALESCE(SUM(CASE WHEN valid_until > ? THEN 1 ELSE 0 END), 0) AS valid
                    FROM support_resistance_levels
                    """,
                    (as_of,)
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceError("Failed to count stored levels", operation="count", original_exception=e) from e

        total, valid = int(row['total']), int(row['valid'])
        return {'total': total, 'valid': valid, 'expired': total - valid}

    @staticmethod
    def _row_to_result(row: sqlite3.Row) -> SRResult:
        def level(slot: str) -> Optional[CandidateLevel]:
            if row[slot] is None:
                return None
            return CandidateLevel(
                price=float(row[slot]),
                strength=int(row[f"{slot}_strength"]),
                sources=tuple(json.loads(row[f"{slot}_sources"])),
            )

        return SRResult(
            symbol=Symbol(row['symbol']),
            timeframe=Timeframe(row['timeframe']),
            current_price=float(row['current_price']),
            support1=level('support1'),
            support2=level('support2'),
            resistance1=level('resistance1'),
            resistance2=level('resistance2'),
            calculated_at=datetime.fromisoformat(row['calculated_at']),
            valid_until=datetime.fromisoformat(row['valid_until']),
            calculation_method=row['calculation_method'],
        )
