"""
Shared fixtures: synthetic candle series and configuration.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Sequence, Tuple

import numpy as np
import pytest

from sr_engine.config.sr_config import SRConfig
from sr_engine.types import Candle

START = datetime(2026, 1, 1, tzinfo=timezone.utc)

Row = Tuple[float, float, float, float, float]  # open, high, low, close, volume


def build_candles(rows: Sequence[Row], minutes: int = 15, start: datetime = START) -> List[Candle]:
    """Candles from (open, high, low, close, volume) rows at a fixed spacing"""
    return [
        Candle(
            timestamp=start + timedelta(minutes=minutes * i),
            open=o, high=h, low=l, close=c, volume=v,
        )
        for i, (o, h, l, c, v) in enumerate(rows)
    ]


def leg(start: float, end: float, count: int, volume: float = 1000.0) -> List[Row]:
    """Trending candles with full bodies and 0.05 wicks on both sides"""
    step = (end - start) / count
    rows = []
    for i in range(count):
        open_ = start + step * i
        close = start + step * (i + 1)
        rows.append((open_, max(open_, close) + 0.05, min(open_, close) - 0.05, close, volume))
    return rows


# Floor base: rejection candle at 100.0 followed by a hammer at 100.1
FLOOR = [
    (100.9, 101.0, 100.0, 100.7, 2000.0),
    (100.7, 101.0, 100.1, 100.95, 2000.0),
]
# Ceiling base: rejection candle at 110.0 followed by a shooting star at 109.9
CEILING = [
    (109.1, 110.0, 109.0, 109.3, 2000.0),
    (109.3, 109.9, 109.05, 109.1, 2000.0),
]
# Last visit to the ceiling: one touch, then a lower rejection high
CEILING_LAST = [
    (109.1, 110.0, 109.0, 109.3, 2000.0),
    (109.3, 109.6, 109.2, 109.25, 2000.0),
]


def range_bound_rows() -> List[Row]:
    """
    50 candles trading between a floor at 100 and a ceiling at 110.

    The floor is touched 4 times, the ceiling 3 times, volume is flat at
    1000 except 2000 on the candles trading in 100-101 and 109-110.
    """
    rows: List[Row] = []
    rows += leg(104.625, 100.9, 5)
    rows += FLOOR
    rows += leg(100.95, 109.1, 11)
    rows += CEILING
    rows += leg(109.1, 100.9, 11)
    rows += FLOOR
    rows += leg(100.95, 109.1, 11)
    rows += CEILING_LAST
    rows += leg(109.25, 106.27, 4)
    return rows


@pytest.fixture
def sr_config():
    """Конфигурация по умолчанию"""
    return SRConfig()


@pytest.fixture
def range_bound_candles():
    """Свечи в диапазоне 100-110"""
    return build_candles(range_bound_rows())


@pytest.fixture
def flat_candles():
    """20 одинаковых свечей без признаков уровней"""
    return build_candles([(100.0, 101.0, 99.0, 100.0, 1000.0)] * 20)


@pytest.fixture
def random_candles():
    """Случайное блуждание цены, воспроизводимое через seed"""
    rng = np.random.default_rng(42)
    rows = []
    price = 50000.0
    for _ in range(100):
        open_ = price
        close = open_ * (1 + rng.normal(0, 0.004))
        high = max(open_, close) * (1 + abs(rng.normal(0, 0.002)) + 0.0001)
        low = min(open_, close) * (1 - abs(rng.normal(0, 0.002)) - 0.0001)
        rows.append((open_, high, low, close, float(rng.uniform(100, 1000))))
        price = close
    return build_candles(rows, minutes=60)
