"""
Helper utilities for the support/resistance engine.

Symbol/timeframe parsing at the system boundary, strength rounding,
candle validation and conversion to the DataFrame used by the analyzers.
"""

import math
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from ..types import Candle, Symbol, Timeframe
from .exceptions import ComputationError, UnsupportedMarketError

OHLCV_COLUMNS = ['timestamp', 'open', 'high', 'low', 'close', 'volume']

MIN_STRENGTH = 1
MAX_STRENGTH = 10


def parse_symbol(symbol: Union[str, Symbol]) -> Symbol:
    """
    Преобразование строки в поддерживаемый символ

    Args:
        symbol: Символ ("BTC", "btc") или торговая пара ("BTC/USDT")

    Returns:
        Значение Symbol

    Raises:
        UnsupportedMarketError: Если символ не поддерживается
    """
    if isinstance(symbol, Symbol):
        return symbol
    if not isinstance(symbol, str):
        raise UnsupportedMarketError(f"Symbol must be string, got {type(symbol).__name__}")

    normalized = symbol.upper().strip()
    if '/' in normalized:
        normalized = normalized.split('/', 1)[0]

    try:
        return Symbol(normalized)
    except ValueError:
        supported = ', '.join(s.value for s in Symbol)
        raise UnsupportedMarketError(
            f"Unsupported symbol: {symbol}. Supported: {supported}",
            symbol=symbol
        ) from None


def parse_timeframe(timeframe: Union[str, Timeframe]) -> Timeframe:
    """
    Преобразование строки в поддерживаемый таймфрейм

    Raises:
        UnsupportedMarketError: Если таймфрейм не поддерживается
    """
    if isinstance(timeframe, Timeframe):
        return timeframe
    if not isinstance(timeframe, str):
        raise UnsupportedMarketError(f"Timeframe must be string, got {type(timeframe).__name__}")

    try:
        return Timeframe(timeframe.lower().strip())
    except ValueError:
        supported = ', '.join(t.value for t in Timeframe)
        raise UnsupportedMarketError(
            f"Unsupported timeframe: {timeframe}. Supported: {supported}",
            timeframe=timeframe
        ) from None


def symbol_to_trading_pair(symbol: Union[str, Symbol], quote: str = "USDT") -> str:
    """BTC -> BTC/USDT"""
    return parse_symbol(symbol).trading_pair(quote)


def trading_pair_to_symbol(trading_pair: str) -> Symbol:
    """BTC/USDT -> Symbol.BTC"""
    return parse_symbol(trading_pair.split('/', 1)[0])


def round_half_up(value: float) -> int:
    """
    Округление к ближайшему целому, половины вверх (2.5 -> 3)

    Встроенный round() округляет половины к четному, что меняет силу уровней.
    """
    return int(Decimal(repr(float(value))).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def clamp_strength(value: float, minimum: int = MIN_STRENGTH, maximum: int = MAX_STRENGTH) -> int:
    """Округление и ограничение силы уровня диапазоном [minimum, maximum]"""
    return max(minimum, min(maximum, round_half_up(value)))


def relative_distance(price: float, reference: float) -> float:
    """Относительное расстояние |price - reference| / reference"""
    if price == reference:
        return 0.0
    if reference == 0:
        return math.inf
    return abs(price - reference) / abs(reference)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """
    Конвертация последовательности свечей в DataFrame

    Args:
        candles: Свечи от старых к новым

    Returns:
        DataFrame с колонками timestamp, open, high, low, close, volume
    """
    rows = [
        (c.timestamp, float(c.open), float(c.high), float(c.low), float(c.close), float(c.volume))
        for c in candles
    ]
    frame = pd.DataFrame(rows, columns=OHLCV_COLUMNS)
    for column in OHLCV_COLUMNS[1:]:
        frame[column] = frame[column].astype(np.float64)
    return frame


def candles_from_ohlcv(rows: Sequence[Sequence[float]]) -> List[Candle]:
    """
    Конвертация сырых строк биржи [ts_ms, o, h, l, c, v] в свечи
    """
    return [
        Candle(
            timestamp=pd.Timestamp(int(row[0]), unit='ms', tz='UTC').to_pydatetime(),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        )
        for row in rows
    ]


def validate_candles(df: pd.DataFrame, required_cols: Optional[List[str]] = None) -> bool:
    """
    Валидация OHLCV данных перед анализом

    Args:
        df: DataFrame со свечами
        required_cols: Обязательные колонки (по умолчанию OHLCV + timestamp)

    Returns:
        True если данные валидны

    Raises:
        ComputationError: При нарушении инвариантов свечей
    """
    if required_cols is None:
        required_cols = OHLCV_COLUMNS

    missing_cols = [col for col in required_cols if col not in df.columns]
    if missing_cols:
        raise ComputationError(f"Missing required columns: {missing_cols}")

    if df.empty:
        return True

    numeric_cols = ['open', 'high', 'low', 'close', 'volume']
    for col in numeric_cols:
        if not pd.api.types.is_numeric_dtype(df[col]):
            raise ComputationError(f"Column {col} must be numeric")
        if not np.isfinite(df[col].to_numpy()).all():
            raise ComputationError(f"Column {col} contains non-finite values")

    # Временные метки строго возрастают
    timestamps = pd.to_datetime(df['timestamp'], utc=True)
    if not (timestamps.is_monotonic_increasing and timestamps.is_unique):
        bad_index = int(np.argmax(timestamps.diff().dt.total_seconds().fillna(1).to_numpy() <= 0))
        raise ComputationError(
            "Candle timestamps must be strictly increasing",
            validation_errors={
                'index': bad_index,
                'timestamp': str(timestamps.iloc[bad_index]),
            }
        )

    invalid_high = df['high'] < df[['open', 'close']].max(axis=1)
    if invalid_high.any():
        raise ComputationError(
            "High price must be >= max(open, close)",
            validation_errors={'index': int(invalid_high.to_numpy().argmax())}
        )

    invalid_low = df['low'] > df[['open', 'close']].min(axis=1)
    if invalid_low.any():
        raise ComputationError(
            "Low price must be <= min(open, close)",
            validation_errors={'index': int(invalid_low.to_numpy().argmax())}
        )

    for col in numeric_cols:
        if (df[col] < 0).any():
            raise ComputationError(f"Column {col} contains negative values")

    return True


def format_price(price: float) -> str:
    """
    Форматирование цены с автоматическим выбором precision
    """
    try:
        price = float(price)
    except (ValueError, TypeError):
        return "N/A"

    if price >= 1000:
        precision = 2
    elif price >= 1:
        precision = 4
    elif price >= 0.01:
        precision = 6
    else:
        precision = 8

    return f"${price:,.{precision}f}"
