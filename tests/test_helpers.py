"""
Тесты для вспомогательных функций
"""

from dataclasses import replace
from datetime import datetime, timezone

import numpy as np
import pytest

from sr_engine.types import Symbol, Timeframe, canonical_sources
from sr_engine.utils.exceptions import ComputationError, UnsupportedMarketError
from sr_engine.utils.helpers import (
    candles_from_ohlcv,
    candles_to_frame,
    clamp_strength,
    format_price,
    parse_symbol,
    parse_timeframe,
    relative_distance,
    round_half_up,
    symbol_to_trading_pair,
    trading_pair_to_symbol,
    validate_candles,
)


class TestParsing:
    """Тесты разбора символов и таймфреймов"""

    @pytest.mark.parametrize("raw", ["BTC", "btc", " Btc ", "BTC/USDT", Symbol.BTC])
    def test_parse_symbol(self, raw):
        """Разные формы записи символа"""
        assert parse_symbol(raw) is Symbol.BTC

    @pytest.mark.parametrize("raw", ["XRP", "", "USDT/BTC", 42])
    def test_parse_symbol_unsupported(self, raw):
        """Неподдерживаемые символы"""
        with pytest.raises(UnsupportedMarketError):
            parse_symbol(raw)

    def test_parse_timeframe(self):
        """Таймфреймы"""
        assert parse_timeframe("15m") is Timeframe.M15
        assert parse_timeframe("1H") is Timeframe.H1
        assert parse_timeframe(Timeframe.H4) is Timeframe.H4

    @pytest.mark.parametrize("raw", ["1d", "5m", None])
    def test_parse_timeframe_unsupported(self, raw):
        """Неподдерживаемые таймфреймы"""
        with pytest.raises(UnsupportedMarketError):
            parse_timeframe(raw)

    def test_trading_pairs(self):
        """Преобразование символа в торговую пару и обратно"""
        assert symbol_to_trading_pair("sol") == "SOL/USDT"
        assert symbol_to_trading_pair(Symbol.DOGE, quote="USDC") == "DOGE/USDC"
        assert trading_pair_to_symbol("BNB/USDT") is Symbol.BNB

    def test_timeframe_minutes(self):
        """Длительность таймфрейма в минутах"""
        assert [t.minutes for t in Timeframe] == [15, 60, 240]


class TestStrengthHelpers:
    """Тесты округления и ограничения силы"""

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (0.5, 1), (1.4, 1), (1.5, 2), (3.5, 4), (0.3, 0)])
    def test_round_half_up(self, value, expected):
        """Половины округляются вверх"""
        assert round_half_up(value) == expected

    @pytest.mark.parametrize("value,expected", [(0.2, 1), (5.5, 6), (14.0, 10), (-3.0, 1)])
    def test_clamp_strength(self, value, expected):
        """Сила в диапазоне [1, 10]"""
        assert clamp_strength(value) == expected

    def test_relative_distance(self):
        """Относительное расстояние"""
        assert relative_distance(100.4, 100.0) == pytest.approx(0.004)
        assert relative_distance(100.0, 0.0) == float('inf')
        assert relative_distance(0.0, 0.0) == 0.0

    def test_canonical_sources(self):
        """Источники без повторов в фиксированном порядке"""
        assert canonical_sources(["price_action", "volume_profile", "price_action"]) == (
            "volume_profile", "price_action",
        )


class TestCandleConversion:
    """Тесты конвертации свечей"""

    def test_candles_from_ohlcv(self):
        """Миллисекунды биржи в UTC datetime"""
        candles = candles_from_ohlcv([[1767225600000, "1", "2", "0.5", "1.5", "100"]])

        assert candles[0].timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert candles[0].high == 2.0
        assert candles[0].body == 0.5
        assert candles[0].range == 1.5
        assert candles[0].midpoint == 1.25

    def test_candles_to_frame(self, range_bound_candles):
        """DataFrame с колонками OHLCV"""
        frame = candles_to_frame(range_bound_candles)

        assert list(frame.columns) == ['timestamp', 'open', 'high', 'low', 'close', 'volume']
        assert len(frame) == 50
        assert frame['close'].dtype == np.float64

    def test_empty_frame(self):
        """Пустой список свечей"""
        frame = candles_to_frame([])

        assert frame.empty
        assert validate_candles(frame)


class TestValidateCandles:
    """Тесты валидации свечей"""

    def test_valid(self, range_bound_candles):
        """Корректные свечи"""
        assert validate_candles(candles_to_frame(range_bound_candles))

    def test_missing_columns(self, range_bound_candles):
        """Отсутствующая колонка"""
        frame = candles_to_frame(range_bound_candles).drop(columns=['volume'])

        with pytest.raises(ComputationError):
            validate_candles(frame)

    def test_non_finite(self, range_bound_candles):
        """NaN в ценах"""
        frame = candles_to_frame(range_bound_candles)
        frame.loc[3, 'close'] = np.nan

        with pytest.raises(ComputationError):
            validate_candles(frame)

    def test_decreasing_timestamps(self, range_bound_candles):
        """Убывающие временные метки"""
        candles = list(range_bound_candles)
        candles[7], candles[8] = candles[8], candles[7]

        with pytest.raises(ComputationError) as exc_info:
            validate_candles(candles_to_frame(candles))

        assert exc_info.value.details['validation_errors']['index'] == 8

    def test_low_above_open(self, flat_candles):
        """Low выше min(open, close)"""
        candles = list(flat_candles)
        candles[2] = replace(candles[2], low=100.5)

        with pytest.raises(ComputationError):
            validate_candles(candles_to_frame(candles))

    def test_negative_volume(self, flat_candles):
        """Отрицательный объем"""
        candles = list(flat_candles)
        candles[2] = replace(candles[2], volume=-1.0)

        with pytest.raises(ComputationError):
            validate_candles(candles_to_frame(candles))


class TestFormatPrice:
    """Тесты форматирования цены"""

    def test_precision(self):
        """Точность зависит от величины цены"""
        assert format_price(50123.456) == "$50,123.46"
        assert format_price(106.27) == "$106.2700"
        assert format_price(0.25) == "$0.250000"
        assert format_price("abc") == "N/A"
