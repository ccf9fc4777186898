"""
Тесты для источников свечей
"""

import asyncio
from datetime import datetime, timezone
from unittest.mock import Mock

import ccxt
import pytest

from sr_engine.data.candle_source import ExchangeCandleSource, InMemoryCandleSource
from sr_engine.types import Timeframe
from sr_engine.utils.exceptions import ConfigurationException, DataSourceError, UnsupportedMarketError

JAN_1_MS = 1767225600000
HOUR_MS = 3600 * 1000


@pytest.fixture
def exchange():
    """Заглушка ccxt биржи"""
    mock = Mock()
    mock.id = "binanceusdm"
    mock.timeframes = {"15m": "15m", "1h": "1h", "4h": "4h"}
    mock.market.return_value = {"symbol": "BTC/USDT:USDT"}
    mock.fetch_ohlcv.return_value = [
        [JAN_1_MS, 100.0, 101.0, 99.0, 100.5, 10.0],
        [JAN_1_MS + HOUR_MS, 100.5, 102.0, 100.0, 101.5, 12.0],
    ]
    return mock


class TestExchangeCandleSource:
    """Тесты для класса ExchangeCandleSource"""

    @pytest.mark.asyncio
    async def test_fetch_candles(self, exchange):
        """Строки OHLCV конвертируются в свечи UTC"""
        source = ExchangeCandleSource(exchange=exchange)

        candles = await source.fetch_candles("BTC/USDT", Timeframe.H1, 75)

        assert len(candles) == 2
        assert candles[0].timestamp == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert candles[1].timestamp == datetime(2026, 1, 1, 1, tzinfo=timezone.utc)
        assert candles[1].close == 101.5
        assert candles[1].volume == 12.0
        exchange.market.assert_called_once_with("BTC/USDT")
        exchange.fetch_ohlcv.assert_called_once_with("BTC/USDT:USDT", timeframe="1h", limit=75)

    @pytest.mark.asyncio
    async def test_markets_loaded_once(self, exchange):
        """Рынки загружаются один раз"""
        source = ExchangeCandleSource(exchange=exchange)

        await source.fetch_candles("BTC/USDT", "15m", 50)
        await source.fetch_candles("BTC/USDT", "4h", 100)

        exchange.load_markets.assert_called_once()

    @pytest.mark.asyncio
    async def test_concurrent_fetches_load_markets_once(self, exchange):
        """Параллельные запросы загружают рынки один раз"""
        source = ExchangeCandleSource(exchange=exchange)

        results = await asyncio.gather(
            source.fetch_candles("BTC/USDT", "15m", 50),
            source.fetch_candles("ETH/USDT", "1h", 75),
        )

        assert [len(candles) for candles in results] == [2, 2]
        exchange.load_markets.assert_called_once()

    def test_created_outside_event_loop(self, exchange):
        """Источник, созданный вне цикла событий, работает в разных циклах"""
        source = ExchangeCandleSource(exchange=exchange)

        first = asyncio.run(source.fetch_candles("BTC/USDT", "15m", 50))
        second = asyncio.run(source.fetch_candles("BTC/USDT", "1h", 75))

        assert len(first) == len(second) == 2
        exchange.load_markets.assert_called_once()

    @pytest.mark.asyncio
    async def test_bad_symbol(self, exchange):
        """Пара не торгуется на бирже"""
        exchange.market.side_effect = ccxt.BadSymbol("binanceusdm does not have market symbol XRP/USDT")
        source = ExchangeCandleSource(exchange=exchange)

        with pytest.raises(UnsupportedMarketError):
            await source.fetch_candles("XRP/USDT", Timeframe.M15, 50)

    @pytest.mark.asyncio
    async def test_unsupported_timeframe(self, exchange):
        """Таймфрейм не поддерживается биржей"""
        exchange.timeframes = {"1m": "1m"}
        source = ExchangeCandleSource(exchange=exchange)

        with pytest.raises(UnsupportedMarketError):
            await source.fetch_candles("BTC/USDT", Timeframe.H4, 100)

        exchange.fetch_ohlcv.assert_not_called()

    @pytest.mark.asyncio
    async def test_network_error(self, exchange):
        """Сетевая ошибка биржи"""
        exchange.fetch_ohlcv.side_effect = ccxt.NetworkError("connection reset")
        source = ExchangeCandleSource(exchange=exchange)

        with pytest.raises(DataSourceError) as exc_info:
            await source.fetch_candles("BTC/USDT", Timeframe.M15, 50)

        assert exc_info.value.details['trading_pair'] == "BTC/USDT"
        assert isinstance(exc_info.value.original_exception, ccxt.NetworkError)

    def test_unknown_exchange(self):
        """Неизвестная биржа - ошибка конфигурации"""
        with pytest.raises(ConfigurationException):
            ExchangeCandleSource(exchange_id="no_such_exchange")


class TestInMemoryCandleSource:
    """Тесты для класса InMemoryCandleSource"""

    @pytest.mark.asyncio
    async def test_returns_most_recent(self, range_bound_candles):
        """Возвращаются последние count свечей"""
        source = InMemoryCandleSource({("BTC/USDT", Timeframe.M15): range_bound_candles})

        candles = await source.fetch_candles("btc/usdt", Timeframe.M15, 10)

        assert candles == range_bound_candles[-10:]

    @pytest.mark.asyncio
    async def test_unknown_series(self):
        """Нет серии для пары"""
        source = InMemoryCandleSource()

        with pytest.raises(UnsupportedMarketError):
            await source.fetch_candles("BTC/USDT", Timeframe.M15, 10)
