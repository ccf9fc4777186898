"""
Candle sources for the support/resistance engine.

Exchange-backed OHLCV fetching through ccxt plus an in-memory source for
replays and tests.
"""

import asyncio
import functools
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence, Tuple, Union

import ccxt

from ..types import Candle, Timeframe
from ..utils.exceptions import ConfigurationException, DataSourceError, UnsupportedMarketError
from ..utils.helpers import candles_from_ohlcv, parse_timeframe
from ..utils.logger import LoggerMixin


class CandleSource(ABC):
    """Supplies candles for a trading pair, oldest first"""

    @abstractmethod
    async def fetch_candles(self, trading_pair: str, timeframe: Timeframe, count: int) -> List[Candle]:
        """
        Fetch the most recent ``count`` candles.

        Raises:
            UnsupportedMarketError: The pair/timeframe is not available
            DataSourceError: The source failed to deliver
        """


class ExchangeCandleSource(CandleSource, LoggerMixin):
    """
    Candle source backed by a ccxt exchange (Binance USD-M futures by default).

    ccxt's synchronous client runs in the default executor so the event
    loop stays free while several pairs are fetched concurrently.
    """

    def __init__(
        self,
        exchange: Optional[ccxt.Exchange] = None,
        exchange_id: str = "binanceusdm",
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None
    ):
        if exchange is None:
            exchange_class = getattr(ccxt, exchange_id, None)
            if exchange_class is None:
                raise ConfigurationException(
                    f"Unknown ccxt exchange: {exchange_id}",
                    config_section="service",
                    invalid_params={'exchange_id': exchange_id}
                )
            params = {"enableRateLimit": True}
            if api_key and api_secret:
                params.update({"apiKey": api_key, "secret": api_secret})
            exchange = exchange_class(params)

        self.exchange = exchange
        self._markets_lock: Optional[asyncio.Lock] = None
        self._markets_loaded = False

    async def fetch_candles(self, trading_pair: str, timeframe: Timeframe, count: int) -> List[Candle]:
        timeframe = parse_timeframe(timeframe)
        loop = asyncio.get_running_loop()

        try:
            await self._ensure_markets(loop)
            rows = await loop.run_in_executor(
                None,
                functools.partial(self._fetch_sync, trading_pair, timeframe, count)
            )
        except UnsupportedMarketError:
            raise
        except ccxt.BadSymbol as e:
            raise UnsupportedMarketError(
                f"Trading pair {trading_pair} is not listed on {self.exchange.id}",
                symbol=trading_pair,
                timeframe=timeframe.value
            ) from e
        except ccxt.BaseError as e:
            raise DataSourceError(
                f"Failed to fetch {trading_pair} {timeframe.value} candles: {e}",
                trading_pair=trading_pair,
                timeframe=timeframe.value,
                original_exception=e
            ) from e

        self.logger.debug(
            "Candles fetched",
            trading_pair=trading_pair,
            timeframe=timeframe.value,
            requested=count,
            received=len(rows)
        )
        return candles_from_ohlcv(rows)

    async def _ensure_markets(self, loop: asyncio.AbstractEventLoop) -> None:
        if self._markets_loaded:
            return
        if self._markets_lock is None:
            self._markets_lock = asyncio.Lock()
        async with self._markets_lock:
            if not self._markets_loaded:
                await loop.run_in_executor(None, self.exchange.load_markets)
                self._markets_loaded = True

    def _fetch_sync(self, trading_pair: str, timeframe: Timeframe, count: int) -> list:
        timeframes = getattr(self.exchange, 'timeframes', None) or {}
        if timeframes and timeframe.value not in timeframes:
            raise UnsupportedMarketError(
                f"Timeframe {timeframe.value} is not supported by {self.exchange.id}",
                symbol=trading_pair,
                timeframe=timeframe.value
            )

        # Resolves BTC/USDT to the listed market or raises BadSymbol
        market = self.exchange.market(trading_pair)
        return self.exchange.fetch_ohlcv(market['symbol'], timeframe=timeframe.value, limit=count)


class InMemoryCandleSource(CandleSource):
    """Serves preloaded candles keyed by (trading pair, timeframe)"""

    def __init__(self, candles: Optional[Dict[Tuple[str, Union[str, Timeframe]], Sequence[Candle]]] = None):
        self._candles: Dict[Tuple[str, Timeframe], List[Candle]] = {}
        for (trading_pair, timeframe), series in (candles or {}).items():
            self.set_candles(trading_pair, timeframe, series)

    def set_candles(self, trading_pair: str, timeframe: Union[str, Timeframe], candles: Sequence[Candle]) -> None:
        self._candles[(trading_pair.upper(), parse_timeframe(timeframe))] = list(candles)

    async def fetch_candles(self, trading_pair: str, timeframe: Timeframe, count: int) -> List[Candle]:
        key = (trading_pair.upper(), parse_timeframe(timeframe))
        if key not in self._candles:
            raise UnsupportedMarketError(
                f"No candle series for {trading_pair} {key[1].value}",
                symbol=trading_pair,
                timeframe=key[1].value
            )
        series = self._candles[key]
        return series[-count:] if count > 0 else []
