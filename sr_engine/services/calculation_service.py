"""
S/R Calculation Service
Fetch candles, run the detector and persist the result, one pair or a batch.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..config.sr_config import SRConfig, get_config
from ..data.candle_source import CandleSource
from ..storage.level_store import LevelStore
from ..support_resistance.detector import SupportResistanceDetector, format_result
from ..types import BatchSummary, Candle, JobFailure, SRResult, Symbol, Timeframe
from .monitor import collect_latest_levels
from ..utils.exceptions import (
    ComputationError,
    ConfigurationException,
    DataSourceError,
    NoDataError,
    PersistenceError,
    UnsupportedMarketError,
    log_exception,
)
from ..utils.helpers import parse_symbol, parse_timeframe
from ..utils.logger import LoggerMixin, get_calculation_logger, log_performance_metrics


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SRCalculationService(LoggerMixin):
    """
    Orchestrates support/resistance calculations.

    Stateless between calls and safe to run concurrently for different
    pairs: each job owns its fetch, analysis and single insert. A result is
    built completely in memory before the store is touched, so a failed job
    never leaves a partial record behind.
    """

    def __init__(
        self,
        candle_source: CandleSource,
        level_store: LevelStore,
        config: Optional[SRConfig] = None,
        detector: Optional[SupportResistanceDetector] = None,
        clock: Callable[[], datetime] = _utcnow
    ):
        self.config = config or get_config()
        self.candle_source = candle_source
        self.level_store = level_store
        self.detector = detector or SupportResistanceDetector(self.config)
        self.clock = clock

    async def calculate_one(
        self,
        symbol: Union[str, Symbol],
        timeframe: Union[str, Timeframe]
    ) -> SRResult:
        """
        Calculate and persist levels for one (symbol, timeframe).

        Raises:
            NoDataError: Unknown symbol/timeframe or no candles returned
            DataSourceError: Candle fetch failed or timed out
            ComputationError: Candles violate ordering/OHLC invariants
            PersistenceError: The store rejected the write
        """
        symbol = parse_symbol(symbol)
        timeframe = parse_timeframe(timeframe)
        logger = get_calculation_logger(symbol, timeframe, operation="calculate")
        start_time = time.perf_counter()

        candles = await self._fetch_candles(symbol, timeframe)
        if not candles:
            raise NoDataError(
                f"No candles returned for {symbol.value} {timeframe.value}",
                symbol=symbol.value,
                timeframe=timeframe.value
            )

        try:
            result = self.detector.calculate(symbol, timeframe, candles, calculated_at=self.clock())
        except ComputationError as e:
            log_exception(logger, e, {'candles': len(candles)})
            raise

        try:
            await self.level_store.insert(result)
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(
                f"Failed to store levels for {symbol.value} {timeframe.value}",
                operation="insert",
                original_exception=e
            ) from e

        log_performance_metrics(
            logger=logger,
            operation="calculate_one",
            duration_seconds=time.perf_counter() - start_time,
            additional_metrics={
                'candles': len(candles),
                'current_price': result.current_price,
                'support1': result.support1.price,
                'resistance1': result.resistance1.price,
            }
        )
        logger.debug("Calculated levels\n" + format_result(result))
        return result

    async def _fetch_candles(self, symbol: Symbol, timeframe: Timeframe) -> List[Candle]:
        service = self.config.service
        trading_pair = symbol.trading_pair(service.quote_currency)
        count = service.candles_for(timeframe)
        fetch = self.candle_source.fetch_candles(trading_pair, timeframe, count)

        if service.fetch_timeout_seconds is None:
            return await fetch

        try:
            return await asyncio.wait_for(fetch, timeout=service.fetch_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise DataSourceError(
                f"Timed out after {service.fetch_timeout_seconds}s fetching {trading_pair} {timeframe.value}",
                trading_pair=trading_pair,
                timeframe=timeframe.value,
                original_exception=e
            ) from e

    def _build_jobs(
        self,
        symbols: Iterable[Union[str, Symbol]],
        timeframes: Iterable[Union[str, Timeframe]]
    ) -> List[Tuple[Symbol, Timeframe]]:
        """Cross product of distinct symbols and timeframes, in enum order"""
        try:
            parsed_symbols = {parse_symbol(s) for s in symbols}
            parsed_timeframes = {parse_timeframe(t) for t in timeframes}
        except UnsupportedMarketError as e:
            raise ConfigurationException(
                f"Invalid batch configuration: {e.message}",
                config_section="service",
                invalid_params=e.details
            ) from e

        if not parsed_symbols or not parsed_timeframes:
            raise ConfigurationException(
                "Batch needs at least one symbol and one timeframe",
                config_section="service",
                invalid_params={'symbols': len(parsed_symbols), 'timeframes': len(parsed_timeframes)}
            )

        return [
            (symbol, timeframe)
            for symbol in Symbol if symbol in parsed_symbols
            for timeframe in Timeframe if timeframe in parsed_timeframes
        ]

    async def calculate_batch(
        self,
        symbols: Iterable[Union[str, Symbol]],
        timeframes: Iterable[Union[str, Timeframe]]
    ) -> BatchSummary:
        """
        Run every (symbol, timeframe) pair concurrently.

        Per-job errors end up in the summary; only a configuration problem
        that prevents the batch from starting is raised.
        """
        jobs = self._build_jobs(symbols, timeframes)
        started_at = self.clock()
        start_time = time.perf_counter()

        self.log_operation_start("batch_calculation", jobs=len(jobs))

        outcomes = await asyncio.gather(
            *(self.calculate_one(symbol, timeframe) for symbol, timeframe in jobs),
            return_exceptions=True
        )

        summary = BatchSummary(started_at=started_at)
        for (symbol, timeframe), outcome in zip(jobs, outcomes):
            if isinstance(outcome, BaseException):
                summary.failures.append(JobFailure(
                    symbol=symbol,
                    timeframe=timeframe,
                    message=str(outcome) or type(outcome).__name__,
                    error_type=type(outcome).__name__
                ))
                self.logger.warning(
                    f"Calculation failed for {symbol.value} {timeframe.value}",
                    symbol=symbol.value,
                    timeframe=timeframe.value,
                    error=str(outcome),
                    error_type=type(outcome).__name__
                )
            else:
                summary.successes.append((symbol, timeframe))

        summary.duration_seconds = time.perf_counter() - start_time

        self.log_operation_end(
            "batch_calculation",
            success=not summary.failures,
            total=summary.total,
            succeeded=summary.success_count,
            failed=summary.failure_count,
            duration_seconds=round(summary.duration_seconds, 3)
        )
        return summary

    async def run_batch(
        self,
        symbols: Optional[Iterable[Union[str, Symbol]]] = None,
        timeframes: Optional[Iterable[Union[str, Timeframe]]] = None
    ) -> BatchSummary:
        """Batch entry point for the scheduler; defaults come from the service config"""
        return await self.calculate_batch(
            symbols if symbols is not None else self.config.service.symbols,
            timeframes if timeframes is not None else self.config.service.timeframes
        )

    async def get_latest_support_resistance(
        self,
        symbol: Union[str, Symbol],
        timeframes: Optional[Iterable[Union[str, Timeframe]]] = None,
        as_of: Optional[datetime] = None
    ) -> Dict[Timeframe, Optional[SRResult]]:
        """Latest still-valid result for each timeframe of a symbol"""
        return await collect_latest_levels(self.level_store, symbol, timeframes, as_of or self.clock())
