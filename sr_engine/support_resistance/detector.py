"""
Support and Resistance Detector
Runs the three analyzers over one candle window and fuses their output.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union

import pandas as pd

from ..config.sr_config import SRConfig, get_config
from ..types import Candle, CandidateLevel, SRResult, Symbol, Timeframe
from ..utils.exceptions import ComputationError, NoDataError
from ..utils.helpers import (
    candles_to_frame,
    format_price,
    parse_symbol,
    parse_timeframe,
    validate_candles,
)
from ..utils.logger import LoggerMixin, timed_operation
from .fusion import LevelFusionEngine
from .pivot_points import PivotPointAnalyzer
from .price_action import PriceActionAnalyzer
from .volume_profile import VolumeProfileAnalyzer


class SupportResistanceDetector(LoggerMixin):
    """
    Hybrid support/resistance detector.

    Pure and synchronous: the same candles and configuration always give
    the same levels, only ``calculated_at``/``valid_until`` depend on the
    clock. Safe to share between concurrent calculations.
    """

    def __init__(self, config: Optional[SRConfig] = None):
        self.config = config or get_config()
        self.volume_analyzer = VolumeProfileAnalyzer(self.config.volume_profile)
        self.pivot_analyzer = PivotPointAnalyzer(self.config.pivot_points)
        self.price_action_analyzer = PriceActionAnalyzer(self.config.price_action)
        self.fusion_engine = LevelFusionEngine(self.config.fusion)

    @timed_operation("sr_calculation")
    def calculate(
        self,
        symbol: Union[str, Symbol],
        timeframe: Union[str, Timeframe],
        candles: Union[Sequence[Candle], pd.DataFrame],
        calculated_at: Optional[datetime] = None
    ) -> SRResult:
        """
        Calculate support/resistance levels for one candle window.

        Args:
            symbol: Base asset
            timeframe: Candle timeframe
            candles: Candles oldest first, or an OHLCV DataFrame
            calculated_at: Computation timestamp (defaults to now, UTC)

        Raises:
            NoDataError: No candles given
            ComputationError: Candles violate ordering or OHLC invariants
        """
        symbol = parse_symbol(symbol)
        timeframe = parse_timeframe(timeframe)
        data = candles if isinstance(candles, pd.DataFrame) else candles_to_frame(candles)

        if data.empty:
            raise NoDataError("No candles provided", symbol=symbol.value, timeframe=timeframe.value)

        validate_candles(data)

        try:
            volume_levels = self.volume_analyzer.analyze(data, timeframe)
            pivot_levels = self.pivot_analyzer.analyze(data)
            price_action_levels = self.price_action_analyzer.analyze(data)
        except (ValueError, ArithmeticError, IndexError) as e:
            raise ComputationError(
                f"Level analysis failed for {symbol.value} {timeframe.value}",
                original_exception=e
            ) from e

        result = self.fusion_engine.fuse(
            symbol=symbol,
            timeframe=timeframe,
            data=data,
            volume_levels=volume_levels,
            pivot_levels=pivot_levels,
            price_action_levels=price_action_levels,
            calculated_at=calculated_at or datetime.now(timezone.utc),
        )

        self.logger.debug(
            "Levels calculated",
            symbol=symbol.value,
            timeframe=timeframe.value,
            candles=len(data),
            volume_nodes=len(volume_levels),
            pivot_levels=len(pivot_levels),
            price_action_levels=len(price_action_levels)
        )
        return result


def _format_level(label: str, level: Optional[CandidateLevel], current_price: float) -> List[str]:
    if level is None:
        return []
    distance = f" ({(level.price - current_price) / current_price * 100:+.2f}%)" if current_price else ""
    return [
        f"  {label}: {format_price(level.price)}{distance} "
        f"strength {level.strength}/10 [{', '.join(level.sources)}]"
    ]


def format_result(result: SRResult) -> str:
    """Human-readable block for logs and the command line"""
    lines = [
        f"{result.symbol.value} {result.timeframe.value} @ {format_price(result.current_price)}",
    ]
    lines += _format_level("R2", result.resistance2, result.current_price)
    lines += _format_level("R1", result.resistance1, result.current_price)
    lines += _format_level("S1", result.support1, result.current_price)
    lines += _format_level("S2", result.support2, result.current_price)
    lines.append(
        f"  calculated {result.calculated_at.isoformat()}, valid until {result.valid_until.isoformat()}"
    )
    return "\n".join(lines)
