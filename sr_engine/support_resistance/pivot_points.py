"""
Pivot Point Analyzer
Swing highs/lows via a strict sliding window, clustered and scored by touches.
"""

from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from numpy.lib.stride_tricks import sliding_window_view

from ..config.sr_config import PivotPointConfig
from ..types import CandidateLevel, LevelSource
from ..utils.helpers import clamp_strength
from ..utils.logger import get_logger
from .clustering import cluster_prices


class PivotPointAnalyzer:
    """
    Find swing highs/lows and turn them into touch-scored levels.

    A candle is a pivot high when its high strictly exceeds the high of
    every candle ``left_bars`` before and ``right_bars`` after it; pivot
    lows mirror this on the low.
    """

    def __init__(self, config: Optional[PivotPointConfig] = None):
        self.config = config or PivotPointConfig()
        self.logger = get_logger("PivotPointAnalyzer")

    def analyze(self, data: pd.DataFrame) -> List[CandidateLevel]:
        """Return pivot levels ordered by strength descending"""
        if data.empty:
            return []

        highs = data['high'].to_numpy(dtype=np.float64)
        lows = data['low'].to_numpy(dtype=np.float64)

        high_indices, low_indices = self.find_pivots(highs, lows)

        levels: List[CandidateLevel] = []
        for level_type, pivot_prices in (('high', highs[high_indices]), ('low', lows[low_indices])):
            for cluster in cluster_prices(pivot_prices, self.config.cluster_tolerance):
                touches = self.count_touches(highs, lows, cluster.price)
                if touches < self.config.min_touches:
                    continue
                levels.append(CandidateLevel(
                    price=cluster.price,
                    strength=self.calculate_strength(touches),
                    sources=(LevelSource.PIVOT_POINTS.value,),
                    level_type=level_type,
                    metadata={'touches': touches, 'pivots': cluster.count}
                ))

        levels.sort(key=lambda level: -level.strength)

        self.logger.debug(
            "Pivot points analyzed",
            pivot_highs=len(high_indices),
            pivot_lows=len(low_indices),
            levels=len(levels)
        )
        return levels

    def find_pivots(self, highs: np.ndarray, lows: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Indices of pivot highs and pivot lows"""
        left, right = self.config.left_bars, self.config.right_bars
        window = left + right + 1

        if len(highs) < window:
            empty = np.array([], dtype=np.int64)
            return empty, empty

        return (
            self._strict_extrema(highs, left, window, np.greater),
            self._strict_extrema(lows, left, window, np.less),
        )

    @staticmethod
    def _strict_extrema(values: np.ndarray, left: int, window: int, compare) -> np.ndarray:
        windows = sliding_window_view(values, window)
        centers = windows[:, left]
        neighbours = np.delete(windows, left, axis=1)
        if compare is np.greater:
            is_pivot = centers > neighbours.max(axis=1)
        else:
            is_pivot = centers < neighbours.min(axis=1)
        return np.nonzero(is_pivot)[0] + left

    def count_touches(self, highs: np.ndarray, lows: np.ndarray, level: float) -> int:
        """Candles whose high or low lies within ``touch_tolerance`` of the level"""
        touched_high = self._within(highs, level)
        touched_low = self._within(lows, level)
        return int(np.count_nonzero(touched_high | touched_low))

    def _within(self, values: np.ndarray, level: float) -> np.ndarray:
        distance = np.abs(values - level)
        if level == 0:
            return distance == 0
        return distance / abs(level) < self.config.touch_tolerance

    def calculate_strength(self, touches: int) -> int:
        return clamp_strength(touches * self.config.touch_weight + self.config.base_strength)
