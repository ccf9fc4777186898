"""
Price Action Analyzer
Rejection wicks clustered by price plus hammer, shooting star and engulfing patterns.
"""

from typing import List, Optional

import numpy as np
import pandas as pd

from ..config.sr_config import PriceActionConfig
from ..types import CandidateLevel, LevelSource
from ..utils.helpers import clamp_strength
from ..utils.logger import get_logger
from .clustering import cluster_prices

UPPER = 'upper'
LOWER = 'lower'


class PriceActionAnalyzer:
    """
    Detect price-action evidence for support and resistance.

    Rejection wicks are clustered and scored by occurrence count. Candle
    patterns are single-occurrence signals with fixed strengths and are
    left unclustered.
    """

    def __init__(self, config: Optional[PriceActionConfig] = None):
        self.config = config or PriceActionConfig()
        self.logger = get_logger("PriceActionAnalyzer")

    def analyze(self, data: pd.DataFrame) -> List[CandidateLevel]:
        """Rejection levels followed by pattern levels"""
        if data.empty:
            return []

        rejections = self.find_rejection_levels(data)
        patterns = self.detect_patterns(data)

        self.logger.debug(
            "Price action analyzed",
            rejection_levels=len(rejections),
            pattern_levels=len(patterns)
        )
        return rejections + patterns

    def find_rejection_levels(self, data: pd.DataFrame) -> List[CandidateLevel]:
        opens = data['open'].to_numpy(dtype=np.float64)
        closes = data['close'].to_numpy(dtype=np.float64)
        highs = data['high'].to_numpy(dtype=np.float64)
        lows = data['low'].to_numpy(dtype=np.float64)

        body = np.abs(closes - opens)
        total_range = highs - lows
        upper_wick = highs - np.maximum(opens, closes)
        lower_wick = np.minimum(opens, closes) - lows

        # Zero-range candles and near-doji bodies carry no rejection
        eligible = (total_range > 0) & ~(body < total_range * self.config.doji_body_ratio)
        safe_range = np.where(total_range > 0, total_range, 1.0)

        upper_prices = highs[eligible & (upper_wick / safe_range >= self.config.wick_ratio)]
        lower_prices = lows[eligible & (lower_wick / safe_range >= self.config.wick_ratio)]

        levels: List[CandidateLevel] = []
        for level_type, prices in ((UPPER, upper_prices), (LOWER, lower_prices)):
            for cluster in cluster_prices(prices, self.config.cluster_tolerance):
                if cluster.count < self.config.min_occurrences:
                    continue
                levels.append(CandidateLevel(
                    price=cluster.price,
                    strength=clamp_strength(
                        cluster.count * self.config.occurrence_weight + self.config.base_strength
                    ),
                    sources=(LevelSource.PRICE_ACTION.value,),
                    level_type=level_type,
                    metadata={'occurrences': cluster.count, 'pattern': 'rejection_wick'}
                ))

        levels.sort(key=lambda level: -level.strength)
        return levels

    def detect_patterns(self, data: pd.DataFrame) -> List[CandidateLevel]:
        """Scan consecutive candle pairs for reversal patterns"""
        cfg = self.config
        opens = data['open'].to_numpy(dtype=np.float64)
        closes = data['close'].to_numpy(dtype=np.float64)
        highs = data['high'].to_numpy(dtype=np.float64)
        lows = data['low'].to_numpy(dtype=np.float64)

        levels: List[CandidateLevel] = []
        for i in range(1, len(opens)):
            body = abs(closes[i] - opens[i])
            prev_body = abs(closes[i - 1] - opens[i - 1])
            lower_wick = min(opens[i], closes[i]) - lows[i]
            upper_wick = highs[i] - max(opens[i], closes[i])
            bullish = closes[i] > opens[i]
            bearish = closes[i] < opens[i]

            if (lower_wick > body * cfg.hammer_wick_to_body
                    and upper_wick < body * cfg.hammer_opposite_wick_to_body
                    and bullish):
                levels.append(self._pattern_level(lows[i], LOWER, 'hammer', cfg.hammer_strength, i))

            if (upper_wick > body * cfg.hammer_wick_to_body
                    and lower_wick < body * cfg.hammer_opposite_wick_to_body
                    and bearish):
                levels.append(self._pattern_level(
                    highs[i], UPPER, 'shooting_star', cfg.shooting_star_strength, i
                ))

            if prev_body > 0 and body > prev_body * cfg.engulfing_body_ratio:
                prev_bearish = closes[i - 1] < opens[i - 1]
                prev_bullish = closes[i - 1] > opens[i - 1]
                if prev_bearish and bullish:
                    levels.append(self._pattern_level(
                        lows[i - 1], LOWER, 'bullish_engulfing', cfg.engulfing_strength, i
                    ))
                elif prev_bullish and bearish:
                    levels.append(self._pattern_level(
                        highs[i - 1], UPPER, 'bearish_engulfing', cfg.engulfing_strength, i
                    ))

        return levels

    @staticmethod
    def _pattern_level(price: float, level_type: str, pattern: str, strength: int, index: int) -> CandidateLevel:
        return CandidateLevel(
            price=float(price),
            strength=strength,
            sources=(LevelSource.PRICE_ACTION.value,),
            level_type=level_type,
            metadata={'occurrences': 1, 'pattern': pattern, 'candle_index': index}
        )
