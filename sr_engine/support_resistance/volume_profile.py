"""
Volume Profile Analyzer
Histogram of traded volume by price and High-Volume Node detection.
"""

from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd

from ..config.sr_config import VolumeProfileConfig
from ..types import CandidateLevel, LevelSource, Timeframe
from ..utils.helpers import clamp_strength
from ..utils.logger import get_logger


class VolumeProfileAnalyzer:
    """
    Analyze the volume profile of a candle window to find High-Volume Nodes.

    The price range ``[min(low), max(high)]`` is split into equal-width bins
    (bin count depends on the timeframe) and each candle's volume goes to
    the bin holding its midpoint ``(high + low) / 2``.
    """

    def __init__(self, config: Optional[VolumeProfileConfig] = None):
        self.config = config or VolumeProfileConfig()
        self.logger = get_logger("VolumeProfileAnalyzer")

    def analyze(self, data: pd.DataFrame, timeframe: Union[str, Timeframe]) -> List[CandidateLevel]:
        """Return HVN candidate levels ordered by volume descending"""
        if data.empty:
            return []

        profile = self.calculate_profile(data, self.config.bins_for(timeframe))
        if profile is None:
            return []

        centers, volumes = profile
        return self._find_high_volume_nodes(centers, volumes)

    def calculate_profile(
        self,
        data: pd.DataFrame,
        num_bins: int
    ) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        """
        Calculate volume distribution across price bins.

        Returns:
            ``(bin_centers, bin_volumes)`` or None when the window has no
            price range (every candle at the same price).
        """
        lows = data['low'].to_numpy(dtype=np.float64)
        highs = data['high'].to_numpy(dtype=np.float64)
        volume = data['volume'].to_numpy(dtype=np.float64)

        price_min = float(lows.min())
        price_max = float(highs.max())
        price_range = price_max - price_min

        if price_range <= 0:
            self.logger.debug("Zero price range, volume profile skipped", price=price_min)
            return None

        bin_size = price_range / num_bins
        midpoints = (highs + lows) / 2
        indices = np.floor((midpoints - price_min) / bin_size).astype(np.int64)
        indices = np.clip(indices, 0, num_bins - 1)

        volumes = np.bincount(indices, weights=volume, minlength=num_bins)
        centers = price_min + (np.arange(num_bins) + 0.5) * price_range / num_bins

        return centers, volumes

    def _find_high_volume_nodes(self, centers: np.ndarray, volumes: np.ndarray) -> List[CandidateLevel]:
        """Select bins whose volume exceeds ``min_volume_ratio`` x mean bin volume"""
        mean_volume = float(volumes.mean())
        if mean_volume <= 0:
            return []

        threshold = self.config.min_volume_ratio * mean_volume
        hvn_indices = [i for i in range(len(volumes)) if volumes[i] > threshold]

        # Stable sort keeps lower bins first on equal volume
        hvn_indices.sort(key=lambda i: -volumes[i])

        levels = []
        for i in hvn_indices[:self.config.top_nodes_count]:
            ratio = float(volumes[i]) / mean_volume
            levels.append(CandidateLevel(
                price=float(centers[i]),
                strength=clamp_strength(ratio * 10 / self.config.full_strength_ratio),
                sources=(LevelSource.VOLUME_PROFILE.value,),
                metadata={
                    'volume': float(volumes[i]),
                    'volume_ratio': round(ratio, 4),
                    'bin_index': i,
                }
            ))

        self.logger.debug(
            "Volume profile analyzed",
            bins=len(volumes),
            mean_volume=round(mean_volume, 4),
            hvn_count=len(levels)
        )
        return levels
