"""
Support/Resistance Level Detection

Hybrid detection of support and resistance levels from OHLCV candles:

- **Volume profile**: High-Volume Nodes of a price/volume histogram
- **Pivot points**: clustered swing highs/lows scored by touches
- **Price action**: rejection wicks and hammer/shooting star/engulfing patterns
- **Fusion**: weighted evidence merge (0.5 / 0.3 / 0.2), split around the
  current price with a lowest-low / highest-high fallback

Example:
    >>> from sr_engine.support_resistance import SupportResistanceDetector
    >>> detector = SupportResistanceDetector()
    >>> result = detector.calculate("BTC", "15m", candles)
    >>> print(format_result(result))
"""

from .clustering import PriceCluster, cluster_prices
from .volume_profile import VolumeProfileAnalyzer
from .pivot_points import PivotPointAnalyzer
from .price_action import PriceActionAnalyzer
from .fusion import LevelFusionEngine
from .detector import SupportResistanceDetector, format_result

__all__ = [
    "PriceCluster",
    "cluster_prices",
    "VolumeProfileAnalyzer",
    "PivotPointAnalyzer",
    "PriceActionAnalyzer",
    "LevelFusionEngine",
    "SupportResistanceDetector",
    "format_result",
]
