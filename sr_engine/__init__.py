"""
Support/Resistance Level Engine

Derives support and resistance levels from OHLCV candles of crypto
futures markets by fusing three independent methods:

- Volume profile High-Volume Nodes (weight 0.5)
- Clustered pivot highs/lows scored by touches (weight 0.3)
- Price-action rejection wicks and reversal patterns (weight 0.2)

Results carry a validity window and are stored append-only; a scheduled
batch recalculates every configured symbol/timeframe pair concurrently
with per-pair failure isolation.
"""

import logging
from typing import Dict

__version__ = "1.0.0"
__author__ = "ML-Framework Team"
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from .types import (
    BatchSummary,
    Candle,
    CandidateLevel,
    JobFailure,
    LevelSource,
    SRResult,
    Symbol,
    Timeframe,
)
from .config.sr_config import SRConfig, get_config, load_config_from_file
from .utils.logger import configure_logging, get_logger
from .utils.exceptions import (
    ComputationError,
    ConfigurationException,
    DataSourceError,
    NoDataError,
    PersistenceError,
    SREngineException,
    UnsupportedMarketError,
)
from .support_resistance import LevelFusionEngine, SupportResistanceDetector, format_result
from .data import CandleSource, ExchangeCandleSource, InMemoryCandleSource
from .storage import InMemoryLevelStore, LevelStore, SQLiteLevelStore
from .services import BatchScheduler, SRCalculationService, collect_system_status

__all__ = [
    # Types
    "Candle",
    "CandidateLevel",
    "SRResult",
    "BatchSummary",
    "JobFailure",
    "LevelSource",
    "Symbol",
    "Timeframe",
    # Configuration
    "SRConfig",
    "get_config",
    "load_config_from_file",
    # Logging
    "configure_logging",
    "get_logger",
    # Errors
    "SREngineException",
    "NoDataError",
    "UnsupportedMarketError",
    "DataSourceError",
    "PersistenceError",
    "ComputationError",
    "ConfigurationException",
    # Engine
    "SupportResistanceDetector",
    "LevelFusionEngine",
    "format_result",
    # Collaborators
    "CandleSource",
    "ExchangeCandleSource",
    "InMemoryCandleSource",
    "LevelStore",
    "InMemoryLevelStore",
    "SQLiteLevelStore",
    # Services
    "SRCalculationService",
    "BatchScheduler",
    "collect_system_status",
    "__version__",
]


def get_package_info() -> Dict[str, str]:
    """
    Информация о пакете

    Returns:
        Dict с версией, автором, лицензией и поддерживаемыми рынками
    """
    return {
        "name": "sr-engine",
        "version": __version__,
        "author": __author__,
        "license": __license__,
        "description": "Multi-method support/resistance level engine for crypto futures",
        "supported_symbols": ", ".join(s.value for s in Symbol),
        "supported_timeframes": ", ".join(t.value for t in Timeframe),
    }
