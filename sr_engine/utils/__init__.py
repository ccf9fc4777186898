"""
Utility modules for the support/resistance engine

Structured logging, the exception hierarchy and helper functions shared
by analyzers, services and storage.
"""

from .logger import get_logger, get_calculation_logger, configure_logging
from .exceptions import (
    SREngineException,
    NoDataError,
    UnsupportedMarketError,
    DataSourceError,
    PersistenceError,
    ComputationError,
    ConfigurationException,
)
from .helpers import (
    parse_symbol,
    parse_timeframe,
    symbol_to_trading_pair,
    trading_pair_to_symbol,
    round_half_up,
    clamp_strength,
    candles_to_frame,
    validate_candles,
)

__all__ = [
    "get_logger",
    "get_calculation_logger",
    "configure_logging",
    "SREngineException",
    "NoDataError",
    "UnsupportedMarketError",
    "DataSourceError",
    "PersistenceError",
    "ComputationError",
    "ConfigurationException",
    "parse_symbol",
    "parse_timeframe",
    "symbol_to_trading_pair",
    "trading_pair_to_symbol",
    "round_half_up",
    "clamp_strength",
    "candles_to_frame",
    "validate_candles",
]
