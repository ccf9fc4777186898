"""Candle sources"""

from .candle_source import CandleSource, ExchangeCandleSource, InMemoryCandleSource

__all__ = ["CandleSource", "ExchangeCandleSource", "InMemoryCandleSource"]
