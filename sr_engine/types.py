"""
Core data types for the support/resistance engine

Closed enums for symbols and timeframes, immutable candle and level
records, the persisted S/R result and the batch summary.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Timeframe(str, Enum):
    """Supported candle timeframes"""
    M15 = "15m"
    H1 = "1h"
    H4 = "4h"

    @property
    def minutes(self) -> int:
        return _TIMEFRAME_MINUTES[self.value]


_TIMEFRAME_MINUTES = {"15m": 15, "1h": 60, "4h": 240}


class Symbol(str, Enum):
    """Supported base assets"""
    BTC = "BTC"
    ETH = "ETH"
    SOL = "SOL"
    BNB = "BNB"
    DOGE = "DOGE"

    def trading_pair(self, quote: str = "USDT") -> str:
        return f"{self.value}/{quote}"


class LevelSource(str, Enum):
    """Evidence tags attached to a level"""
    VOLUME_PROFILE = "volume_profile"
    PIVOT_POINTS = "pivot_points"
    PRICE_ACTION = "price_action"
    FALLBACK_LOWEST = "fallback:lowest"
    FALLBACK_HIGHEST = "fallback:highest"


_SOURCE_ORDER = {source.value: index for index, source in enumerate(LevelSource)}


def canonical_sources(sources) -> Tuple[str, ...]:
    """Deduplicate source tags and return them in a fixed order"""
    unique = {str(getattr(s, 'value', s)) for s in sources}
    return tuple(sorted(unique, key=lambda s: (_SOURCE_ORDER.get(s, len(_SOURCE_ORDER)), s)))


@dataclass(frozen=True)
class Candle:
    """Single OHLCV candle"""
    timestamp: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def midpoint(self) -> float:
        return (self.high + self.low) / 2


@dataclass(frozen=True)
class CandidateLevel:
    """A price level together with the evidence behind it"""
    price: float
    strength: int
    sources: Tuple[str, ...]
    level_type: Optional[str] = None  # high/low for pivots, upper/lower for price action
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'price': self.price,
            'strength': self.strength,
            'sources': list(self.sources),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CandidateLevel":
        return cls(
            price=float(data['price']),
            strength=int(data['strength']),
            sources=tuple(data['sources']),
        )


@dataclass(frozen=True)
class SRResult:
    """
    Support/resistance levels for one (symbol, timeframe) calculation.

    Supports are ordered closest to the current price first (descending),
    resistances closest first (ascending). Records are never updated; the
    next calculation supersedes them and expiry is decided by ``valid_until``.
    """
    symbol: Symbol
    timeframe: Timeframe
    current_price: float
    support1: CandidateLevel
    resistance1: CandidateLevel
    calculated_at: datetime
    valid_until: datetime
    support2: Optional[CandidateLevel] = None
    resistance2: Optional[CandidateLevel] = None
    calculation_method: str = "hybrid"

    @property
    def supports(self) -> List[CandidateLevel]:
        return [level for level in (self.support1, self.support2) if level is not None]

    @property
    def resistances(self) -> List[CandidateLevel]:
        return [level for level in (self.resistance1, self.resistance2) if level is not None]

    def is_valid(self, as_of: datetime) -> bool:
        return self.valid_until > as_of

    def levels_dict(self) -> Dict[str, Any]:
        """Result without the computation timestamps"""
        return {
            'symbol': self.symbol.value,
            'timeframe': self.timeframe.value,
            'current_price': self.current_price,
            'supports': [level.to_dict() for level in self.supports],
            'resistances': [level.to_dict() for level in self.resistances],
            'calculation_method': self.calculation_method,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = self.levels_dict()
        data['calculated_at'] = self.calculated_at.isoformat()
        data['valid_until'] = self.valid_until.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SRResult":
        supports = [CandidateLevel.from_dict(level) for level in data['supports']]
        resistances = [CandidateLevel.from_dict(level) for level in data['resistances']]
        return cls(
            symbol=Symbol(data['symbol']),
            timeframe=Timeframe(data['timeframe']),
            current_price=float(data['current_price']),
            support1=supports[0],
            support2=supports[1] if len(supports) > 1 else None,
            resistance1=resistances[0],
            resistance2=resistances[1] if len(resistances) > 1 else None,
            calculated_at=datetime.fromisoformat(data['calculated_at']),
            valid_until=datetime.fromisoformat(data['valid_until']),
            calculation_method=data.get('calculation_method', 'hybrid'),
        )


@dataclass(frozen=True)
class JobFailure:
    """One failed (symbol, timeframe) job of a batch"""
    symbol: Symbol
    timeframe: Timeframe
    message: str
    error_type: str = "Exception"


@dataclass
class BatchSummary:
    """Outcome of a batch run, one entry per requested pair"""
    successes: List[Tuple[Symbol, Timeframe]] = field(default_factory=list)
    failures: List[JobFailure] = field(default_factory=list)
    started_at: Optional[datetime] = None
    duration_seconds: float = 0.0

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total': self.total,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'successes': [
                {'symbol': symbol.value, 'timeframe': timeframe.value}
                for symbol, timeframe in self.successes
            ],
            'failures': [
                {
                    'symbol': failure.symbol.value,
                    'timeframe': failure.timeframe.value,
                    'message': failure.message,
                    'error_type': failure.error_type,
                }
                for failure in self.failures
            ],
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'duration_seconds': round(self.duration_seconds, 3),
        }
