"""
System status of stored S/R results: freshness per pair and record counts.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from ..storage.level_store import LevelStore
from ..support_resistance.detector import format_result
from ..types import SRResult, Symbol, Timeframe
from ..utils.helpers import format_price, parse_symbol, parse_timeframe


@dataclass
class PairStatus:
    symbol: Symbol
    timeframe: Timeframe
    latest: Optional[SRResult]
    age_minutes: Optional[float]
    is_valid: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol.value,
            'timeframe': self.timeframe.value,
            'age_minutes': round(self.age_minutes, 1) if self.age_minutes is not None else None,
            'is_valid': self.is_valid,
            'current_price': self.latest.current_price if self.latest else None,
            'support1': self.latest.support1.price if self.latest else None,
            'resistance1': self.latest.resistance1.price if self.latest else None,
        }


@dataclass
class SystemStatus:
    checked_at: datetime
    pairs: List[PairStatus] = field(default_factory=list)
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        """Every monitored pair has a valid result"""
        return all(pair.is_valid for pair in self.pairs)

    @property
    def stale_pairs(self) -> List[PairStatus]:
        return [pair for pair in self.pairs if not pair.is_valid]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checked_at': self.checked_at.isoformat(),
            'healthy': self.healthy,
            'counts': dict(self.counts),
            'pairs': [pair.to_dict() for pair in self.pairs],
        }


async def collect_system_status(
    store: LevelStore,
    symbols: Iterable[Union[str, Symbol]],
    timeframes: Iterable[Union[str, Timeframe]],
    now: Optional[datetime] = None
) -> SystemStatus:
    """Latest record per pair with its age, plus total/valid/expired counts"""
    now = now or datetime.now(timezone.utc)
    pairs = [
        (parse_symbol(symbol), parse_timeframe(timeframe))
        for symbol in symbols
        for timeframe in timeframes
    ]

    latest = await asyncio.gather(*(store.find_latest(symbol, timeframe) for symbol, timeframe in pairs))
    counts = await store.count_records(now)

    status = SystemStatus(checked_at=now, counts=counts)
    for (symbol, timeframe), result in zip(pairs, latest):
        if result is None:
            status.pairs.append(PairStatus(symbol, timeframe, None, None, False))
            continue
        calculated_at = result.calculated_at
        if calculated_at.tzinfo is None:
            calculated_at = calculated_at.replace(tzinfo=timezone.utc)
        valid_until = result.valid_until
        if valid_until.tzinfo is None:
            valid_until = valid_until.replace(tzinfo=timezone.utc)
        status.pairs.append(PairStatus(
            symbol=symbol,
            timeframe=timeframe,
            latest=result,
            age_minutes=(now - calculated_at).total_seconds() / 60,
            is_valid=valid_until > now,
        ))
    return status


async def collect_latest_levels(
    store: LevelStore,
    symbol: Union[str, Symbol],
    timeframes: Optional[Iterable[Union[str, Timeframe]]] = None,
    as_of: Optional[datetime] = None
) -> Dict[Timeframe, Optional[SRResult]]:
    """Latest still-valid result for each timeframe of a symbol, read from the store only"""
    symbol = parse_symbol(symbol)
    as_of = as_of or datetime.now(timezone.utc)
    wanted = [parse_timeframe(t) for t in timeframes] if timeframes is not None else list(Timeframe)

    results = await asyncio.gather(
        *(store.find_latest_valid(symbol, timeframe, as_of) for timeframe in wanted)
    )
    return dict(zip(wanted, results))


def format_status(status: SystemStatus) -> str:
    """Plain-text report for the monitor command"""
    counts = status.counts
    lines = [
        f"S/R system status at {status.checked_at.isoformat()}",
        f"Records: {counts.get('total', 0)} total, "
        f"{counts.get('valid', 0)} valid, {counts.get('expired', 0)} expired",
    ]
    for pair in status.pairs:
        label = f"{pair.symbol.value:<5} {pair.timeframe.value:>3}"
        if pair.latest is None:
            lines.append(f"  {label}  no data")
            continue
        state = "VALID" if pair.is_valid else "EXPIRED"
        lines.append(
            f"  {label}  {state:<7} age {pair.age_minutes:6.1f} min  "
            f"S1 {format_price(pair.latest.support1.price)}  R1 {format_price(pair.latest.resistance1.price)}"
        )
    lines.append("Healthy" if status.healthy else f"Stale pairs: {len(status.stale_pairs)}")
    return "\n".join(lines)


def format_latest(symbol: Symbol, results: Dict[Timeframe, Optional[SRResult]]) -> str:
    """Plain-text view of the latest valid levels of a symbol"""
    blocks = []
    for timeframe, result in results.items():
        if result is None:
            blocks.append(f"{symbol.value} {timeframe.value}: no valid levels")
        else:
            blocks.append(format_result(result))
    return "\n\n".join(blocks)
