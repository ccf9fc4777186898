"""
Level Fusion Engine
Weighted combination of analyzer candidates into a ranked S/R result.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Set

import pandas as pd

from ..config.sr_config import FusionConfig
from ..types import (
    CandidateLevel,
    LevelSource,
    SRResult,
    Symbol,
    Timeframe,
    canonical_sources,
)
from ..utils.helpers import MAX_STRENGTH, clamp_strength, relative_distance, round_half_up
from ..utils.logger import get_logger


@dataclass
class _FusedLevel:
    price: float
    strength: int
    sources: Set[str] = field(default_factory=set)

    def freeze(self) -> CandidateLevel:
        return CandidateLevel(
            price=self.price,
            strength=self.strength,
            sources=canonical_sources(self.sources),
        )


class LevelFusionEngine:
    """
    Combine volume-profile, pivot and price-action candidates.

    Each source's strength is scaled by its weight, candidates close to an
    already fused level reinforce it, near-duplicate fused levels are merged,
    weak levels are dropped and the remainder is split around the current
    price into supports and resistances.
    """

    def __init__(self, config: Optional[FusionConfig] = None):
        self.config = config or FusionConfig()
        self.logger = get_logger("LevelFusionEngine")

    @property
    def weights(self) -> Dict[str, float]:
        return {
            LevelSource.VOLUME_PROFILE.value: self.config.volume_profile_weight,
            LevelSource.PIVOT_POINTS.value: self.config.pivot_points_weight,
            LevelSource.PRICE_ACTION.value: self.config.price_action_weight,
        }

    def combine(
        self,
        volume_levels: Sequence[CandidateLevel],
        pivot_levels: Sequence[CandidateLevel],
        price_action_levels: Sequence[CandidateLevel]
    ) -> List[CandidateLevel]:
        """Weight every candidate and fold it into the nearest fused level"""
        fused: List[_FusedLevel] = []
        batches = (
            (LevelSource.VOLUME_PROFILE.value, volume_levels),
            (LevelSource.PIVOT_POINTS.value, pivot_levels),
            (LevelSource.PRICE_ACTION.value, price_action_levels),
        )

        for source, candidates in batches:
            weight = self.weights[source]
            for candidate in candidates:
                weighted = round_half_up(candidate.strength * weight)
                existing = self._find_nearby(fused, candidate.price)
                if existing is not None:
                    existing.strength = min(MAX_STRENGTH, existing.strength + weighted)
                    existing.sources.add(source)
                else:
                    fused.append(_FusedLevel(candidate.price, weighted, {source}))

        return [level.freeze() for level in fused]

    def _find_nearby(self, fused: List[_FusedLevel], price: float) -> Optional[_FusedLevel]:
        for level in fused:
            if relative_distance(level.price, price) < self.config.merge_tolerance:
                return level
        return None

    def merge_levels(self, levels: Sequence[CandidateLevel]) -> List[CandidateLevel]:
        """
        Merge adjacent levels closer than the merge tolerance.

        Walks the levels in price order; a merged level takes the
        strength-weighted average price, ``min(10, round((s1 + s2) / 2))``
        strength and the union of sources. Output is ordered by strength
        descending, then price, so applying the merge to its own output
        returns it unchanged.
        """
        if not levels:
            return []

        ordered = sorted(levels, key=lambda level: level.price)
        merged: List[_FusedLevel] = []
        current = _FusedLevel(ordered[0].price, ordered[0].strength, set(ordered[0].sources))

        for level in ordered[1:]:
            if relative_distance(level.price, current.price) < self.config.merge_tolerance:
                total = current.strength + level.strength
                if total > 0:
                    current.price = (current.price * current.strength + level.price * level.strength) / total
                else:
                    current.price = (current.price + level.price) / 2
                current.strength = min(MAX_STRENGTH, round_half_up(total / 2))
                current.sources |= set(level.sources)
            else:
                merged.append(current)
                current = _FusedLevel(level.price, level.strength, set(level.sources))

        merged.append(current)
        merged.sort(key=lambda level: (-level.strength, level.price))
        return [level.freeze() for level in merged]

    def fuse(
        self,
        symbol: Symbol,
        timeframe: Timeframe,
        data: pd.DataFrame,
        volume_levels: Sequence[CandidateLevel],
        pivot_levels: Sequence[CandidateLevel],
        price_action_levels: Sequence[CandidateLevel],
        calculated_at: datetime
    ) -> SRResult:
        """
        Build the S/R result for a candle window.

        An empty side falls back to the window's lowest low or highest
        high. When the last close sits exactly on that extreme, the
        fallback level equals the current price, since nothing in the
        window lies strictly beyond it.

        Args:
            data: Candle window the candidates were computed from (non-empty)
            calculated_at: Timestamp stamped on the result
        """
        current_price = float(data['close'].iloc[-1])

        combined = self.combine(volume_levels, pivot_levels, price_action_levels)
        merged = self.merge_levels(combined)
        valid = [level for level in merged if level.strength >= self.config.min_strength]

        supports = sorted(
            (level for level in valid if level.price < current_price),
            key=lambda level: -level.price
        )[:self.config.max_support_levels]
        resistances = sorted(
            (level for level in valid if level.price > current_price),
            key=lambda level: level.price
        )[:self.config.max_resistance_levels]

        supports = [self._clamped(level) for level in supports]
        resistances = [self._clamped(level) for level in resistances]

        if not supports:
            supports = [CandidateLevel(
                price=float(data['low'].min()),
                strength=1,
                sources=(LevelSource.FALLBACK_LOWEST.value,),
            )]
        if not resistances:
            resistances = [CandidateLevel(
                price=float(data['high'].max()),
                strength=1,
                sources=(LevelSource.FALLBACK_HIGHEST.value,),
            )]

        valid_until = calculated_at + timedelta(minutes=self.config.validity_for(timeframe))

        self.logger.debug(
            "Levels fused",
            symbol=symbol.value,
            timeframe=timeframe.value,
            candidates=len(volume_levels) + len(pivot_levels) + len(price_action_levels),
            fused=len(combined),
            merged=len(merged),
            valid=len(valid)
        )

        return SRResult(
            symbol=symbol,
            timeframe=timeframe,
            current_price=current_price,
            support1=supports[0],
            support2=supports[1] if len(supports) > 1 else None,
            resistance1=resistances[0],
            resistance2=resistances[1] if len(resistances) > 1 else None,
            calculated_at=calculated_at,
            valid_until=valid_until,
        )

    @staticmethod
    def _clamped(level: CandidateLevel) -> CandidateLevel:
        return CandidateLevel(
            price=level.price,
            strength=clamp_strength(level.strength),
            sources=level.sources,
        )
