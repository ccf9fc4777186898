"""
Тесты для объединения уровней
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from sr_engine.config.sr_config import FusionConfig
from sr_engine.support_resistance.fusion import LevelFusionEngine
from sr_engine.types import CandidateLevel, LevelSource, Symbol, Timeframe
from sr_engine.utils.helpers import candles_to_frame

from conftest import build_candles

VP = LevelSource.VOLUME_PROFILE.value
PP = LevelSource.PIVOT_POINTS.value
PA = LevelSource.PRICE_ACTION.value

CALCULATED_AT = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def level(price, strength, *sources):
    return CandidateLevel(price=price, strength=strength, sources=tuple(sources) or (VP,))


def window(close=105.0, low=95.0, high=115.0):
    """Окно свечей с заданными ценой закрытия и экстремумами"""
    return candles_to_frame(build_candles([(close, high, low, close, 1000.0)] * 3))


def fuse(engine, volume=(), pivots=(), price_action=(), timeframe=Timeframe.M15, data=None):
    return engine.fuse(
        symbol=Symbol.BTC,
        timeframe=timeframe,
        data=data if data is not None else window(),
        volume_levels=list(volume),
        pivot_levels=list(pivots),
        price_action_levels=list(price_action),
        calculated_at=CALCULATED_AT,
    )


@pytest.fixture
def engine():
    """Движок слияния с конфигурацией по умолчанию"""
    return LevelFusionEngine(FusionConfig())


class TestCombine:
    """Тесты взвешивания и накопления кандидатов"""

    def test_weights(self, engine):
        """Сила 10 от всех методов: 5 + 3 + 2"""
        combined = engine.combine([level(100.0, 10, VP)], [level(100.0, 10, PP)], [level(100.0, 10, PA)])

        assert len(combined) == 1
        assert combined[0].strength == 10
        assert combined[0].sources == (VP, PP, PA)

    @pytest.mark.parametrize("strength,expected", [(5, 3), (1, 1), (7, 4), (10, 5)])
    def test_half_up_rounding(self, engine, strength, expected):
        """Взвешенная сила округляется половиной вверх"""
        combined = engine.combine([level(100.0, strength, VP)], [], [])

        assert combined[0].strength == expected

    def test_nearby_candidate_reinforces(self, engine):
        """Кандидат в пределах 0.4% усиливает существующий уровень"""
        combined = engine.combine([level(100.0, 6, VP)], [level(100.3, 5, PP)], [])

        assert len(combined) == 1
        assert combined[0].price == pytest.approx(100.0)
        # 3 + round(1.5)
        assert combined[0].strength == 5
        assert combined[0].sources == (VP, PP)

    def test_distant_candidate_inserted(self, engine):
        """Кандидат дальше 0.4% образует новый уровень"""
        combined = engine.combine([level(100.0, 6, VP)], [level(100.5, 5, PP)], [])

        assert [c.price for c in combined] == [100.0, 100.5]

    def test_volume_nodes_merge_with_each_other(self, engine):
        """Соседние HVN тоже объединяются"""
        combined = engine.combine([level(100.0, 6, VP), level(100.2, 4, VP)], [], [])

        assert len(combined) == 1
        assert combined[0].strength == 5
        assert combined[0].sources == (VP,)

    def test_strength_capped(self, engine):
        """Накопленная сила не превышает 10"""
        candidates = [level(100.0, 10, PA)] * 8
        combined = engine.combine([level(100.0, 10, VP)], [level(100.0, 10, PP)], candidates)

        assert combined[0].strength == 10

    def test_canonical_source_order(self, engine):
        """Источники перечисляются в фиксированном порядке"""
        combined = engine.combine([], [level(100.0, 5, PP)], [level(100.1, 5, PA)])

        assert combined[0].sources == (PP, PA)


class TestMergeLevels:
    """Тесты слияния близких уровней"""

    def test_empty(self, engine):
        """Пустой список"""
        assert engine.merge_levels([]) == []

    def test_weighted_average(self, engine):
        """Цена - среднее, взвешенное по силе"""
        merged = engine.merge_levels([level(100.0, 4, VP), level(100.3, 2, PP)])

        assert len(merged) == 1
        assert merged[0].price == pytest.approx(100.1)
        assert merged[0].strength == 3
        assert merged[0].sources == (VP, PP)

    def test_zero_strength_uses_plain_mean(self, engine):
        """Нулевая суммарная сила: обычное среднее"""
        merged = engine.merge_levels([level(100.0, 0, PP), level(100.2, 0, PP)])

        assert merged[0].price == pytest.approx(100.1)
        assert merged[0].strength == 0

    def test_order(self, engine):
        """Результат упорядочен по силе, затем по цене"""
        merged = engine.merge_levels([
            level(100.0, 4), level(100.3, 2), level(100.6, 6), level(105.0, 5), level(90.0, 5),
        ])

        assert [(round(m.price, 4), m.strength) for m in merged] == [
            (100.6, 6), (90.0, 5), (105.0, 5), (100.1, 3),
        ]

    def test_idempotent(self, engine):
        """Повторное слияние не меняет результат"""
        levels = [level(100.0, 4), level(100.3, 2), level(100.6, 6), level(100.9, 1), level(105.0, 5)]

        once = engine.merge_levels(levels)

        assert engine.merge_levels(once) == once

    def test_idempotent_random(self, engine):
        """Идемпотентность на случайных уровнях"""
        rng = np.random.default_rng(7)
        for _ in range(20):
            prices = rng.uniform(99.0, 101.0, size=12)
            strengths = rng.integers(0, 11, size=12)
            levels = [level(float(p), int(s), PP) for p, s in zip(prices, strengths)]

            once = engine.merge_levels(levels)

            assert engine.merge_levels(once) == once
            assert all(0 <= m.strength <= 10 for m in once)


class TestFuse:
    """Тесты построения результата"""

    def test_split_around_price(self, engine):
        """Поддержки ниже цены по убыванию, сопротивления выше по возрастанию"""
        result = fuse(engine, volume=[
            level(90.0, 10), level(95.0, 6), level(98.0, 4),
            level(110.0, 8), level(112.0, 10), level(120.0, 2),
        ])

        assert result.current_price == 105.0
        assert [s.price for s in result.supports] == [98.0, 95.0]
        assert [s.strength for s in result.supports] == [2, 3]
        assert [r.price for r in result.resistances] == [110.0, 112.0]
        assert [r.strength for r in result.resistances] == [4, 5]
        assert result.calculation_method == "hybrid"

    def test_min_strength_filter(self):
        """Слабые уровни отбрасываются"""
        engine = LevelFusionEngine(FusionConfig(min_strength=3))
        result = fuse(engine, volume=[level(90.0, 10), level(95.0, 6), level(98.0, 4), level(110.0, 8)])

        assert [s.price for s in result.supports] == [95.0, 90.0]
        assert result.resistance2 is None

    def test_level_at_current_price_excluded(self, engine):
        """Уровень на текущей цене не является ни поддержкой, ни сопротивлением"""
        result = fuse(engine, volume=[level(105.0, 10), level(100.0, 6)])

        assert [s.price for s in result.supports] == [100.0]
        assert result.resistance1.sources == (LevelSource.FALLBACK_HIGHEST.value,)

    def test_fallback(self, engine):
        """Без уровней используются минимум и максимум окна"""
        result = fuse(engine)

        assert result.support1.price == 95.0
        assert result.support1.strength == 1
        assert result.support1.sources == (LevelSource.FALLBACK_LOWEST.value,)
        assert result.resistance1.price == 115.0
        assert result.resistance1.strength == 1
        assert result.resistance1.sources == (LevelSource.FALLBACK_HIGHEST.value,)
        assert result.support2 is None
        assert result.resistance2 is None

    def test_fallback_one_side(self, engine):
        """Резерв подставляется только для пустой стороны"""
        result = fuse(engine, volume=[level(110.0, 8)])

        assert result.resistance1.price == 110.0
        assert result.support1.sources == (LevelSource.FALLBACK_LOWEST.value,)

    def test_fallback_at_window_low(self, engine):
        """Закрытие на минимуме окна: резервная поддержка равна текущей цене"""
        result = fuse(engine, data=window(close=95.0, low=95.0, high=115.0))

        assert result.current_price == 95.0
        assert result.support1.price == result.current_price
        assert result.support1.strength == 1
        assert result.support1.sources == (LevelSource.FALLBACK_LOWEST.value,)
        assert result.resistance1.price == 115.0

    def test_strength_clamped(self):
        """Сила уровня в результате не меньше 1"""
        engine = LevelFusionEngine(FusionConfig(min_strength=0))
        # round(1 * 0.3) = 0
        result = fuse(engine, pivots=[level(100.0, 1, PP)])

        assert result.support1.price == 100.0
        assert result.support1.strength == 1

    @pytest.mark.parametrize("timeframe,minutes", [
        (Timeframe.M15, 60), (Timeframe.H1, 240), (Timeframe.H4, 960),
    ])
    def test_validity_window(self, engine, timeframe, minutes):
        """Срок актуальности зависит от таймфрейма"""
        result = fuse(engine, timeframe=timeframe)

        assert result.calculated_at == CALCULATED_AT
        assert result.valid_until - result.calculated_at == timedelta(minutes=minutes)
        assert result.is_valid(CALCULATED_AT + timedelta(minutes=minutes - 1))
        assert not result.is_valid(CALCULATED_AT + timedelta(minutes=minutes))
