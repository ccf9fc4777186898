"""
Тесты для конфигурации
"""

import pytest
import yaml
from pydantic import ValidationError

from sr_engine.config.sr_config import (
    FusionConfig,
    ServiceConfig,
    SRConfig,
    VolumeProfileConfig,
    load_config_from_file,
)
from sr_engine.types import Symbol, Timeframe
from sr_engine.utils.exceptions import ConfigurationException


class TestSRConfig:
    """Тесты конфигурации движка"""

    def test_defaults(self, sr_config):
        """Значения по умолчанию"""
        assert sr_config.volume_profile.bins_for(Timeframe.M15) == 15
        assert sr_config.volume_profile.bins_for("4h") == 25
        assert sr_config.pivot_points.left_bars == 5
        assert sr_config.pivot_points.right_bars == 5
        assert sr_config.price_action.engulfing_strength == 6
        assert sr_config.fusion.merge_tolerance == 0.004
        assert sr_config.fusion.validity_for(Timeframe.H1) == 240
        assert sr_config.service.candles_for(Timeframe.H4) == 100
        assert sr_config.service.symbols == [Symbol.BTC, Symbol.BNB]
        assert not sr_config.is_production()

    def test_weights_must_sum_to_one(self):
        """Сумма весов методов равна 1"""
        with pytest.raises(ValidationError):
            FusionConfig(volume_profile_weight=0.6)

        config = FusionConfig(volume_profile_weight=0.6, pivot_points_weight=0.2, price_action_weight=0.2)
        assert config.volume_profile_weight == 0.6

    def test_all_timeframes_required(self):
        """Таблицы по таймфреймам должны быть полными"""
        with pytest.raises(ValidationError):
            VolumeProfileConfig(bins_per_timeframe={"15m": 15, "1h": 20})
        with pytest.raises(ValidationError):
            ServiceConfig(candle_counts={"15m": 50, "1h": 75, "4h": 100, "1d": 30})

    def test_at_most_two_levels(self):
        """Не больше двух поддержек и сопротивлений"""
        with pytest.raises(ValidationError):
            FusionConfig(max_support_levels=3)

    def test_unknown_symbol_rejected(self):
        """Неизвестный символ в конфигурации"""
        with pytest.raises(ValidationError):
            ServiceConfig(symbols=["XRP"])

    def test_lookup_unknown_timeframe(self, sr_config):
        """Запрос несуществующего таймфрейма"""
        with pytest.raises(ConfigurationException):
            sr_config.service.candles_for("1d")

    def test_env_override(self, monkeypatch):
        """Переменные окружения переопределяют значения"""
        monkeypatch.setenv("SR_FUSION_MIN_STRENGTH", "3")
        monkeypatch.setenv("SR_SERVICE_BATCH_INTERVAL_MINUTES", "15")

        config = SRConfig()

        assert config.fusion.min_strength == 3
        assert config.service.batch_interval_minutes == 15

    def test_load_from_yaml(self, tmp_path):
        """Загрузка из YAML файла"""
        path = tmp_path / "sr.yaml"
        path.write_text(yaml.safe_dump({
            'environment': 'production',
            'fusion': {'min_strength': 4},
            'service': {'symbols': ['ETH', 'SOL'], 'timeframes': ['1h']},
        }))

        config = load_config_from_file(path)

        assert config.is_production()
        assert config.fusion.min_strength == 4
        assert config.service.symbols == [Symbol.ETH, Symbol.SOL]
        assert config.service.timeframes == [Timeframe.H1]
        assert config.pivot_points.left_bars == 5

    def test_missing_file(self, tmp_path):
        """Отсутствующий файл конфигурации"""
        with pytest.raises(FileNotFoundError):
            load_config_from_file(tmp_path / "missing.yaml")


class TestPackageInfo:
    """Тесты информации о пакете"""

    def test_package_info(self):
        """Версия и поддерживаемые рынки"""
        import sr_engine

        info = sr_engine.get_package_info()

        assert info['version'] == sr_engine.__version__
        assert info['supported_timeframes'] == "15m, 1h, 4h"
        assert "BTC" in info['supported_symbols']
