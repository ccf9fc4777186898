"""
Configuration management for the support/resistance engine.

Pydantic settings sections for every analyzer, the fusion engine, the
calculation service and monitoring, overridable through environment
variables, a .env file or a YAML file.
"""

from typing import Dict, List, Optional, Union, Literal
from pathlib import Path

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..types import Symbol, Timeframe
from ..utils.exceptions import ConfigurationException
from ..utils.logger import LogFormat, LogLevel

_ALL_TIMEFRAMES = [t.value for t in Timeframe]


def _require_all_timeframes(table: Dict[str, float], name: str) -> Dict[str, float]:
    """Проверить, что таблица задана для каждого таймфрейма"""
    missing = [tf for tf in _ALL_TIMEFRAMES if tf not in table]
    if missing:
        raise ValueError(f"{name} is missing timeframes: {missing}")
    unknown = [tf for tf in table if tf not in _ALL_TIMEFRAMES]
    if unknown:
        raise ValueError(f"{name} has unknown timeframes: {unknown}")
    return table


def _lookup(table: Dict[str, int], timeframe: Union[str, Timeframe], section: str) -> int:
    key = getattr(timeframe, 'value', timeframe)
    if key not in table:
        raise ConfigurationException(
            f"No {section} value configured for timeframe {key}",
            config_section=section,
            invalid_params={'timeframe': key}
        )
    return table[key]


class VolumeProfileConfig(BaseSettings):
    """
    Конфигурация анализа профиля объема
    """

    bins_per_timeframe: Dict[str, int] = Field(
        default={"15m": 15, "1h": 20, "4h": 25},
        description="Количество ценовых корзин для каждого таймфрейма"
    )

    min_volume_ratio: float = Field(
        default=1.5,
        gt=1.0,
        description="Порог HVN относительно среднего объема корзины"
    )

    top_nodes_count: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Максимальное количество HVN"
    )

    full_strength_ratio: float = Field(
        default=3.0,
        gt=0,
        description="Отношение объема к среднему, дающее силу 10"
    )

    @field_validator("bins_per_timeframe")
    @classmethod
    def validate_bins(cls, v):
        """Корзины заданы для всех таймфреймов и положительны"""
        _require_all_timeframes(v, "bins_per_timeframe")
        if any(bins < 1 for bins in v.values()):
            raise ValueError("bins_per_timeframe values must be positive")
        return v

    def bins_for(self, timeframe: Union[str, Timeframe]) -> int:
        return _lookup(self.bins_per_timeframe, timeframe, "volume_profile")

    model_config = SettingsConfigDict(env_prefix="SR_VOLUME_", case_sensitive=False)


class PivotPointConfig(BaseSettings):
    """
    Конфигурация поиска пивотов
    """

    left_bars: int = Field(default=5, ge=1, le=50, description="Свечей слева от пивота")
    right_bars: int = Field(default=5, ge=1, le=50, description="Свечей справа от пивота")

    cluster_tolerance: float = Field(
        default=0.005,
        gt=0,
        lt=0.1,
        description="Относительный допуск кластеризации пивотов"
    )

    touch_tolerance: float = Field(
        default=0.002,
        gt=0,
        lt=0.1,
        description="Относительный допуск касания уровня"
    )

    min_touches: int = Field(default=2, ge=1, description="Минимум касаний для уровня")
    touch_weight: float = Field(default=0.8, gt=0, description="Вклад одного касания в силу")
    base_strength: float = Field(default=1.0, ge=0, description="Базовая сила уровня")

    model_config = SettingsConfigDict(env_prefix="SR_PIVOT_", case_sensitive=False)


class PriceActionConfig(BaseSettings):
    """
    Конфигурация анализа price action (отбойные тени и свечные паттерны)
    """

    # === Отбойные тени ===
    doji_body_ratio: float = Field(
        default=0.1,
        ge=0,
        lt=1,
        description="Тело меньше этой доли диапазона считается доджи"
    )
    wick_ratio: float = Field(
        default=0.6,
        gt=0,
        le=1,
        description="Минимальная доля тени от диапазона свечи"
    )
    cluster_tolerance: float = Field(default=0.003, gt=0, lt=0.1, description="Допуск кластеризации теней")
    min_occurrences: int = Field(default=2, ge=1, description="Минимум отбоев в кластере")
    occurrence_weight: float = Field(default=1.5, gt=0, description="Вклад одного отбоя в силу")
    base_strength: float = Field(default=1.0, ge=0, description="Базовая сила кластера")

    # === Свечные паттерны ===
    hammer_wick_to_body: float = Field(default=2.0, gt=0, description="Длинная тень / тело")
    hammer_opposite_wick_to_body: float = Field(default=0.3, ge=0, description="Короткая тень / тело")
    engulfing_body_ratio: float = Field(default=1.5, gt=1.0, description="Тело / тело предыдущей свечи")

    hammer_strength: int = Field(default=5, ge=1, le=10, description="Сила молота")
    shooting_star_strength: int = Field(default=5, ge=1, le=10, description="Сила падающей звезды")
    engulfing_strength: int = Field(default=6, ge=1, le=10, description="Сила поглощения")

    model_config = SettingsConfigDict(env_prefix="SR_PRICE_ACTION_", case_sensitive=False)


class FusionConfig(BaseSettings):
    """
    Конфигурация объединения уровней
    """

    volume_profile_weight: float = Field(default=0.5, ge=0, le=1, description="Вес профиля объема")
    pivot_points_weight: float = Field(default=0.3, ge=0, le=1, description="Вес пивотов")
    price_action_weight: float = Field(default=0.2, ge=0, le=1, description="Вес price action")

    merge_tolerance: float = Field(
        default=0.004,
        gt=0,
        lt=0.1,
        description="Относительный допуск слияния уровней"
    )

    min_strength: int = Field(default=1, ge=0, le=10, description="Минимальная сила уровня")
    max_support_levels: int = Field(default=2, ge=1, le=2, description="Количество поддержек")
    max_resistance_levels: int = Field(default=2, ge=1, le=2, description="Количество сопротивлений")

    validity_minutes: Dict[str, int] = Field(
        default={"15m": 60, "1h": 240, "4h": 960},
        description="Срок актуальности результата для каждого таймфрейма"
    )

    @field_validator("validity_minutes")
    @classmethod
    def validate_validity(cls, v):
        _require_all_timeframes(v, "validity_minutes")
        if any(minutes <= 0 for minutes in v.values()):
            raise ValueError("validity_minutes values must be positive")
        return v

    @model_validator(mode="after")
    def validate_weights(self):
        """Сумма весов равна 1"""
        total = self.volume_profile_weight + self.pivot_points_weight + self.price_action_weight
        if abs(total - 1.0) > 1e-9:
            raise ValueError(f"Source weights must sum to 1.0, got {total}")
        return self

    def validity_for(self, timeframe: Union[str, Timeframe]) -> int:
        return _lookup(self.validity_minutes, timeframe, "fusion")

    model_config = SettingsConfigDict(env_prefix="SR_FUSION_", case_sensitive=False)


class ServiceConfig(BaseSettings):
    """
    Конфигурация сервиса расчета и планировщика
    """

    candle_counts: Dict[str, int] = Field(
        default={"15m": 50, "1h": 75, "4h": 100},
        description="Количество свечей для каждого таймфрейма"
    )

    symbols: List[Symbol] = Field(
        default=[Symbol.BTC, Symbol.BNB],
        description="Символы для batch-расчета"
    )

    timeframes: List[Timeframe] = Field(
        default=[Timeframe.M15, Timeframe.H1, Timeframe.H4],
        description="Таймфреймы для batch-расчета"
    )

    quote_currency: str = Field(default="USDT", description="Котируемая валюта пары")
    exchange_id: str = Field(default="binanceusdm", description="Биржа ccxt")

    fetch_timeout_seconds: Optional[float] = Field(
        default=30.0,
        gt=0,
        description="Таймаут загрузки свечей"
    )

    batch_interval_minutes: int = Field(
        default=10,
        ge=1,
        le=1440,
        description="Интервал запуска batch-расчета"
    )

    database_path: Path = Field(
        default=Path("./data/sr_levels.db"),
        description="Путь к базе SQLite"
    )

    @field_validator("candle_counts")
    @classmethod
    def validate_candle_counts(cls, v):
        _require_all_timeframes(v, "candle_counts")
        if any(count < 1 for count in v.values()):
            raise ValueError("candle_counts values must be positive")
        return v

    def candles_for(self, timeframe: Union[str, Timeframe]) -> int:
        return _lookup(self.candle_counts, timeframe, "service")

    model_config = SettingsConfigDict(env_prefix="SR_SERVICE_", case_sensitive=False)


class MonitoringConfig(BaseSettings):
    """
    Конфигурация логирования
    """

    log_level: LogLevel = Field(default=LogLevel.INFO, description="Уровень логирования")
    log_format: LogFormat = Field(default=LogFormat.JSON, description="Формат логов")
    log_file: Optional[str] = Field(default=None, description="Файл логов")

    model_config = SettingsConfigDict(env_prefix="SR_MONITORING_", case_sensitive=False)


class SRConfig(BaseSettings):
    """
    Главная конфигурация S/R движка

    Объединяет конфигурацию анализаторов, слияния, сервиса и мониторинга.
    """

    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Среда выполнения"
    )

    service_name: str = Field(default="sr-engine", description="Имя сервиса")
    version: str = Field(default="1.0.0", description="Версия сервиса")

    volume_profile: VolumeProfileConfig = Field(default_factory=VolumeProfileConfig)
    pivot_points: PivotPointConfig = Field(default_factory=PivotPointConfig)
    price_action: PriceActionConfig = Field(default_factory=PriceActionConfig)
    fusion: FusionConfig = Field(default_factory=FusionConfig)
    service: ServiceConfig = Field(default_factory=ServiceConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    def is_production(self) -> bool:
        """Проверить production среду"""
        return self.environment == "production"

    model_config = SettingsConfigDict(
        env_prefix="SR_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Глобальная конфигурация
_config: Optional[SRConfig] = None


def get_config() -> SRConfig:
    """
    Получить глобальную конфигурацию (singleton pattern)

    Returns:
        Экземпляр SRConfig
    """
    global _config
    if _config is None:
        _config = SRConfig()
    return _config


def reload_config() -> SRConfig:
    """
    Перезагрузить конфигурацию

    Returns:
        Новый экземпляр SRConfig
    """
    global _config
    _config = SRConfig()
    return _config


def load_config_from_file(config_path: Union[str, Path]) -> SRConfig:
    """
    Загрузить конфигурацию из YAML файла

    Args:
        config_path: Путь к файлу конфигурации

    Returns:
        Экземпляр SRConfig
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}

    return SRConfig(**config_data)
