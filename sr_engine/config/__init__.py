"""Configuration for the support/resistance engine"""

from .sr_config import (
    FusionConfig,
    MonitoringConfig,
    PivotPointConfig,
    PriceActionConfig,
    ServiceConfig,
    SRConfig,
    VolumeProfileConfig,
    get_config,
    load_config_from_file,
    reload_config,
)

__all__ = [
    "SRConfig",
    "VolumeProfileConfig",
    "PivotPointConfig",
    "PriceActionConfig",
    "FusionConfig",
    "ServiceConfig",
    "MonitoringConfig",
    "get_config",
    "reload_config",
    "load_config_from_file",
]
