"""Calculation service, scheduler and monitoring"""

from .calculation_service import SRCalculationService
from .scheduler import BatchScheduler, RunState, next_run_time
from .monitor import (
    PairStatus,
    SystemStatus,
    collect_latest_levels,
    collect_system_status,
    format_latest,
    format_status,
)

__all__ = [
    "SRCalculationService",
    "BatchScheduler",
    "RunState",
    "next_run_time",
    "PairStatus",
    "SystemStatus",
    "collect_system_status",
    "collect_latest_levels",
    "format_status",
    "format_latest",
]
