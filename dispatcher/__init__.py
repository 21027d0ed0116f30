"""Dispatcher 모듈 - 크론 기반 배치 트리거"""

from dispatcher.main import Dispatcher, validate_cron_expression
from dispatcher.model.dispatcher import DispatcherConfig
from dispatcher.exception import (
    DispatcherError,
    CronParseError,
    CronIntervalTooShortError,
)

__all__ = [
    "Dispatcher",
    "DispatcherConfig",
    "validate_cron_expression",
    "DispatcherError",
    "CronParseError",
    "CronIntervalTooShortError",
]
