"""
Structured logging utilities for the support/resistance engine

structlog-based logging with structured output, bound calculation
context and timing helpers for batch runs.
"""

import asyncio
import functools
import logging
import os
import sys
import time
from typing import Optional, Dict, Any, Union
from pathlib import Path
from enum import Enum

import structlog
from structlog.types import Processor


class LogLevel(str, Enum):
    """Уровни логирования"""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Форматы логирования"""
    JSON = "json"
    TEXT = "text"
    COLORED = "colored"


# Глобальная конфигурация логирования
_logging_configured = False


def configure_logging(
    level: LogLevel = LogLevel.INFO,
    format_type: LogFormat = LogFormat.JSON,
    log_file: Optional[Union[str, Path]] = None,
    service_name: str = "sr-engine",
    service_version: str = "1.0.0",
    environment: str = "development",
    force: bool = False
) -> None:
    """
    Конфигурация структурированного логирования для всего приложения

    Args:
        level: Уровень логирования
        format_type: Формат вывода логов
        log_file: Путь к файлу логов (опционально)
        service_name: Имя сервиса
        service_version: Версия сервиса
        environment: Среда выполнения
        force: Переконфигурировать, даже если логирование уже настроено
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    level = LogLevel(level)
    format_type = LogFormat(format_type)

    processors = [
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.FUNC_NAME,
                structlog.processors.CallsiteParameter.LINENO,
            ]
        ),
        structlog.processors.format_exc_info,
        _add_service_context(service_name, service_version, environment),
    ]

    if format_type == LogFormat.JSON:
        processors.append(structlog.processors.JSONRenderer())
    elif format_type == LogFormat.COLORED:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:  # TEXT
        processors.append(
            structlog.processors.KeyValueRenderer(
                key_order=['timestamp', 'level', 'logger', 'event']
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.value),
        force=force
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        # В файл пишется уже отрендеренное сообщение
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(getattr(logging, level.value))
        file_handler.setFormatter(logging.Formatter("%(message)s"))
        logging.getLogger().addHandler(file_handler)

    _suppress_noisy_loggers()

    _logging_configured = True


def _add_service_context(
    service_name: str,
    service_version: str,
    environment: str
) -> Processor:
    """
    Создание процессора для добавления контекста сервиса

    Returns:
        Процессор structlog
    """
    def processor(logger, method_name, event_dict):
        event_dict.update({
            'service': service_name,
            'version': service_version,
            'environment': environment,
            'pid': os.getpid(),
        })
        return event_dict

    return processor


def _suppress_noisy_loggers():
    """Подавление избыточного логирования от сторонних библиотек"""
    noisy_loggers = [
        'urllib3.connectionpool',
        'asyncio',
        'concurrent.futures',
        'ccxt.base.exchange',
    ]

    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Получение настроенного структурированного логгера

    Args:
        name: Имя логгера (по умолчанию __name__ вызывающего модуля)

    Returns:
        Настроенный структурированный логгер
    """
    if not _logging_configured:
        configure_logging()

    if name is None:
        import inspect
        frame = inspect.currentframe().f_back
        name = frame.f_globals.get('__name__', 'unknown')

    return structlog.get_logger(name)


def get_calculation_logger(
    symbol: str,
    timeframe: str,
    operation: Optional[str] = None
) -> structlog.stdlib.BoundLogger:
    """
    Получение логгера с контекстом расчета уровней

    Args:
        symbol: Символ криптовалюты
        timeframe: Таймфрейм
        operation: Текущая операция (calculate, persist, batch)

    Returns:
        Логгер с привязанным контекстом расчета
    """
    logger = get_logger("sr_engine.calculation")

    context = {
        'symbol': str(getattr(symbol, 'value', symbol)),
        'timeframe': str(getattr(timeframe, 'value', timeframe)),
    }
    if operation:
        context['operation'] = operation

    return logger.bind(**context)


def log_performance_metrics(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    duration_seconds: float,
    success: bool = True,
    additional_metrics: Optional[Dict[str, Any]] = None
):
    """
    Логирование метрик производительности

    Args:
        logger: Логгер для записи
        operation: Название операции
        duration_seconds: Длительность в секундах
        success: Успешность операции
        additional_metrics: Дополнительные метрики
    """
    metrics = {
        'operation': operation,
        'duration_seconds': round(duration_seconds, 4),
        'success': success,
        'performance_log': True
    }

    if additional_metrics:
        metrics.update(additional_metrics)

    if success:
        logger.info(f"Performance: {operation} completed", **metrics)
    else:
        logger.error(f"Performance: {operation} failed", **metrics)


class LoggerMixin:
    """
    Mixin класс для добавления логирования в другие классы

    Логгер создается лениво и несет имя класса и дополнительный контекст.
    """

    _logger = None
    _log_context: Dict[str, Any] = {}

    @property
    def logger(self) -> structlog.stdlib.BoundLogger:
        """Получение логгера для класса"""
        if self._logger is None:
            class_name = self.__class__.__name__
            logger_name = f"{self.__class__.__module__}.{class_name}"

            context = {
                'class': class_name,
                **self._log_context
            }

            self._logger = get_logger(logger_name).bind(**context)

        return self._logger

    def set_log_context(self, **kwargs):
        """
        Установка дополнительного контекста для логирования

        Args:
            **kwargs: Контекстные переменные
        """
        self._log_context = {**self._log_context, **kwargs}
        # Сброс логгера для пересоздания с новым контекстом
        self._logger = None

    def log_operation_start(self, operation: str, **kwargs):
        """Логирование начала операции"""
        self.logger.info(f"Starting {operation}", operation=operation, **kwargs)

    def log_operation_end(self, operation: str, success: bool = True, **kwargs):
        """Логирование завершения операции"""
        if success:
            self.logger.info(f"Completed {operation}", operation=operation, success=success, **kwargs)
        else:
            self.logger.error(f"Failed {operation}", operation=operation, success=success, **kwargs)


def timed_operation(operation_name: Optional[str] = None):
    """
    Декоратор для измерения времени выполнения операций

    Поддерживает как обычные функции, так и корутины.

    Args:
        operation_name: Имя операции (по умолчанию имя функции)

    Returns:
        Декоратор функции
    """
    def decorator(func):
        op_name = operation_name or func.__name__

        def _report(start_time: float, error: Optional[BaseException] = None):
            log_performance_metrics(
                logger=get_logger(func.__module__),
                operation=op_name,
                duration_seconds=time.perf_counter() - start_time,
                success=error is None,
                additional_metrics={'error': str(error)} if error is not None else None
            )

        if asyncio.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args, **kwargs):
                start_time = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _report(start_time, e)
                    raise
                _report(start_time)
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _report(start_time, e)
                raise
            _report(start_time)
            return result

        return wrapper
    return decorator
