"""
Custom exceptions for the support/resistance engine

Exception hierarchy shared by the analyzers, the calculation service and
the storage/data collaborators, with structured error context for logging.
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SREngineException(Exception):
    """
    Базовое исключение для S/R движка

    Все специфические исключения наследуются от этого класса
    для единообразной обработки ошибок в batch-расчетах.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        """
        Инициализация базового исключения

        Args:
            message: Сообщение об ошибке
            error_code: Код ошибки для программной обработки
            details: Дополнительные детали ошибки
            original_exception: Исходное исключение (если есть)
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        if original_exception is not None:
            self.details['original_error'] = str(original_exception)
            self.details['original_type'] = type(original_exception).__name__

    def to_dict(self) -> Dict[str, Any]:
        """
        Конвертация исключения в словарь для логов и отчетов

        Returns:
            Словарь с информацией об ошибке
        """
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details,
            'timestamp': self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        base_msg = f"[{self.error_code}] {self.message}"
        if self.details:
            base_msg += f" | Details: {self.details}"
        return base_msg


class NoDataError(SREngineException):
    """
    Источник свечей не вернул данных

    Неустранимо для конкретной задачи (symbol, timeframe), повторов нет.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        timeframe: Optional[str] = None,
        error_code: str = "NO_DATA"
    ):
        details = {}
        if symbol is not None:
            details['symbol'] = symbol
        if timeframe is not None:
            details['timeframe'] = timeframe

        super().__init__(
            message=message,
            error_code=error_code,
            details=details
        )


class UnsupportedMarketError(NoDataError):
    """
    Неизвестный символ, таймфрейм или торговая пара

    Отклоняется на границе системы, до запуска анализаторов.
    """

    def __init__(
        self,
        message: str,
        symbol: Optional[str] = None,
        timeframe: Optional[str] = None
    ):
        super().__init__(
            message=message,
            symbol=symbol,
            timeframe=timeframe,
            error_code="UNSUPPORTED_MARKET"
        )


class DataSourceError(SREngineException):
    """Ошибка или таймаут при загрузке свечей с биржи"""

    def __init__(
        self,
        message: str,
        trading_pair: Optional[str] = None,
        timeframe: Optional[str] = None,
        original_exception: Optional[BaseException] = None
    ):
        details = {}
        if trading_pair:
            details['trading_pair'] = trading_pair
        if timeframe:
            details['timeframe'] = timeframe

        super().__init__(
            message=message,
            error_code="DATA_SOURCE_ERROR",
            details=details,
            original_exception=original_exception
        )


class PersistenceError(SREngineException):
    """
    Ошибка записи или чтения хранилища уровней

    Запись результата атомарна: при ошибке частичных записей не остается.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        original_exception: Optional[BaseException] = None
    ):
        details = {'operation': operation} if operation else {}
        super().__init__(
            message=message,
            error_code="PERSISTENCE_ERROR",
            details=details,
            original_exception=original_exception
        )


class ComputationError(SREngineException):
    """
    Нарушение инварианта входных данных или расчета

    Например, немонотонные временные метки свечей или high < low.
    """

    def __init__(
        self,
        message: str,
        validation_errors: Optional[Dict[str, Any]] = None,
        original_exception: Optional[BaseException] = None
    ):
        details = {}
        if validation_errors:
            details['validation_errors'] = validation_errors

        super().__init__(
            message=message,
            error_code="COMPUTATION_ERROR",
            details=details,
            original_exception=original_exception
        )


class ConfigurationException(SREngineException):
    """
    Исключение для ошибок конфигурации

    Batch-расчет поднимает его до старта задач, если запуск невозможен.
    """

    def __init__(
        self,
        message: str,
        config_section: Optional[str] = None,
        invalid_params: Optional[Dict[str, Any]] = None
    ):
        details = {}
        if config_section:
            details['config_section'] = config_section
        if invalid_params:
            details['invalid_params'] = invalid_params

        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details=details
        )


def log_exception(logger, exception: BaseException, context: Optional[Dict[str, Any]] = None):
    """
    Логирование исключения с контекстом

    Args:
        logger: structlog логгер
        exception: Исключение для логирования
        context: Дополнительный контекст (symbol, timeframe и т.д.)
    """
    log_data = {
        'error_type': type(exception).__name__,
        'error_message': str(exception),
    }

    if isinstance(exception, SREngineException):
        log_data.update({
            'error_code': exception.error_code,
            'error_details': exception.details,
        })

    if context:
        log_data.update(context)

    logger.error("Exception occurred", **log_data, exc_info=exception)
