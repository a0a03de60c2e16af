"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP/очереди/DLQ
- явная классификация сбоев обработки: retryable vs fatal
- единый стиль исключений по проекту
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"

    # Очередь
    TRANSPORT = "transport_error"
    BAD_PAYLOAD = "bad_payload"
    ACK_ALREADY_RESOLVED = "ack_already_resolved"

    # Анализ
    ANALYSIS_TIMEOUT = "analysis_timeout"
    ANALYSIS_UNREACHABLE = "analysis_unreachable"
    ANALYSIS_INVALID = "analysis_invalid"

    # Отчёт / доставка
    REPORT_ERROR = "report_error"
    RECIPIENT_UNREACHABLE = "recipient_unreachable"
    PAYLOAD_REJECTED = "payload_rejected"
    DELIVERY_TRANSIENT = "delivery_transient"

    # Инфра/хранилища
    REDIS_ERROR = "redis_error"


@dataclass
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение
    - details: доп. данные (без секретов)
    """

    code: str
    message: str
    details: dict | None = None

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class ValidationError(AppError):
    def __init__(self, message: str = "Ошибка валидации", details: dict | None = None) -> None:
        super().__init__(ErrCode.VALIDATION, message, details)


class UnauthorizedError(AppError):
    def __init__(self, message: str = "Не авторизован", details: dict | None = None) -> None:
        super().__init__(ErrCode.UNAUTHORIZED, message, details)


class TransportError(AppError):
    """
    Очередь недоступна. Пробрасывается вызывающему enqueue,
    ретрай на его стороне.
    """

    def __init__(self, message: str = "Очередь недоступна", details: dict | None = None) -> None:
        super().__init__(ErrCode.TRANSPORT, message, details)


class AckAlreadyResolvedError(AppError):
    def __init__(self, message: str = "Подтверждение уже выполнено", details: dict | None = None) -> None:
        super().__init__(ErrCode.ACK_ALREADY_RESOLVED, message, details)


# =============================================================================
# ОШИБКИ ОБРАБОТКИ ЗАДАЧИ
# =============================================================================
class ProcessingError(AppError):
    """
    Ошибка обработки одной записи очереди.
    retryable=True -> запись возвращается в очередь, иначе уходит в DLQ.
    """

    retryable: bool = True


class AnalysisError(ProcessingError):
    pass


class AnalysisTimeout(AnalysisError):
    retryable = True

    def __init__(self, message: str = "Анализ не уложился в таймаут", details: dict | None = None) -> None:
        super().__init__(ErrCode.ANALYSIS_TIMEOUT, message, details)


class AnalysisUnreachable(AnalysisError):
    retryable = True

    def __init__(self, message: str = "Страница недоступна", details: dict | None = None) -> None:
        super().__init__(ErrCode.ANALYSIS_UNREACHABLE, message, details)


class AnalysisInvalid(AnalysisError):
    retryable = False

    def __init__(self, message: str = "Некорректный адрес или контент", details: dict | None = None) -> None:
        super().__init__(ErrCode.ANALYSIS_INVALID, message, details)


class ReportError(ProcessingError):
    retryable = False

    def __init__(self, message: str = "Не удалось собрать отчёт", details: dict | None = None) -> None:
        super().__init__(ErrCode.REPORT_ERROR, message, details)


class DeliveryFailure(ProcessingError):
    """
    Сбой доставки. permanent=True: получатель недоступен навсегда
    или отклонил содержимое, повтор бессмысленен.
    """

    def __init__(
        self,
        code: str = ErrCode.DELIVERY_TRANSIENT,
        message: str = "Не удалось доставить отчёт",
        details: dict | None = None,
        *,
        permanent: bool = False,
    ) -> None:
        super().__init__(code, message, details)
        self.retryable = not permanent


class BadPayloadError(ProcessingError):
    retryable = False

    def __init__(self, message: str = "Некорректный payload задачи", details: dict | None = None) -> None:
        super().__init__(ErrCode.BAD_PAYLOAD, message, details)
