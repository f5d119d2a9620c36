"""Translation of upstream and transport faults into user-facing messages."""

from __future__ import annotations

import json
from typing import Any, Optional

from pydantic import BaseModel

from ...domain.errors import LedgerTransportError
from ...domain.ledger.entities import UpstreamError

BENEFICIARY_NOT_FOUND = 4409
BENEFICIARY_NOT_ACTIVE = 4410
VIRTUAL_ACCOUNT_NOT_FOUND = 4411
PAYMENT_NOT_FOUND = 4412
PAYMENT_AMOUNT_MISMATCH = 4413
PAYMENT_ALREADY_IDENTIFIED = 4414
INSUFFICIENT_FUNDS = 4415
DEAL_NOT_FOUND = 4417
INVALID_DEAL_STATUS = 4418
REFUND_ERROR = 4422
COMPLIANCE_ERROR = 4436
RESTRICTIONS_IMPOSED = 4558
IDEMPOTENT_REQUEST_IN_PROCESS = 4909

RETRYABLE_CODES = frozenset({500, 502, 503, 504})

UNKNOWN_ERROR_MESSAGE = "Неизвестная ошибка"

ERROR_MESSAGES: dict[int, str] = {
    BENEFICIARY_NOT_FOUND: "Бенефициар не найден",
    BENEFICIARY_NOT_ACTIVE: "Бенефициар не активен",
    VIRTUAL_ACCOUNT_NOT_FOUND: "Виртуальный счёт не найден",
    PAYMENT_NOT_FOUND: "Платёж не найден",
    PAYMENT_AMOUNT_MISMATCH: "Суммы не совпадают",
    PAYMENT_ALREADY_IDENTIFIED: "Платёж уже идентифицирован",
    INSUFFICIENT_FUNDS: "Недостаточно средств на виртуальном счёте",
    DEAL_NOT_FOUND: "Сделка не найдена",
    INVALID_DEAL_STATUS: "Операция невозможна с текущим статусом сделки",
    REFUND_ERROR: "Ошибка возврата платежа",
    COMPLIANCE_ERROR: "Ошибка комплаенс-проверки",
    RESTRICTIONS_IMPOSED: "Ограничения наложены банком",
    IDEMPOTENT_REQUEST_IN_PROCESS: (
        "Запрос с таким ext_key уже обрабатывается"
    ),
    400: "Некорректный запрос",
    401: "Ошибка аутентификации",
    403: "Доступ запрещён",
    500: "Внутренняя ошибка сервера банка",
    502: "Сервер банка недоступен",
    503: "Сервис банка временно недоступен",
    504: "Превышено время ожидания ответа банка",
}

ERROR_HINTS: dict[int, str] = {
    BENEFICIARY_NOT_FOUND: "Проверьте ID бенефициара или создайте нового",
    BENEFICIARY_NOT_ACTIVE: "Активируйте бенефициара перед выполнением операции",
    VIRTUAL_ACCOUNT_NOT_FOUND: (
        "Проверьте virtual_account: счёт должен существовать и иметь тип standard"
    ),
    PAYMENT_NOT_FOUND: (
        "Обновите список платежей и проверьте фильтры: платёж мог быть уже обработан"
    ),
    PAYMENT_AMOUNT_MISMATCH: (
        "Сумма owners.amount должна совпадать с суммой платежа, не более 2 знака "
        "после запятой"
    ),
    PAYMENT_ALREADY_IDENTIFIED: "Обновите страницу и проверьте статус identify платежа",
    INSUFFICIENT_FUNDS: "Пополните виртуальный счёт или уменьшите сумму операции",
    DEAL_NOT_FOUND: "Проверьте ID сделки и выбранный слой",
    INVALID_DEAL_STATUS: "Обновите сделку: её статус мог измениться",
    REFUND_ERROR: "Повторите позже или проверьте реквизиты возврата",
    COMPLIANCE_ERROR: "Обратитесь в поддержку банка",
    RESTRICTIONS_IMPOSED: (
        "Свяжитесь с банком: операция заблокирована по результатам комплаенс-контроля"
    ),
    IDEMPOTENT_REQUEST_IN_PROCESS: (
        "Дождитесь завершения предыдущего запроса или обновите страницу для проверки "
        "статуса"
    ),
    403: "Проверьте ключ подписи, sign-thumbprint, sign-system и IP в белом списке",
    504: "Проверьте доступность банка и повторите запрос",
}


class TranslatedError(BaseModel):
    code: int
    user_message: str
    debug_message: str
    hint: Optional[str] = None
    is_retryable: bool
    is_idempotent_in_process: bool


def error_hint(code: int) -> Optional[str]:
    return ERROR_HINTS.get(code)


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, default=str)


def translate_error(error: UpstreamError) -> TranslatedError:
    """Translate an application-level upstream error.

    Known codes get a localized message; unknown codes keep the upstream
    message verbatim.
    """
    code = error.code
    user_message = ERROR_MESSAGES.get(code) or error.message or UNKNOWN_ERROR_MESSAGE

    debug_message = f"Code: {code}, Message: {error.message}"
    if error.data is not None:
        debug_message += f", Data: {_dump(error.data)}"
    if error.meta is not None:
        debug_message += f", Meta: {_dump(error.meta)}"

    return TranslatedError(
        code=code,
        user_message=user_message,
        debug_message=debug_message,
        hint=error_hint(code),
        is_retryable=code in RETRYABLE_CODES,
        is_idempotent_in_process=code == IDEMPOTENT_REQUEST_IN_PROCESS,
    )


def translate_exception(exc: LedgerTransportError) -> TranslatedError:
    """Translate a transport fault into the same shape as an upstream error."""
    translated = translate_error(UpstreamError(code=exc.code, message=exc.message))
    hint = exc.guidance or translated.hint
    return translated.model_copy(
        update={"hint": hint, "is_retryable": translated.is_retryable or exc.retryable}
    )


def is_insufficient_funds(error: UpstreamError) -> bool:
    return error.code == INSUFFICIENT_FUNDS


def is_account_not_found(error: UpstreamError) -> bool:
    return error.code == VIRTUAL_ACCOUNT_NOT_FOUND


def is_beneficiary_error(error: UpstreamError) -> bool:
    return error.code in (BENEFICIARY_NOT_FOUND, BENEFICIARY_NOT_ACTIVE)


def should_show_idempotency_ui(error: UpstreamError) -> bool:
    return error.code == IDEMPOTENT_REQUEST_IN_PROCESS
