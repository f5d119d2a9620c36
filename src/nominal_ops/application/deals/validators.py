"""Pure validation functions for deal payloads.

These functions never touch the network. Every violated rule is collected
and raised together in a single ``DealValidationError``.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ...domain.errors import DealValidationError, ValidationIssue
from ...domain.ledger.entities import RecipientType
from .deal_dtos import (
    CreateDealParams,
    ExecuteDealParams,
    ListDealsParams,
    UpdateDealParams,
)

AMOUNT_TOLERANCE = Decimal("0.01")

DIGIT_ONLY_FIELDS = frozenset(
    {"account", "bank_code", "inn", "kpp", "phone_number", "kbk", "oktmo"}
)

_NON_DIGITS = re.compile(r"[^0-9]")
_RECIPIENT_TAGS = frozenset(t.value for t in RecipientType)

M = TypeVar("M", bound=BaseModel)


def normalize_deal_input(value: Any, field: Optional[str] = None) -> Any:
    """Trim strings recursively and strip separators from digit-only fields."""
    if isinstance(value, Mapping):
        return {k: normalize_deal_input(v, k) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_deal_input(v) for v in value]
    if isinstance(value, str):
        value = value.strip()
        if field in DIGIT_ONLY_FIELDS:
            value = _NON_DIGITS.sub("", value)
    return value


def _format_loc(loc: Sequence[Any]) -> str:
    path = ""
    prev_was_index = False
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
            prev_was_index = True
            continue
        # Discriminated unions add the tag value after the list index.
        if prev_was_index and part in _RECIPIENT_TAGS:
            prev_was_index = False
            continue
        path += f".{part}" if path else str(part)
        prev_was_index = False
    return path


def issues_from_validation_error(error: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(path=_format_loc(e["loc"]), message=e["msg"])
        for e in error.errors()
    ]


def _to_amount(value: Any) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    # NaN and infinities are left for structural validation to report.
    return amount if amount.is_finite() else None


def _amount_of(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("amount")
    return getattr(item, "amount", None)


def _sum_amounts(items: Iterable[Any]) -> Optional[Decimal]:
    """Sum item amounts, or None if any amount is unusable."""
    total = Decimal("0")
    for item in items:
        amount = _to_amount(_amount_of(item))
        if amount is None:
            return None
        total += amount
    return total


def check_deal_amounts(
    total: Any,
    payers: Sequence[Any],
    recipients: Sequence[Any],
) -> list[ValidationIssue]:
    """Check that payer and recipient amounts each add up to the deal total.

    Items may be mappings or objects with an ``amount`` attribute. Sums that
    cannot be computed are skipped; their malformed amounts are reported by
    structural validation.

    Returns:
        One issue per side whose sum differs from ``total`` by more than 0.01.
    """
    issues: list[ValidationIssue] = []
    expected = _to_amount(total)
    if expected is None:
        return issues

    sides = (("payers", payers, "Payer"), ("recipients", recipients, "Recipient"))
    for field, items, who in sides:
        if not items:
            continue
        actual = _sum_amounts(items)
        if actual is not None and abs(actual - expected) > AMOUNT_TOLERANCE:
            issues.append(
                ValidationIssue(
                    path=field,
                    message=f"{who} amounts sum to {actual}, deal amount is {expected}",
                )
            )
    return issues


def _number_key(value: Any) -> Optional[int]:
    """The integer a recipient number coerces to, or None if it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, (str, float, Decimal)):
        return None
    number = _to_amount(value.strip() if isinstance(value, str) else value)
    if number is None or number.adjusted() > 18:
        return None
    if number != number.to_integral_value():
        return None
    return int(number)


def check_unique_recipient_numbers(recipients: Sequence[Any]) -> list[ValidationIssue]:
    """Report recipient numbers used more than once.

    Numbers are compared after integer coercion, so ``1`` and ``"1"`` clash.
    Values that are not numbers at all are left for structural validation.
    """
    numbers = [
        r.get("number") if isinstance(r, Mapping) else getattr(r, "number", None)
        for r in recipients
    ]
    seen: set[int] = set()
    duplicates: list[int] = []
    for raw in numbers:
        n = _number_key(raw)
        if n is None:
            continue
        if n in seen and n not in duplicates:
            duplicates.append(n)
        seen.add(n)
    if not duplicates:
        return []
    listed = ", ".join(str(n) for n in duplicates)
    return [
        ValidationIssue(
            path="recipients",
            message=(
                f"Recipient numbers must be unique within a deal (duplicated: {listed})"
            ),
        )
    ]


def _cross_field_issues(data: Any) -> list[ValidationIssue]:
    if not isinstance(data, Mapping):
        return []
    payers = data.get("payers")
    recipients = data.get("recipients")
    payers = payers if isinstance(payers, list) else []
    recipients = recipients if isinstance(recipients, list) else []

    issues = check_unique_recipient_numbers(recipients)
    if "amount" in data:
        issues.extend(check_deal_amounts(data["amount"], payers, recipients))
    return issues


def _validate(model: Type[M], data: Any, extra: list[ValidationIssue]) -> M:
    issues: list[ValidationIssue] = []
    result: Optional[M] = None
    try:
        result = model.model_validate(data)
    except ValidationError as e:
        issues.extend(issues_from_validation_error(e))
    issues.extend(extra)
    if issues or result is None:
        raise DealValidationError(issues)
    return result


def validate_deal(candidate: Any) -> CreateDealParams:
    """Validate a ``create_deal`` candidate. Pure function.

    The candidate is normalized first: strings are trimmed and digit-only
    fields (account, bank_code, inn, kpp, phone_number, kbk, oktmo) lose any
    separators.

    Raises:
        DealValidationError: with every structural and arithmetic issue found.
    """
    data = normalize_deal_input(candidate)
    deal = _validate(CreateDealParams, data, _cross_field_issues(data))
    # Recheck on coerced values; the model accepts lax inputs for numbers.
    issues = check_unique_recipient_numbers(deal.recipients)
    if issues:
        raise DealValidationError(issues)
    return deal


def validate_update_deal(deal_id: Any, deal_data: Any) -> UpdateDealParams:
    """Validate ``update_deal`` params.

    Sums are checked only when the update carries ``amount`` together with
    the side being compared.
    """
    data = normalize_deal_input(deal_data)
    return _validate(
        UpdateDealParams,
        {"deal_id": deal_id, "deal_data": data},
        [
            ValidationIssue(path=f"deal_data.{i.path}", message=i.message)
            for i in _cross_field_issues(data)
        ],
    )


def validate_execute_deal(
    deal_id: Any, recipients_execute: Optional[Sequence[Any]] = None
) -> ExecuteDealParams:
    data: dict[str, Any] = {"deal_id": deal_id}
    if recipients_execute is not None:
        data["recipients_execute"] = list(recipients_execute)
    return _validate(ExecuteDealParams, data, [])


def validate_list_deals(params: Optional[Mapping[str, Any]] = None) -> ListDealsParams:
    return _validate(ListDealsParams, dict(params or {}), [])


def next_recipient_number(existing: Iterable[int]) -> int:
    """Return the next free recipient number (1 for an empty deal)."""
    return max(existing, default=0) + 1
