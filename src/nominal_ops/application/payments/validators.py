"""Pure validation functions for incoming payment identification.

These functions contain business rules that can be tested in isolation
without a ledger connection.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping, Sequence

UNIDENTIFIABLE_PAYMENT_TYPES = frozenset(
    {"incoming_unrecognized", "unrecognized_refund", "unrecognized_refund_sbp"}
)

_CENT = Decimal("0.01")


def _round2(value: Any) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def validate_identify_amounts(
    payment_amount: Any,
    owners: Sequence[Mapping[str, Any]],
) -> None:
    """Validate that owner shares cover the payment amount. Pure function.

    Both sides are rounded to 2 decimal places before comparing.

    Args:
        payment_amount: The incoming payment amount
        owners: Owner entries, each with an ``amount``

    Raises:
        ValueError: If the owners' total differs from the payment by more than 0.01.
    """
    total = _round2(sum((Decimal(str(o["amount"])) for o in owners), Decimal("0")))
    expected = _round2(payment_amount)
    if abs(total - expected) > _CENT:
        raise ValueError(
            f"Owners amount {total} does not match payment amount {expected}"
        )


def can_identify_payment_type(payment_type: str) -> bool:
    return payment_type not in UNIDENTIFIABLE_PAYMENT_TYPES
