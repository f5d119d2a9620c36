"""Commission payout calculation for vending machine beneficiaries."""

from __future__ import annotations

import datetime as dt
from decimal import ROUND_HALF_UP, Decimal
from typing import Annotated, Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, Field, PlainSerializer, field_validator

from ..deals.deal_dtos import CreateDealParams
from ..deals.validators import validate_deal

_CENT = Decimal("0.01")
_ZERO = Decimal("0")

Money = Annotated[
    Decimal, PlainSerializer(float, return_type=float, when_used="json")
]


def _date_part(value: Any) -> Any:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T", 1)[0]
    return value


class MachineAssignment(BaseModel):
    """A machine assigned to a beneficiary with its commission rate."""

    machine_id: Union[int, str]
    vending_id: str
    machine_name: Optional[str] = None
    commission_percent: Annotated[Decimal, Field(ge=0, le=100)]
    assigned_at: dt.date

    @field_validator("assigned_at", mode="before")
    @classmethod
    def validate_assigned_at(cls, v: Any) -> Any:
        return _date_part(v)


class VendingTransaction(BaseModel):
    """A single sale reported by the vending provider."""

    id: Union[int, str]
    machine_id: Union[int, str]
    date: dt.date
    amount: Decimal

    @field_validator("date", mode="before")
    @classmethod
    def validate_date(cls, v: Any) -> Any:
        return _date_part(v)


class MachinePayout(BaseModel):
    machine_id: Union[int, str]
    vending_id: str
    machine_name: Optional[str] = None
    period_start: dt.date
    sales_amount: Money
    commission_percent: Money
    commission_amount: Money
    net_amount: Money


class PayoutCalculation(BaseModel):
    beneficiary_id: str
    period_start: dt.date
    period_end: dt.date
    machines: list[MachinePayout] = Field(default_factory=list)
    total_sales: Money = _ZERO
    total_commission: Money = _ZERO
    payout_amount: Money = _ZERO


def _money(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def calculate_payout(
    beneficiary_id: str,
    assignments: Sequence[MachineAssignment],
    transactions: Sequence[VendingTransaction],
    end_date: dt.date,
    last_payout_end: Optional[dt.date] = None,
) -> PayoutCalculation:
    """Compute what a beneficiary is owed for sales up to ``end_date``.

    Each machine's period starts at the later of its assignment date and the
    end of the last completed payout; sales dated within ``[start, end_date]``
    count. Commission is rounded to kopecks so the net amount can be paid out
    as a deal.
    """
    machines: list[MachinePayout] = []
    period_start = end_date

    for assignment in assignments:
        start = assignment.assigned_at
        if last_payout_end is not None and last_payout_end > start:
            start = last_payout_end
        period_start = min(period_start, start)

        sales = sum(
            (
                t.amount
                for t in transactions
                if str(t.machine_id) == assignment.vending_id
                and start <= t.date <= end_date
            ),
            _ZERO,
        )
        commission = _money(sales * assignment.commission_percent / 100)
        machines.append(
            MachinePayout(
                machine_id=assignment.machine_id,
                vending_id=assignment.vending_id,
                machine_name=assignment.machine_name,
                period_start=start,
                sales_amount=sales,
                commission_percent=assignment.commission_percent,
                commission_amount=commission,
                net_amount=sales - commission,
            )
        )

    return PayoutCalculation(
        beneficiary_id=beneficiary_id,
        period_start=period_start,
        period_end=end_date,
        machines=machines,
        total_sales=sum((m.sales_amount for m in machines), _ZERO),
        total_commission=sum((m.commission_amount for m in machines), _ZERO),
        payout_amount=sum((m.net_amount for m in machines), _ZERO),
    )


def build_payout_deal(
    calculation: PayoutCalculation,
    payer_virtual_account: str,
    recipient: Mapping[str, Any],
    ext_key: Optional[str] = None,
) -> CreateDealParams:
    """Build a single-recipient deal paying out ``calculation``.

    ``recipient`` carries the variant fields (type, bank details); number and
    amount are filled in here.

    Raises:
        ValueError: If there is nothing to pay out.
        DealValidationError: If the resulting deal is invalid.
    """
    amount = _money(calculation.payout_amount)
    if amount <= 0:
        raise ValueError("No payout amount to execute")

    candidate: dict[str, Any] = {
        "amount": str(amount),
        "payers": [{"virtual_account": payer_virtual_account, "amount": str(amount)}],
        "recipients": [{**recipient, "number": 1, "amount": str(amount)}],
    }
    if ext_key is not None:
        candidate["ext_key"] = ext_key
    return validate_deal(candidate)
