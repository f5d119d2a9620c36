"""Request bodies for the HTTP API."""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..application.payouts.calculator import MachineAssignment, VendingTransaction


class RpcRequestDTO(BaseModel):
    """Pass-through call of an allow-listed upstream method."""

    method: str = Field(..., min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    force_refresh: bool = False


class ExecuteDealRequestDTO(BaseModel):
    """Optional partial execution: only the listed recipient numbers are paid."""

    recipients_execute: Optional[list[dict[str, Any]]] = None


class PayoutCalculateRequestDTO(BaseModel):
    beneficiary_id: str = Field(..., min_length=1)
    end_date: dt.date
    assignments: list[MachineAssignment] = Field(default_factory=list)
    last_payout_end: Optional[dt.date] = None
    # Omitted: fetched from the vending provider when it is configured.
    transactions: Optional[list[VendingTransaction]] = None
    # Both set: the response also carries the payout deal params.
    payer_virtual_account: Optional[str] = None
    recipient: Optional[dict[str, Any]] = None
    ext_key: Optional[str] = None
