"""Vending payout calculation routes."""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from ...application.payouts.calculator import (
    VendingTransaction,
    build_payout_deal,
    calculate_payout,
)
from ...infrastructure.vending.vending_client import AsyncVendingClient, VendingApiError
from ..dependencies import get_vending_client
from ..errors import ledger_call
from ..schemas import PayoutCalculateRequestDTO

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/payouts", tags=["payouts"])


@router.post("/calculate")
async def calculate(
    payload: PayoutCalculateRequestDTO,
    vending_client: Optional[AsyncVendingClient] = Depends(get_vending_client),
) -> dict[str, Any]:
    """Preview what a beneficiary is owed for vending sales up to ``end_date``."""
    transactions: list[VendingTransaction] = payload.transactions or []
    fetch = payload.transactions is None and vending_client is not None
    if fetch and payload.assignments:
        date_from = min(a.assigned_at for a in payload.assignments)
        try:
            transactions = await vending_client.fetch_transactions_for_machines(
                [a.vending_id for a in payload.assignments], date_from, payload.end_date
            )
        except VendingApiError as e:
            logger.warning("Vending sales fetch failed: %s", e)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)
            ) from e

    with ledger_call("payouts.calculate"):
        calculation = calculate_payout(
            payload.beneficiary_id,
            payload.assignments,
            transactions,
            payload.end_date,
            payload.last_payout_end,
        )
        body: dict[str, Any] = {
            "calculation": calculation.model_dump(mode="json"),
            "transactions_count": len(transactions),
        }
        wants_deal = payload.payer_virtual_account and payload.recipient
        if wants_deal and calculation.payout_amount > 0:
            deal = build_payout_deal(
                calculation,
                payload.payer_virtual_account,
                payload.recipient,
                ext_key=payload.ext_key,
            )
            body["deal"] = deal.to_params()
        return body
