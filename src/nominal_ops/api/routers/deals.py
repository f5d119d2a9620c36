"""Deal API routes."""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ...application.deals.use_cases import DealService, deal_status_of
from ...application.errors.translator import DEAL_NOT_FOUND
from ...domain.ledger.entities import DEAL_STATUS_LABELS, DealStatus, available_actions
from ..dependencies import get_deal_service
from ..errors import ledger_call, ledger_response
from ..schemas import ExecuteDealRequestDTO

router = APIRouter(prefix="/deals", tags=["deals"])

_NOT_FOUND = (DEAL_NOT_FOUND,)


@router.get("")
async def list_deals(
    page: int = Query(1, ge=1),
    per_page: int = Query(100, ge=1, le=1000),
    deal_status: Optional[DealStatus] = Query(None, alias="status"),
    ext_key: Optional[str] = Query(None),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    filters: dict[str, Any] = {}
    if deal_status is not None:
        filters["status"] = deal_status.value
    if ext_key:
        filters["ext_key"] = ext_key
    params: dict[str, Any] = {"page": page, "per_page": per_page}
    if filters:
        params["filters"] = filters

    with ledger_call("deals.list"):
        return ledger_response(await deal_service.list_deals(params))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_deal(
    candidate: dict[str, Any] = Body(...),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    """Validate and create a multi-party deal.

    Invalid deals are rejected with 422 and every violated rule, without
    contacting the ledger.
    """
    with ledger_call("deals.create"):
        return ledger_response(await deal_service.create_deal(candidate))


@router.get("/{deal_id}")
async def get_deal(
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    """Return the deal plus the actions its current status permits."""
    with ledger_call("deals.get"):
        body = ledger_response(
            await deal_service.get_deal(deal_id), not_found_codes=_NOT_FOUND
        )
    deal_status = deal_status_of(body.get("result"))
    if deal_status is not None:
        body["status_label"] = DEAL_STATUS_LABELS[deal_status]
        body["actions"] = available_actions(deal_status).model_dump()
    return body


@router.patch("/{deal_id}")
async def update_deal(
    deal_data: dict[str, Any] = Body(...),
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    with ledger_call("deals.update"):
        result = await deal_service.update_deal(deal_id, deal_data)
        return ledger_response(result, not_found_codes=_NOT_FOUND)


@router.post("/{deal_id}/execute")
async def execute_deal(
    payload: Optional[ExecuteDealRequestDTO] = None,
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    recipients = payload.recipients_execute if payload else None
    with ledger_call("deals.execute"):
        result = await deal_service.execute_deal(deal_id, recipients)
        return ledger_response(result, not_found_codes=_NOT_FOUND)


@router.post("/{deal_id}/reject")
async def reject_deal(
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    with ledger_call("deals.reject"):
        result = await deal_service.reject_deal(deal_id)
        return ledger_response(result, not_found_codes=_NOT_FOUND)


@router.post("/{deal_id}/cancel")
async def cancel_deal(
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    """Cancel a deal in correction, keeping already executed recipients."""
    with ledger_call("deals.cancel"):
        result = await deal_service.cancel_deal(deal_id)
        return ledger_response(result, not_found_codes=_NOT_FOUND)


@router.post("/{deal_id}/compliance")
async def compliance_check_deal(
    deal_id: str = Path(..., description="Deal identifier"),
    deal_service: DealService = Depends(get_deal_service),
) -> dict[str, Any]:
    with ledger_call("deals.compliance"):
        result = await deal_service.compliance_check(deal_id)
        return ledger_response(result, not_found_codes=_NOT_FOUND)
