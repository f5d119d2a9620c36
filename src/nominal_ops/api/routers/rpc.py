"""Generic ledger JSON-RPC proxy route."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from ...infrastructure.ledger.ledger_client import LedgerClient
from ..dependencies import get_ledger_client
from ..errors import ledger_call, ledger_response
from ..schemas import RpcRequestDTO

router = APIRouter(tags=["rpc"])


@router.post("/rpc")
async def call_method(
    payload: RpcRequestDTO,
    client: LedgerClient = Depends(get_ledger_client),
) -> dict[str, Any]:
    """Call an allow-listed ledger method.

    Rate-limited reads may be answered from cache; ``cache`` in the response
    says how old the data is and when a refresh is allowed.
    """
    with ledger_call("rpc"):
        result = await client.call(
            payload.method, payload.params, force_refresh=payload.force_refresh
        )
        return ledger_response(result)
