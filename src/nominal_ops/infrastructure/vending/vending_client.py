from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Iterable, Optional, Type, Union
from types import TracebackType

import httpx
from pydantic import TypeAdapter

from ...application.payouts.calculator import VendingTransaction
from ..http.http_client import AsyncHttpClient

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.vendista.ru:99"

_transactions = TypeAdapter(list[VendingTransaction])


class VendingApiError(Exception):
    """Raised when the vending provider rejects a request or returns garbage."""


class AsyncVendingClient:
    """Asynchronous client for the vending provider's sales API.

    Only the sales feed consumed by the payout calculator is covered.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 30.0,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("Vending API key is not configured")
        self._http = AsyncHttpClient(
            base_url,
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            transport=transport,
        )

    async def fetch_transactions(
        self,
        machine_id: Union[int, str],
        date_from: dt.date,
        date_to: dt.date,
    ) -> list[VendingTransaction]:
        params = {
            "machine_id": str(machine_id),
            "date_from": date_from.isoformat(),
            "date_to": date_to.isoformat(),
        }
        try:
            resp = await self._http.get("/transactions", params=params)
        except httpx.HTTPStatusError as e:
            raise VendingApiError(
                f"Vending API error: {e.response.status_code} - {e.response.text}"
            ) from e
        except httpx.RequestError as e:
            raise VendingApiError(f"Vending API unreachable: {e}") from e

        try:
            payload: Any = resp.json()
            # The feed is either {"items": [...]} or a bare list.
            items = payload.get("items", []) if isinstance(payload, dict) else payload
            return _transactions.validate_python(items)
        except ValueError as e:
            raise VendingApiError(f"Invalid transactions response format: {e}") from e

    async def fetch_transactions_for_machines(
        self,
        machine_ids: Iterable[Union[int, str]],
        date_from: dt.date,
        date_to: dt.date,
    ) -> list[VendingTransaction]:
        result: list[VendingTransaction] = []
        for machine_id in machine_ids:
            txs = await self.fetch_transactions(machine_id, date_from, date_to)
            logger.debug("Fetched %d vending transactions for %s", len(txs), machine_id)
            result.extend(txs)
        return result

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "AsyncVendingClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()
