"""Use cases for multi-party deals."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional, Sequence

from ...domain.errors import DealActionNotAllowedError
from ...domain.ledger.entities import DealActions, DealStatus, available_actions
from ...infrastructure.cache import CachedResult
from ...infrastructure.ledger.ledger_client import LedgerClient

logger = logging.getLogger(__name__)


def deal_status_of(result: Any) -> Optional[DealStatus]:
    """Extract the status from a ``get_deal`` result, if it carries a known one."""
    if not isinstance(result, Mapping):
        return None
    deal = result.get("deal", result)
    raw = deal.get("status") if isinstance(deal, Mapping) else None
    try:
        return DealStatus(raw)
    except ValueError:
        return None


class DealService:
    """Service orchestrating deal creation and status-gated deal actions.

    Actions re-read the deal first and refuse locally when its status does
    not allow them; the upstream remains the authority on the lifecycle.
    """

    def __init__(self, client: LedgerClient) -> None:
        self.client = client

    async def create_deal(self, candidate: Mapping[str, Any]) -> CachedResult:
        return await self.client.create_deal(candidate)

    async def get_deal(self, deal_id: str) -> CachedResult:
        return await self.client.get_deal(deal_id)

    async def list_deals(
        self, params: Optional[Mapping[str, Any]] = None
    ) -> CachedResult:
        return await self.client.list_deals(params)

    async def get_actions(self, deal_id: str) -> Optional[DealActions]:
        fetched = await self.client.get_deal(deal_id)
        if fetched.data.is_error:
            return None
        status = deal_status_of(fetched.data.result)
        return available_actions(status) if status is not None else None

    async def _guard(
        self,
        deal_id: str,
        action: str,
        permitted: Callable[[DealActions], bool],
    ) -> Optional[CachedResult]:
        """Return the ``get_deal`` error result, if any; raise if not permitted."""
        fetched = await self.client.get_deal(deal_id)
        if fetched.data.is_error:
            return fetched
        status = deal_status_of(fetched.data.result)
        if status is None:
            logger.warning(
                "Deal %s has no recognizable status; not gating %s", deal_id, action
            )
            return None
        if not permitted(available_actions(status)):
            raise DealActionNotAllowedError(action, status.value)
        return None

    async def update_deal(
        self, deal_id: str, deal_data: Mapping[str, Any]
    ) -> CachedResult:
        failed = await self._guard(deal_id, "edit", lambda a: a.can_edit)
        return failed or await self.client.update_deal(deal_id, deal_data)

    async def execute_deal(
        self,
        deal_id: str,
        recipients_execute: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> CachedResult:
        failed = await self._guard(deal_id, "execute", lambda a: a.can_execute)
        return failed or await self.client.execute_deal(deal_id, recipients_execute)

    async def reject_deal(self, deal_id: str) -> CachedResult:
        failed = await self._guard(deal_id, "reject", lambda a: a.can_reject)
        return failed or await self.client.reject_deal(deal_id)

    async def cancel_deal(self, deal_id: str) -> CachedResult:
        failed = await self._guard(
            deal_id, "cancel", lambda a: a.can_cancel_from_correction
        )
        return failed or await self.client.cancel_deal_with_executed_recipients(deal_id)

    async def compliance_check(self, deal_id: str) -> CachedResult:
        return await self.client.compliance_check_deal(deal_id)
