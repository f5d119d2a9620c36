"""Typed facade over the signed ledger transport and the rate-limit cache."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence, Type
from types import TracebackType

from ...application.deals.validators import (
    validate_deal,
    validate_execute_deal,
    validate_list_deals,
    validate_update_deal,
)
from ...application.payments.validators import validate_identify_amounts
from ...domain.errors import LayerNotConfiguredError, MethodNotAllowedError
from ...domain.ledger.entities import Layer, LedgerCredentials
from ..cache import CacheInfo, CachedResult, RateLimitedCache, cache_key, should_cache
from .rpc_transport import RpcTransport

logger = logging.getLogger(__name__)

ALLOWED_METHODS = frozenset(
    {
        # Beneficiaries
        "create_beneficiary_ul",
        "create_beneficiary_ip",
        "create_beneficiary_fl",
        "update_beneficiary_ul",
        "update_beneficiary_ip",
        "update_beneficiary_fl",
        "get_beneficiary",
        "list_beneficiary",
        "activate_beneficiary",
        "deactivate_beneficiary",
        "get_beneficiary_restrictions",
        # Virtual accounts
        "create_virtual_account",
        "get_virtual_account",
        "list_virtual_account",
        "list_virtual_transaction",
        "refund_virtual_account",
        "transfer_between_virtual_accounts",
        "transfer_between_virtual_accounts_v2",
        "get_virtual_accounts_transfer",
        # Deals
        "create_deal",
        "update_deal",
        "get_deal",
        "list_deals",
        "execute_deal",
        "rejected_deal",
        "cancel_deal_with_executed_recipients",
        "compliance_check_deal",
        # Payments
        "list_payments_v2",
        "get_payment",
        "identification_payment",
        "refund_payment",
        "identification_returned_payment_by_deal",
        "compliance_check_payment",
        "payment_of_taxes",
        "generate_payment_order",
        # SBP
        "list_bank_sbp",
        "generate_sbp_qrcode",
        # Documents
        "upload_document",
        "get_document",
        "list_documents",
        # Utilities
        "echo",
    }
)

_BENEFICIARY_READS = ("list_beneficiary", "get_beneficiary")
_VIRTUAL_ACCOUNT_READS = (
    "list_virtual_account",
    "get_virtual_account",
    "list_virtual_transaction",
)
_PAYMENT_READS = ("list_payments_v2", "get_payment")

# Successful mutation -> cached reads it makes stale.
INVALIDATES: dict[str, tuple[str, ...]] = {
    "create_beneficiary_ul": ("list_beneficiary",),
    "create_beneficiary_ip": ("list_beneficiary",),
    "create_beneficiary_fl": ("list_beneficiary",),
    "update_beneficiary_ul": _BENEFICIARY_READS,
    "update_beneficiary_ip": _BENEFICIARY_READS,
    "update_beneficiary_fl": _BENEFICIARY_READS,
    "activate_beneficiary": _BENEFICIARY_READS,
    "deactivate_beneficiary": _BENEFICIARY_READS,
    "create_virtual_account": ("list_virtual_account",),
    "refund_virtual_account": _VIRTUAL_ACCOUNT_READS,
    "transfer_between_virtual_accounts": _VIRTUAL_ACCOUNT_READS,
    "transfer_between_virtual_accounts_v2": _VIRTUAL_ACCOUNT_READS,
    "execute_deal": _VIRTUAL_ACCOUNT_READS,
    "identification_payment": _PAYMENT_READS + _VIRTUAL_ACCOUNT_READS,
    "refund_payment": _PAYMENT_READS + _VIRTUAL_ACCOUNT_READS,
}


class LedgerClient:
    """Ledger API client for one layer.

    Rate-limited reads are served through the shared cache; successful
    mutations drop the cached reads they affect. Application errors come back
    inside the result, transport errors are raised.
    """

    def __init__(self, transport: RpcTransport, cache: RateLimitedCache) -> None:
        self._transport = transport
        self._cache = cache

    @property
    def layer(self) -> Layer:
        return self._transport.layer

    async def call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        """Call any allow-listed upstream method by name."""
        if method not in ALLOWED_METHODS:
            raise MethodNotAllowedError(f'Method "{method}" is not allowed')
        return await self._call(method, params, force_refresh=force_refresh)

    async def _call(
        self,
        method: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        params = dict(params or {})

        if should_cache(method):
            return await self._cache.with_cache(
                cache_key(method, self.layer, params),
                lambda: self._transport.call(method, params),
                ttl=self._cache.ttl_for(method),
                force_refresh=force_refresh,
            )

        response = await self._transport.call(method, params)
        if not response.is_error:
            for stale in INVALIDATES.get(method, ()):
                removed = self._cache.invalidate_method(stale, self.layer)
                if removed:
                    logger.debug(
                        "%s invalidated %d cached %s entries", method, removed, stale
                    )
        return CachedResult(response, False, CacheInfo(cached=False))

    # Beneficiaries

    async def create_beneficiary_ul(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("create_beneficiary_ul", params)

    async def create_beneficiary_ip(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("create_beneficiary_ip", params)

    async def create_beneficiary_fl(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("create_beneficiary_fl", params)

    async def get_beneficiary(
        self, beneficiary_id: str, *, force_refresh: bool = False
    ) -> CachedResult:
        return await self._call(
            "get_beneficiary",
            {"beneficiary_id": beneficiary_id},
            force_refresh=force_refresh,
        )

    async def list_beneficiaries(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        return await self._call(
            "list_beneficiary", filters, force_refresh=force_refresh
        )

    async def activate_beneficiary(self, beneficiary_id: str) -> CachedResult:
        return await self._call(
            "activate_beneficiary", {"beneficiary_id": beneficiary_id}
        )

    async def deactivate_beneficiary(self, beneficiary_id: str) -> CachedResult:
        return await self._call(
            "deactivate_beneficiary", {"beneficiary_id": beneficiary_id}
        )

    # Virtual accounts

    async def create_virtual_account(
        self, beneficiary_id: str, virtual_account_type: str = "standard"
    ) -> CachedResult:
        return await self._call(
            "create_virtual_account",
            {
                "beneficiary_id": beneficiary_id,
                "virtual_account_type": virtual_account_type,
            },
        )

    async def get_virtual_account(
        self, virtual_account: str, *, force_refresh: bool = False
    ) -> CachedResult:
        return await self._call(
            "get_virtual_account",
            {"virtual_account": virtual_account},
            force_refresh=force_refresh,
        )

    async def list_virtual_accounts(
        self,
        params: Optional[Mapping[str, Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        return await self._call(
            "list_virtual_account", params, force_refresh=force_refresh
        )

    async def list_virtual_transactions(
        self,
        params: Mapping[str, Any],
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        return await self._call(
            "list_virtual_transaction", params, force_refresh=force_refresh
        )

    async def refund_virtual_account(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("refund_virtual_account", params)

    async def transfer_between_virtual_accounts(
        self, params: Mapping[str, Any], *, v2: bool = False
    ) -> CachedResult:
        method = (
            "transfer_between_virtual_accounts_v2"
            if v2
            else "transfer_between_virtual_accounts"
        )
        return await self._call(method, params)

    # Deals

    async def create_deal(self, candidate: Mapping[str, Any]) -> CachedResult:
        """Validate ``candidate`` and create the deal.

        Raises:
            DealValidationError: before any upstream call if the deal is invalid.
        """
        params = validate_deal(candidate)
        return await self._call("create_deal", params.to_params())

    async def update_deal(
        self, deal_id: str, deal_data: Mapping[str, Any]
    ) -> CachedResult:
        params = validate_update_deal(deal_id, deal_data)
        return await self._call("update_deal", params.to_params())

    async def get_deal(self, deal_id: str) -> CachedResult:
        return await self._call("get_deal", {"deal_id": deal_id})

    async def list_deals(
        self, params: Optional[Mapping[str, Any]] = None
    ) -> CachedResult:
        return await self._call("list_deals", validate_list_deals(params).to_params())

    async def execute_deal(
        self,
        deal_id: str,
        recipients_execute: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> CachedResult:
        params = validate_execute_deal(deal_id, recipients_execute)
        return await self._call("execute_deal", params.to_params())

    async def reject_deal(self, deal_id: str) -> CachedResult:
        return await self._call("rejected_deal", {"deal_id": deal_id})

    async def cancel_deal_with_executed_recipients(self, deal_id: str) -> CachedResult:
        return await self._call(
            "cancel_deal_with_executed_recipients", {"deal_id": deal_id}
        )

    async def compliance_check_deal(self, deal_id: str) -> CachedResult:
        return await self._call("compliance_check_deal", {"deal_id": deal_id})

    # Payments

    async def list_payments(
        self,
        params: Optional[Mapping[str, Any]] = None,
        *,
        force_refresh: bool = False,
    ) -> CachedResult:
        return await self._call("list_payments_v2", params, force_refresh=force_refresh)

    async def get_payment(
        self, payment_id: str, *, force_refresh: bool = False
    ) -> CachedResult:
        return await self._call(
            "get_payment", {"payment_id": payment_id}, force_refresh=force_refresh
        )

    async def identify_payment(
        self,
        payment_id: str,
        owners: Sequence[Mapping[str, Any]],
        payment_amount: Optional[Decimal] = None,
    ) -> CachedResult:
        """Assign an incoming payment to virtual accounts.

        Raises:
            ValueError: if ``payment_amount`` is given and the owners do not add
                up to it.
        """
        if payment_amount is not None:
            validate_identify_amounts(payment_amount, owners)
        return await self._call(
            "identification_payment",
            {"payment_id": payment_id, "owners": [dict(o) for o in owners]},
        )

    async def refund_payment(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("refund_payment", params)

    # SBP

    async def list_banks_sbp(self) -> CachedResult:
        return await self._call("list_bank_sbp")

    async def generate_sbp_qrcode(self, params: Mapping[str, Any]) -> CachedResult:
        return await self._call("generate_sbp_qrcode", params)

    # Documents

    async def upload_document_beneficiary(
        self,
        beneficiary_id: str,
        file_name: str,
        file_content_b64: str,
        document_type: str = "contract_offer",
    ) -> CachedResult:
        return await self._call(
            "upload_document",
            {
                "entity_type": "beneficiary",
                "entity_id": beneficiary_id,
                "document_type": document_type,
                "file_name": file_name,
                "file_content": file_content_b64,
            },
        )

    async def upload_document_deal(
        self,
        deal_id: str,
        recipient_number: int,
        file_name: str,
        file_content_b64: str,
        document_type: str = "service_agreement",
    ) -> CachedResult:
        return await self._call(
            "upload_document",
            {
                "entity_type": "deal",
                "entity_id": deal_id,
                "recipient_number": recipient_number,
                "document_type": document_type,
                "file_name": file_name,
                "file_content": file_content_b64,
            },
        )

    async def get_document(self, document_id: str) -> CachedResult:
        return await self._call("get_document", {"document_id": document_id})

    async def list_documents(
        self, filters: Optional[Mapping[str, Any]] = None
    ) -> CachedResult:
        return await self._call("list_documents", filters)

    # Utilities

    async def echo(self, text: str) -> CachedResult:
        return await self._call("echo", {"text": text})

    async def generate_payment_order(self, payment_id: str) -> CachedResult:
        return await self._call("generate_payment_order", {"payment_id": payment_id})

    async def aclose(self) -> None:
        await self._transport.aclose()

    async def __aenter__(self) -> "LedgerClient":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        await self.aclose()


class LedgerClientRegistry:
    """Lazily builds one ``LedgerClient`` per configured layer.

    All clients share a single cache; keys carry the layer so entries never
    collide.
    """

    def __init__(
        self,
        credentials: Mapping[Layer, LedgerCredentials],
        cache: RateLimitedCache,
        *,
        endpoints: Optional[Mapping[Layer, str]] = None,
        timeout: float = 15.0,
    ) -> None:
        self._credentials = dict(credentials)
        self._endpoints = dict(endpoints or {})
        self._timeout = timeout
        self.cache = cache
        self._clients: dict[Layer, LedgerClient] = {}

    def configured_layers(self) -> list[Layer]:
        return [layer for layer in Layer if layer in self._credentials]

    def get(self, layer: Layer | str) -> LedgerClient:
        layer = Layer(layer)
        client = self._clients.get(layer)
        if client is not None:
            return client
        credentials = self._credentials.get(layer)
        if credentials is None:
            raise LayerNotConfiguredError(
                f"Credentials for layer {layer.value.upper()} are not configured"
            )
        transport = RpcTransport(
            layer,
            credentials,
            endpoint=self._endpoints.get(layer),
            timeout=self._timeout,
        )
        client = LedgerClient(transport, self.cache)
        self._clients[layer] = client
        return client

    async def aclose(self) -> None:
        for client in self._clients.values():
            await client.aclose()
        self._clients.clear()
        await self.cache.aclose()
