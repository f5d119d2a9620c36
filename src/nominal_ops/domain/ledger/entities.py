"""Ledger domain entities: layers, JSON-RPC envelopes, deal statuses."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class Layer(str, Enum):
    """Upstream environment. Selects both the endpoint and the credential set."""

    PRE = "pre"
    PROD = "prod"


class LedgerCredentials(BaseModel):
    """Signing material for one layer."""

    model_config = ConfigDict(frozen=True)

    private_key_pem: str = Field(..., repr=False)
    sign_system: str = Field(..., min_length=1)
    sign_thumbprint: str = Field(..., min_length=1)


class UpstreamError(BaseModel):
    """Application-level error carried in the ``error`` member of a response."""

    model_config = ConfigDict(extra="allow")

    code: int
    message: str = ""
    data: Optional[Any] = None
    meta: Optional[Any] = None


class JsonRpcRequest(BaseModel):
    """Request envelope. ``id`` is generated fresh for every call."""

    jsonrpc: str = "2.0"
    method: str
    params: dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=lambda: str(uuid4()))


class JsonRpcResponse(BaseModel):
    """Response envelope, kept verbatim (unknown members are preserved)."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: Optional[Union[str, int]] = None
    result: Optional[Any] = None
    error: Optional[UpstreamError] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


class DealStatus(str, Enum):
    NEW = "new"
    IN_PROCESS = "in_process"
    PARTIAL = "partial"
    CLOSED = "closed"
    REJECTED = "rejected"
    CORRECTION = "correction"
    CANCELED_BY_PLATFORM = "canceled_by_platform"


class RecipientType(str, Enum):
    PAYMENT_CONTRACT = "payment_contract"
    COMMISSION = "commission"
    SBP_V1 = "payment_contract_by_sbp"
    SBP_V2 = "payment_contract_by_sbp_v2"
    CARD = "payment_contract_to_card"
    NDFL = "ndfl"
    NDFL_TO_VIRTUAL_ACCOUNT = "ndfl_to_virtual_account"


TERMINAL_DEAL_STATUSES = frozenset(
    {DealStatus.CLOSED, DealStatus.REJECTED, DealStatus.CANCELED_BY_PLATFORM}
)

# Server-authoritative lifecycle; the client only observes it.
DEAL_TRANSITIONS: dict[DealStatus, frozenset[DealStatus]] = {
    DealStatus.NEW: frozenset(
        {DealStatus.IN_PROCESS, DealStatus.CORRECTION, DealStatus.REJECTED}
    ),
    DealStatus.IN_PROCESS: frozenset({DealStatus.PARTIAL, DealStatus.CLOSED}),
    DealStatus.PARTIAL: frozenset({DealStatus.IN_PROCESS}),
    DealStatus.CORRECTION: frozenset(
        {DealStatus.CLOSED, DealStatus.CANCELED_BY_PLATFORM}
    ),
    DealStatus.CLOSED: frozenset(),
    DealStatus.REJECTED: frozenset(),
    DealStatus.CANCELED_BY_PLATFORM: frozenset(),
}


class DealActions(BaseModel):
    """Operations the dashboard may offer for a deal in a given status."""

    model_config = ConfigDict(frozen=True)

    can_execute: bool = False
    can_edit: bool = False
    can_reject: bool = False
    can_cancel_from_correction: bool = False


def available_actions(status: DealStatus | str) -> DealActions:
    """Return the actions permitted for ``status``."""
    status = DealStatus(status)
    if status is DealStatus.NEW:
        return DealActions(can_execute=True, can_edit=True, can_reject=True)
    if status is DealStatus.PARTIAL:
        return DealActions(can_execute=True, can_edit=True)
    if status is DealStatus.CORRECTION:
        return DealActions(can_cancel_from_correction=True)
    return DealActions()


def can_transition(src: DealStatus | str, dst: DealStatus | str) -> bool:
    return DealStatus(dst) in DEAL_TRANSITIONS[DealStatus(src)]


def is_terminal(status: DealStatus | str) -> bool:
    return DealStatus(status) in TERMINAL_DEAL_STATUSES


DEAL_STATUS_LABELS: dict[DealStatus, str] = {
    DealStatus.NEW: "Новая",
    DealStatus.IN_PROCESS: "В процессе",
    DealStatus.PARTIAL: "Частично исполнена",
    DealStatus.CLOSED: "Завершена",
    DealStatus.REJECTED: "Отменена",
    DealStatus.CORRECTION: "Требует коррекции",
    DealStatus.CANCELED_BY_PLATFORM: "Отменена площадкой",
}

RECIPIENT_TYPE_LABELS: dict[RecipientType, str] = {
    RecipientType.PAYMENT_CONTRACT: "Оплата по договору",
    RecipientType.COMMISSION: "Комиссия",
    RecipientType.SBP_V1: "СБП",
    RecipientType.SBP_V2: "СБП (v2)",
    RecipientType.CARD: "На карту",
    RecipientType.NDFL: "НДФЛ (бюджетный платёж)",
    RecipientType.NDFL_TO_VIRTUAL_ACCOUNT: "Сбор на налоги (ВС)",
}
