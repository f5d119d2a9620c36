"""Structured per-call log entries for upstream ledger requests."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, Field

from ...domain.ledger.entities import Layer, UpstreamError

logger = logging.getLogger(__name__)

_MASK = "****"


def mask_sensitive_data(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a copy of ``data`` with bank details and tax ids masked.

    ``account``/``bank_code`` keep their last 4 characters, ``inn`` keeps the
    first and last 2. Nested objects and lists of objects (``recipient``,
    ``recipients``, ``deal_data``) are masked the same way.
    """
    masked = dict(data)

    for key in ("account", "bank_code"):
        value = masked.get(key)
        if isinstance(value, str) and len(value) >= 4:
            masked[key] = _MASK + value[-4:]

    inn = masked.get("inn")
    if isinstance(inn, str) and len(inn) >= 4:
        masked["inn"] = inn[:2] + _MASK + inn[-2:]

    for key, value in list(masked.items()):
        if isinstance(value, Mapping):
            masked[key] = mask_sensitive_data(value)
        elif isinstance(value, list):
            masked[key] = [
                mask_sensitive_data(v) if isinstance(v, Mapping) else v for v in value
            ]

    return masked


class LedgerLogEntry(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: str
    method: str
    layer: Layer
    params: dict[str, Any]
    success: bool
    error_code: Optional[int] = None
    error_message: Optional[str] = None
    duration_ms: float


def create_log_entry(
    request_id: str,
    method: str,
    layer: Layer,
    params: Mapping[str, Any],
    success: bool,
    duration_ms: float,
    error: Optional[UpstreamError] = None,
) -> LedgerLogEntry:
    return LedgerLogEntry(
        request_id=request_id,
        method=method,
        layer=layer,
        params=mask_sensitive_data(params),
        success=success,
        error_code=error.code if error else None,
        error_message=error.message if error else None,
        duration_ms=duration_ms,
    )


def log_ledger_request(entry: LedgerLogEntry) -> None:
    prefix = f"[Ledger {entry.layer.value.upper()}]"
    if not entry.success:
        logger.error(
            "%s %s failed id=%s code=%s message=%r duration_ms=%.1f params=%s",
            prefix,
            entry.method,
            entry.request_id,
            entry.error_code,
            entry.error_message,
            entry.duration_ms,
            entry.params,
        )
        return
    logger.debug(
        "%s %s ok id=%s duration_ms=%.1f",
        prefix,
        entry.method,
        entry.request_id,
        entry.duration_ms,
    )
