"""Builders for deal payloads."""

from __future__ import annotations

from typing import Any

PAYER_VA = "11111111-1111-1111-1111-111111111111"
DEAL_ID = "22222222-2222-2222-2222-222222222222"


def build_deal(**overrides: Any) -> dict[str, Any]:
    """A valid single-payer, single-recipient commission deal for 100.00."""
    deal: dict[str, Any] = {
        "ext_key": "deal-ext-1",
        "amount": "100.00",
        "payers": [{"virtual_account": PAYER_VA, "amount": "100.00"}],
        "recipients": [
            {"number": 1, "type": "commission", "amount": "100.00", "name": "ACME"}
        ],
    }
    deal.update(overrides)
    return deal


def payment_contract_recipient(**overrides: Any) -> dict[str, Any]:
    recipient: dict[str, Any] = {
        "number": 1,
        "type": "payment_contract",
        "amount": "100.00",
        "account": "40702810000000000001",
        "bank_code": "044525104",
        "name": "ООО Ромашка",
        "inn": "7701234567",
    }
    recipient.update(overrides)
    return recipient
