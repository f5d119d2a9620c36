"""Test doubles for the upstream ledger and deal payload builders."""

from .deals import DEAL_ID, PAYER_VA, build_deal, payment_contract_recipient
from .ledger_upstream import (
    TEST_ENDPOINT,
    FakeLedger,
    make_ledger_client,
    make_transport,
)

__all__ = [
    "DEAL_ID",
    "PAYER_VA",
    "TEST_ENDPOINT",
    "FakeLedger",
    "build_deal",
    "make_ledger_client",
    "make_transport",
    "payment_contract_recipient",
]
