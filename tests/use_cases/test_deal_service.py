"""Use case tests for DealService status gating."""

from __future__ import annotations

import logging

import pytest

from nominal_ops.application.deals.use_cases import DealService, deal_status_of
from nominal_ops.domain.errors import DealActionNotAllowedError
from nominal_ops.domain.ledger.entities import (
    DealActions,
    DealStatus,
    LedgerCredentials,
)
from tests.fixtures import DEAL_ID, FakeLedger, build_deal, make_ledger_client


def service_for(
    credentials: LedgerCredentials, fake: FakeLedger, status: str | None
) -> DealService:
    deal = {"id": DEAL_ID}
    if status is not None:
        deal["status"] = status
    fake.reply("get_deal", {"deal": deal})
    return DealService(make_ledger_client(credentials, fake))


class TestDealStatusOf:
    def test_nested_deal(self) -> None:
        assert deal_status_of({"deal": {"status": "new"}}) is DealStatus.NEW

    def test_flat_result(self) -> None:
        assert deal_status_of({"status": "partial"}) is DealStatus.PARTIAL

    @pytest.mark.parametrize("result", [None, [], {"deal": {}}, {"status": "odd"}])
    def test_unrecognized(self, result: object) -> None:
        assert deal_status_of(result) is None


class TestGatedActions:
    @pytest.mark.asyncio
    async def test_execute_new_deal(self, credentials: LedgerCredentials) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, "new")

        result = await service.execute_deal(DEAL_ID)

        assert not result.data.is_error
        assert fake.methods() == ["get_deal", "execute_deal"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["in_process", "closed", "correction"])
    async def test_execute_refused(
        self, credentials: LedgerCredentials, status: str
    ) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, status)

        with pytest.raises(DealActionNotAllowedError) as exc_info:
            await service.execute_deal(DEAL_ID)

        assert exc_info.value.action == "execute"
        assert exc_info.value.status == status
        assert fake.methods() == ["get_deal"]

    @pytest.mark.asyncio
    async def test_reject_only_from_new(self, credentials: LedgerCredentials) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, "partial")

        with pytest.raises(DealActionNotAllowedError, match="reject"):
            await service.reject_deal(DEAL_ID)

    @pytest.mark.asyncio
    async def test_cancel_from_correction(
        self, credentials: LedgerCredentials
    ) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, "correction")

        await service.cancel_deal(DEAL_ID)

        assert fake.methods() == ["get_deal", "cancel_deal_with_executed_recipients"]

    @pytest.mark.asyncio
    async def test_edit_partial_deal(self, credentials: LedgerCredentials) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, "partial")

        await service.update_deal(DEAL_ID, {"ext_key": "renamed"})

        assert fake.methods() == ["get_deal", "update_deal"]
        assert fake.params()["deal_data"] == {"ext_key": "renamed"}

    @pytest.mark.asyncio
    async def test_get_deal_error_returned(
        self, credentials: LedgerCredentials
    ) -> None:
        fake = FakeLedger()
        fake.reply("get_deal", error={"code": 4417, "message": "Deal not found"})
        service = DealService(make_ledger_client(credentials, fake))

        result = await service.execute_deal(DEAL_ID)

        assert result.data.error is not None
        assert result.data.error.code == 4417
        assert fake.methods() == ["get_deal"]

    @pytest.mark.asyncio
    async def test_unknown_status_left_to_upstream(
        self, credentials: LedgerCredentials, caplog: pytest.LogCaptureFixture
    ) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, None)

        with caplog.at_level(logging.WARNING):
            await service.reject_deal(DEAL_ID)

        assert fake.methods() == ["get_deal", "rejected_deal"]
        assert "no recognizable status" in caplog.text


class TestPassThrough:
    @pytest.mark.asyncio
    async def test_create_and_actions(self, credentials: LedgerCredentials) -> None:
        fake = FakeLedger()
        service = service_for(credentials, fake, "correction")

        await service.create_deal(build_deal())
        actions = await service.get_actions(DEAL_ID)
        await service.compliance_check(DEAL_ID)

        assert actions == DealActions(can_cancel_from_correction=True)
        assert fake.methods() == ["create_deal", "get_deal", "compliance_check_deal"]

    @pytest.mark.asyncio
    async def test_actions_unknown_for_missing_deal(
        self, credentials: LedgerCredentials
    ) -> None:
        fake = FakeLedger()
        fake.reply("get_deal", error={"code": 4417, "message": "Deal not found"})
        service = DealService(make_ledger_client(credentials, fake))

        assert await service.get_actions(DEAL_ID) is None
