"""Data Transfer Objects for multi-party deal operations.

The models describe payload shape only. Relations between fields (sums and
recipient numbering) are checked in ``validators``.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer

from ...domain.ledger.entities import DealStatus

ALLOWED_TEXT_PATTERN = r"^[ -~№А-яЁё\t\n\r]*$"
IDENTIFIER_PATTERN = r"^[ -~№А-яЁё\t\n\r]{1,60}$"

Amount = Annotated[
    Decimal,
    Field(gt=0, decimal_places=2),
    PlainSerializer(float, return_type=float, when_used="json"),
]
PositiveInt = Annotated[int, Field(gt=0)]
Percent = Annotated[float, Field(ge=0, le=100)]

Account = Annotated[str, Field(pattern=r"^[0-9]{20}$")]
BankCode = Annotated[str, Field(pattern=r"^[0-9]{9}$")]
Inn = Annotated[str, Field(pattern=r"^([0-9]{10}|[0-9]{12})$")]
InnUl = Annotated[str, Field(pattern=r"^[0-9]{10}$")]
InnFl = Annotated[str, Field(pattern=r"^[0-9]{12}$")]
Kpp = Annotated[str, Field(pattern=r"^[0-9]{9}$")]
SbpPhone = Annotated[str, Field(pattern=r"^7[0-9]{10}$")]
Kbk = Annotated[str, Field(pattern=r"^[0-9]{20}$")]
Oktmo = Annotated[str, Field(pattern=r"^[0-9]{8}$")]

Name = Annotated[str, Field(min_length=1, pattern=ALLOWED_TEXT_PATTERN)]
NonEmpty = Annotated[str, Field(min_length=1)]
DocumentNumber = Annotated[str, Field(max_length=6)]
Identifier = Annotated[str, Field(pattern=IDENTIFIER_PATTERN)]
Purpose = Annotated[str, Field(max_length=210)]
SbpPurpose = Annotated[str, Field(max_length=140)]
CodePurpose = Literal["1", "2", "3", "4", "5"]
PurposeType = Literal["standard", "with_inn"]
DealFieldName = Literal["amount", "status", "created_at", "updated_at", "ext_key"]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    def to_params(self) -> dict[str, Any]:
        """Render as upstream JSON-RPC params, omitting unset optionals."""
        return self.model_dump(mode="json", exclude_none=True)


class DealPayer(_Payload):
    """Virtual account debited by the deal."""

    virtual_account: UUID
    amount: Amount


class _RecipientBase(_Payload):
    number: PositiveInt
    amount: Amount


class PaymentContractRecipient(_RecipientBase):
    """Bank transfer under a contract."""

    type: Literal["payment_contract"]
    account: Account
    bank_code: BankCode
    name: Name
    inn: Inn
    kpp: Optional[Kpp] = None
    purpose: Optional[Purpose] = None
    purpose_nds: Optional[Percent] = None
    document_number: Optional[DocumentNumber] = None
    identifier: Optional[Identifier] = None
    code_purpose: Optional[CodePurpose] = None


class CommissionRecipient(_RecipientBase):
    """Platform commission."""

    type: Literal["commission"]
    name: Name
    kpp: Optional[Kpp] = None
    purpose: Optional[Purpose] = None
    purpose_nds: Optional[Percent] = None
    purpose_type: Optional[PurposeType] = None
    document_number: Optional[DocumentNumber] = None


class _SbpRecipientFields(_RecipientBase):
    first_name: NonEmpty
    middle_name: Optional[str] = None
    last_name: NonEmpty
    phone_number: SbpPhone
    bank_sbp_id: NonEmpty
    purpose: Optional[SbpPurpose] = None
    purpose_nds: Optional[Percent] = None
    identifier: Optional[Identifier] = None
    inn: Optional[InnFl] = None


class SbpRecipient(_SbpRecipientFields):
    type: Literal["payment_contract_by_sbp"]


class SbpV2Recipient(_SbpRecipientFields):
    type: Literal["payment_contract_by_sbp_v2"]


class CardRecipient(_RecipientBase):
    type: Literal["payment_contract_to_card"]
    card_number_crypto_base64: NonEmpty
    purpose: Optional[Purpose] = None
    document_number: Optional[DocumentNumber] = None
    identifier: Optional[Identifier] = None
    inn: Optional[Inn] = None


class NdflTaxFields(_Payload):
    field107: Optional[str] = None
    type: Optional[str] = None
    status: Optional[Annotated[str, Field(pattern=r"^(0[1-9]|1[0-5])$")]] = None
    document_date: Optional[
        Annotated[str, Field(pattern=r"^([0-9]{4}-[0-9]{2}-[0-9]{2}|0)$")]
    ] = None


class RecipientFio(_Payload):
    first_name: NonEmpty
    last_name: NonEmpty
    middle_name: Optional[str] = None


class NdflRecipient(_RecipientBase):
    """Personal income tax payment to the budget."""

    type: Literal["ndfl"]
    account: Account
    bank_code: BankCode
    inn: InnUl
    purpose: NonEmpty
    kbk: Kbk
    oktmo: Oktmo
    base: NonEmpty
    tax_fields: NdflTaxFields
    recipient_fio: Optional[RecipientFio] = None


class NdflToVirtualAccountRecipient(_RecipientBase):
    type: Literal["ndfl_to_virtual_account"]
    virtual_account: UUID


DealRecipient = Annotated[
    Union[
        PaymentContractRecipient,
        CommissionRecipient,
        SbpRecipient,
        SbpV2Recipient,
        CardRecipient,
        NdflRecipient,
        NdflToVirtualAccountRecipient,
    ],
    Field(discriminator="type"),
]


class CreateDealParams(_Payload):
    """Params for ``create_deal``."""

    ext_key: Optional[str] = None
    amount: Amount
    payers: list[DealPayer] = Field(..., min_length=1)
    recipients: list[DealRecipient] = Field(..., min_length=1)


class ListDealsFilters(_Payload):
    status: Optional[DealStatus] = None
    ext_key: Optional[str] = None
    created_date_from: Optional[date] = None
    created_date_to: Optional[date] = None
    updated_at_from: Optional[datetime] = None
    updated_at_to: Optional[datetime] = None


class ListDealsParams(_Payload):
    page: PositiveInt = 1
    per_page: Annotated[int, Field(ge=1, le=1000)] = 100
    field_names: Optional[list[DealFieldName]] = None
    filters: Optional[ListDealsFilters] = None


class RecipientExecute(_Payload):
    number: PositiveInt


class DealIdParams(_Payload):
    """Params for methods addressed by deal id only."""

    deal_id: UUID


class ExecuteDealParams(DealIdParams):
    recipients_execute: Optional[list[RecipientExecute]] = None


class UpdateDealData(BaseModel):
    """Replacement deal fields. Fields other than payers/recipients pass through."""

    model_config = ConfigDict(extra="allow")

    amount: Optional[Amount] = None
    payers: Optional[list[DealPayer]] = None
    recipients: Optional[list[DealRecipient]] = None


class UpdateDealParams(DealIdParams):
    deal_data: UpdateDealData
