import datetime as dt
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PoolType = Literal["cash", "bank"]
CurrencyCode = Literal["NIO", "USD"]


class MovementCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(ge=0, max_digits=12, decimal_places=2)
    currency: CurrencyCode | None = None
    source: PoolType = "cash"
    account_id: str | None = None
    category_id: str | None = None
    date: dt.date
    note: str | None = Field(default=None, max_length=255)


class MovementUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    currency: CurrencyCode | None = None
    source: PoolType | None = None
    account_id: str | None = None
    category_id: str | None = None
    date: dt.date | None = None
    note: str | None = Field(default=None, max_length=255)


class TransferCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: CurrencyCode | None = None
    source_type: PoolType
    source_account_id: str | None = None
    destination_type: PoolType
    destination_account_id: str | None = None
    date: dt.date
    note: str | None = Field(default=None, max_length=255)


class TransferUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: Decimal | None = Field(default=None, gt=0, max_digits=12, decimal_places=2)
    currency: CurrencyCode | None = None
    source_type: PoolType | None = None
    source_account_id: str | None = None
    destination_type: PoolType | None = None
    destination_account_id: str | None = None
    date: dt.date | None = None
    note: str | None = Field(default=None, max_length=255)


class AccountCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=120)
    bank_institution: Literal["BAC", "Lafise", "Banpro", "Otro"]
    institution_name: str | None = Field(default=None, max_length=120)
    currency: CurrencyCode
    initial_balance: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)


class AccountUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=120)
    bank_institution: Literal["BAC", "Lafise", "Banpro", "Otro"] | None = None
    institution_name: str | None = Field(default=None, max_length=120)
    currency: CurrencyCode | None = None
    initial_balance: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)


class CategoryCreateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=2, max_length=60)
    type: Literal["income", "expense"]


class CategoryUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=2, max_length=60)
    type: Literal["income", "expense"] | None = None


class ReportRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dataset: Literal["incomes", "expenses", "balance"] = "balance"
    from_date: dt.date | None = None
    to_date: dt.date | None = None
    range: Literal["current-month", "current-year"] | None = None
    opening_balance: Decimal | None = Field(default=None, max_digits=12, decimal_places=2)
    order: Literal["asc", "desc"] = "asc"
    source: PoolType | None = None


class ExportRequest(ReportRequest):
    format: Literal["csv", "pdf"] = "pdf"
