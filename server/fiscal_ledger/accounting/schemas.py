from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


JournalStatus = Literal["draft", "posted", "cancelled"]


class JournalLineCreate(BaseModel):
    account_id: int
    debit: Decimal = Field(Decimal("0"), ge=Decimal("0"))
    credit: Decimal = Field(Decimal("0"), ge=Decimal("0"))
    description: Optional[str] = Field(None, max_length=255)


class JournalEntryCreate(BaseModel):
    entry_date: date
    description: str = Field(..., min_length=1, max_length=255)
    reference: Optional[str] = Field(None, max_length=100)
    post: bool = True
    lines: list[JournalLineCreate]

    @field_validator("lines")
    @classmethod
    def validate_lines(cls, value: list[JournalLineCreate]) -> list[JournalLineCreate]:
        if not value:
            raise ValueError("Journal entries must include lines.")
        return value


class JournalEntryReverse(BaseModel):
    entry_date: Optional[date] = None
    description: Optional[str] = Field(None, max_length=255)


class JournalLineResponse(BaseModel):
    id: int
    account_id: int
    account_code: Optional[str] = None
    account_name: Optional[str] = None
    description: Optional[str] = None
    debit: Decimal
    credit: Decimal


class JournalEntryResponse(BaseModel):
    id: int
    entry_number: Optional[int] = None
    entry_date: date
    description: str
    reference: Optional[str] = None
    status: JournalStatus
    source_type: str
    source_id: Optional[int] = None
    reverses_id: Optional[int] = None
    total_debit: Decimal
    total_credit: Decimal
    created_at: datetime
    posted_at: Optional[datetime] = None
    lines: list[JournalLineResponse]


class AccountBalanceResponse(BaseModel):
    account_id: int
    account_code: str
    account_name: str
    account_type: str
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal

    model_config = ConfigDict(from_attributes=True)


class TrialBalanceResponse(BaseModel):
    as_of: date
    rows: list[AccountBalanceResponse]
    total_debit: Decimal
    total_credit: Decimal
    is_balanced: bool
