from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fiscal_ledger.sales.schemas import DecimalValue


PaymentType = Literal["income", "expense"]
PaymentMethod = Literal["cash", "transfer", "check", "card", "mobile"]
DocumentType = Literal["invoice", "bill"]
AgingReportType = Literal["receivable", "payable"]


class PaymentAllocationCreate(BaseModel):
    document_type: DocumentType
    document_id: int
    amount: DecimalValue = Field(..., gt=0)


class PaymentCreate(BaseModel):
    payment_type: PaymentType
    payment_date: date
    payment_method: PaymentMethod
    amount: DecimalValue = Field(..., gt=0)
    currency: str = Field("USD", max_length=10)
    reference: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    account_id: Optional[int] = None
    allocations: List[PaymentAllocationCreate]

    @field_validator("allocations")
    @classmethod
    def validate_allocations(cls, value: List[PaymentAllocationCreate]) -> List[PaymentAllocationCreate]:
        if not value:
            raise ValueError("At least one allocation is required.")
        return value


class PaymentAllocationResponse(BaseModel):
    id: int
    document_type: DocumentType
    document_id: int
    amount_applied: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    payment_type: PaymentType
    payment_date: date
    payment_method: PaymentMethod
    amount: Decimal
    currency: str
    reference: Optional[str] = None
    description: Optional[str] = None
    account_id: Optional[int] = None
    journal_entry_id: Optional[int] = None
    idempotency_key: Optional[str] = None
    created_at: datetime
    allocations: List[PaymentAllocationResponse]

    model_config = ConfigDict(from_attributes=True)


class AgingRowResponse(BaseModel):
    entity_id: int
    entity_name: str
    entity_tax_id: str
    current_amount: Decimal
    days_1_30: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    days_over_90: Decimal
    total_balance: Decimal
    document_count: int

    model_config = ConfigDict(from_attributes=True)


class AgingTotals(BaseModel):
    current_amount: Decimal
    days_1_30: Decimal
    days_31_60: Decimal
    days_61_90: Decimal
    days_over_90: Decimal
    total_balance: Decimal


class AgingReportResponse(BaseModel):
    report_type: AgingReportType
    as_of: date
    rows: List[AgingRowResponse]
    totals: AgingTotals
