from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from fiscal_ledger.sales.schemas import DecimalValue, ExchangeRateValue, QuantityValue, TaxRateValue


BillStatus = Literal["pending", "partial", "paid", "cancelled"]


class BillCreate(BaseModel):
    supplier_id: int
    bill_number: str = Field(..., min_length=1, max_length=50)
    bill_date: date
    due_date: Optional[date] = None
    currency: str = Field("USD", max_length=10)
    exchange_rate: ExchangeRateValue = Field(Decimal("1"), gt=0)
    notes: Optional[str] = None


class BillLineCreate(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: QuantityValue = Field(..., gt=0)
    unit_price: DecimalValue = Field(..., ge=0)
    tax_rate: TaxRateValue = Field(Decimal("0"), ge=0)


class BillLineResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_rate: Decimal
    line_subtotal: Decimal
    tax_amount: Decimal
    line_total: Decimal
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class BillResponse(BaseModel):
    id: int
    supplier_id: int
    supplier_name: Optional[str] = None
    bill_number: str
    status: BillStatus
    bill_date: date
    due_date: Optional[date] = None
    currency: str
    exchange_rate: Decimal
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance: Decimal
    is_finalized: bool
    finalized_at: Optional[datetime] = None
    journal_entry_id: Optional[int] = None
    created_at: datetime
    lines: List[BillLineResponse] = Field(default_factory=list)
