from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, condecimal


DecimalValue = condecimal(max_digits=14, decimal_places=2)
QuantityValue = condecimal(max_digits=14, decimal_places=4)
TaxRateValue = condecimal(max_digits=7, decimal_places=4)
ExchangeRateValue = condecimal(max_digits=14, decimal_places=6)

InvoiceStatus = Literal["draft", "issued", "paid", "cancelled"]


class CustomerBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    trade_name: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class CustomerCreate(CustomerBase):
    tax_id: str = Field(..., min_length=1, max_length=20)


class CustomerUpdate(BaseModel):
    tax_id: Optional[str] = Field(None, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    trade_name: Optional[str] = Field(None, max_length=200)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None
    is_active: Optional[bool] = None


class CustomerResponse(CustomerBase):
    id: int
    tax_id: str
    tax_id_type: str
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TaxProfileCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    rate: TaxRateValue = Field(..., ge=0, le=100)
    is_default: bool = False
    sales_account_id: Optional[int] = None
    tax_account_id: Optional[int] = None


class TaxProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    rate: Optional[TaxRateValue] = Field(None, ge=0, le=100)
    is_default: Optional[bool] = None
    is_active: Optional[bool] = None
    sales_account_id: Optional[int] = None
    tax_account_id: Optional[int] = None


class TaxProfileResponse(BaseModel):
    id: int
    name: str
    rate: Decimal
    is_default: bool
    is_active: bool
    sales_account_id: Optional[int] = None
    tax_account_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class InvoiceCreate(BaseModel):
    customer_id: int
    invoice_date: date
    due_date: Optional[date] = None
    currency: str = Field("USD", max_length=10)
    exchange_rate: ExchangeRateValue = Field(Decimal("1"), gt=0)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    customer_id: Optional[int] = None
    invoice_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, max_length=10)
    exchange_rate: Optional[ExchangeRateValue] = Field(None, gt=0)
    notes: Optional[str] = None


class InvoiceLineCreate(BaseModel):
    description: str = Field(..., min_length=1)
    quantity: QuantityValue = Field(..., gt=0)
    unit_price: DecimalValue = Field(..., ge=0)
    tax_rate: Optional[TaxRateValue] = Field(None, ge=0)
    tax_profile_id: Optional[int] = None


class InvoiceLineResponse(BaseModel):
    id: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    tax_profile_id: Optional[int] = None
    tax_rate: Decimal
    line_subtotal: Decimal
    tax_amount: Decimal
    line_total: Decimal
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: int
    customer_id: int
    customer_name: Optional[str] = None
    invoice_number: Optional[str] = None
    control_number: Optional[str] = None
    status: InvoiceStatus
    invoice_date: date
    due_date: Optional[date] = None
    currency: str
    exchange_rate: Decimal
    notes: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    amount_paid: Decimal
    balance: Decimal
    journal_entry_id: Optional[int] = None
    issued_at: Optional[datetime] = None
    created_at: datetime
    lines: List[InvoiceLineResponse] = Field(default_factory=list)


class InvoiceIssueResponse(BaseModel):
    invoice_number: str
    control_number: str
    invoice: InvoiceResponse


class CreditNoteCreate(BaseModel):
    reason: str = Field(..., min_length=1)
    note_date: Optional[date] = None


class CreditNoteResponse(BaseModel):
    id: int
    invoice_id: int
    note_number: str
    control_number: str
    note_date: date
    reason: str
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    journal_entry_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
