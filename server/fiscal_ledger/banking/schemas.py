from datetime import date, datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from fiscal_ledger.sales.schemas import DecimalValue


BankAccountType = Literal["checking", "savings", "credit"]
TransactionType = Literal["deposit", "withdrawal", "transfer"]
TransactionStatus = Literal["pending", "reconciled"]


class BankAccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    bank_name: str = Field(..., min_length=1, max_length=200)
    account_number: str = Field(..., min_length=1, max_length=50)
    account_type: BankAccountType = "checking"
    currency: str = Field("USD", max_length=10)
    chart_account_id: Optional[int] = None
    initial_balance: DecimalValue = Decimal("0")
    notes: Optional[str] = None


class BankAccountUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    bank_name: Optional[str] = Field(None, min_length=1, max_length=200)
    account_number: Optional[str] = Field(None, min_length=1, max_length=50)
    account_type: Optional[BankAccountType] = None
    currency: Optional[str] = Field(None, max_length=10)
    chart_account_id: Optional[int] = None
    initial_balance: Optional[DecimalValue] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class BankAccountResponse(BaseModel):
    id: int
    code: str
    bank_name: str
    account_number: str
    account_type: BankAccountType
    currency: str
    chart_account_id: Optional[int] = None
    initial_balance: Decimal
    current_balance: Decimal
    is_active: bool
    notes: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BookBalanceResponse(BaseModel):
    bank_account_id: int
    as_of: Optional[date] = None
    balance: Decimal


class BankTransactionCreate(BaseModel):
    bank_account_id: int
    transaction_type: TransactionType
    amount: DecimalValue = Field(..., gt=0)
    transaction_date: date
    description: str = Field(..., min_length=1)
    reference: Optional[str] = Field(None, max_length=100)
    destination_account_id: Optional[int] = None
    counterpart_account_id: Optional[int] = None


class BankTransactionResponse(BaseModel):
    id: int
    bank_account_id: int
    transaction_type: TransactionType
    amount: Decimal
    transaction_date: date
    reference: Optional[str] = None
    description: str
    destination_account_id: Optional[int] = None
    status: TransactionStatus
    reconciliation_id: Optional[int] = None
    journal_entry_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BankReconciliationCreate(BaseModel):
    bank_account_id: int
    reconciliation_date: date
    start_date: date
    end_date: date
    balance_per_bank: DecimalValue
    transaction_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None


class BankReconciliationResponse(BaseModel):
    id: int
    bank_account_id: int
    reconciliation_date: date
    start_date: date
    end_date: date
    balance_per_books: Decimal
    balance_per_bank: Decimal
    difference: Decimal
    notes: Optional[str] = None
    status: Literal["in_progress", "completed"]
    completed_at: Optional[datetime] = None
    transaction_ids: List[int] = Field(default_factory=list)
