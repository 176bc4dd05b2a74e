from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


AccountType = Literal["asset", "liability", "equity", "income", "expense"]
AccountRole = Literal["AR", "AP", "SALES", "VAT_PAYABLE", "VAT_RECOVERABLE", "PURCHASES_EXPENSE", "CASH"]


class AccountParentSummary(BaseModel):
    id: int
    name: str
    code: str

    model_config = ConfigDict(from_attributes=True)


class ChartAccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)
    type: AccountType
    is_group: bool = False
    description: Optional[str] = None
    is_active: bool = True
    parent_id: Optional[int] = None


class ChartAccountUpdate(BaseModel):
    code: Optional[str] = Field(None, min_length=1, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[AccountType] = None
    is_group: Optional[bool] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None
    parent_id: Optional[int] = None


class ChartAccountResponse(BaseModel):
    id: int
    code: str
    name: str
    type: AccountType
    is_group: bool
    description: Optional[str] = None
    is_active: bool
    parent_id: Optional[int] = None
    parent: Optional[AccountParentSummary] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ChartAccountBulkImportRequest(BaseModel):
    csv_data: str = Field(..., min_length=1)


class ChartAccountBulkImportResult(BaseModel):
    id: int
    code: str
    name: str
    parent_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class ChartAccountBulkImportResponse(BaseModel):
    created_count: int
    accounts: list[ChartAccountBulkImportResult]


class AccountDefaultUpdate(BaseModel):
    account_id: int


class AccountDefaultResponse(BaseModel):
    role: AccountRole
    account_id: Optional[int] = None
