from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


FiscalSequenceType = Literal["invoice", "credit_note", "debit_note"]


class FiscalSequenceUpdate(BaseModel):
    prefix: Optional[str] = Field(None, max_length=20)
    control_prefix: Optional[str] = Field(None, max_length=20)
    padding: Optional[int] = Field(None, ge=1, le=20)
    is_active: Optional[bool] = None


class FiscalSequenceResponse(BaseModel):
    id: int
    sequence_type: FiscalSequenceType
    prefix: str
    current_number: int
    control_prefix: str
    control_current: int
    padding: int
    is_active: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
