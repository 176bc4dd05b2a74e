from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import User
from fiscal_ledger.sequences import schemas
from fiscal_ledger.sequences.service import configure_fiscal_sequence, ensure_fiscal_sequences

router = APIRouter(prefix="/api", tags=["fiscal-sequences"])


@router.get("/fiscal-sequences", response_model=List[schemas.FiscalSequenceResponse])
def list_fiscal_sequences(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    sequences = ensure_fiscal_sequences(db, current_user.company_id)
    db.commit()
    return sequences


@router.put("/fiscal-sequences/{sequence_type}", response_model=schemas.FiscalSequenceResponse)
def update_fiscal_sequence(
    sequence_type: schemas.FiscalSequenceType,
    payload: schemas.FiscalSequenceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    sequence = configure_fiscal_sequence(db, current_user.company_id, sequence_type, **payload.model_dump(exclude_unset=True))
    db.commit()
    db.refresh(sequence)
    return sequence
