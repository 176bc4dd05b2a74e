from typing import List, Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.db import get_db
from fiscal_ledger.models import User
from fiscal_ledger.suppliers import schemas
from fiscal_ledger.suppliers import service


router = APIRouter(prefix="/api", tags=["suppliers"])


@router.get("/suppliers", response_model=List[schemas.SupplierResponse])
def list_suppliers(
    search: Optional[str] = None,
    active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return service.list_suppliers(db, current_user.company_id, search=search, active=active)


@router.post("/suppliers", response_model=schemas.SupplierResponse, status_code=status.HTTP_201_CREATED)
def create_supplier(
    payload: schemas.SupplierCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    supplier = service.create_supplier(
        db, company_id=current_user.company_id, actor_id=current_user.id, **payload.model_dump()
    )
    db.commit()
    db.refresh(supplier)
    return supplier


@router.get("/suppliers/{supplier_id}", response_model=schemas.SupplierResponse)
def get_supplier(supplier_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return service.get_supplier(db, current_user.company_id, supplier_id)


@router.patch("/suppliers/{supplier_id}", response_model=schemas.SupplierResponse)
def update_supplier(
    supplier_id: int,
    payload: schemas.SupplierUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    supplier = service.update_supplier(
        db,
        company_id=current_user.company_id,
        actor_id=current_user.id,
        supplier_id=supplier_id,
        data=payload.model_dump(exclude_unset=True),
    )
    db.commit()
    db.refresh(supplier)
    return supplier


@router.delete("/suppliers/{supplier_id}", response_model=schemas.SupplierResponse)
def archive_supplier(supplier_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    supplier = service.archive_supplier(db, company_id=current_user.company_id, actor_id=current_user.id, supplier_id=supplier_id)
    db.commit()
    db.refresh(supplier)
    return supplier
