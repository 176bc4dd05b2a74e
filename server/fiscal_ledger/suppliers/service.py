from typing import Optional, Sequence

from sqlalchemy.orm import Session

from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.errors import DuplicateCodeError, NotFoundError, ValidationError
from fiscal_ledger.models import Supplier
from fiscal_ledger.utils.tax_id import normalize_tax_id

SUPPLIER_FIELDS = (
    "name",
    "trade_name",
    "address",
    "city",
    "state",
    "phone",
    "email",
    "bank_name",
    "bank_account",
    "bank_account_type",
    "notes",
)


def list_suppliers(
    db: Session,
    company_id: int,
    *,
    search: Optional[str] = None,
    active: Optional[bool] = None,
) -> Sequence[Supplier]:
    query = db.query(Supplier).filter(Supplier.company_id == company_id)
    if active is not None:
        query = query.filter(Supplier.is_active.is_(active))
    if search:
        like = f"%{search}%"
        query = query.filter(
            Supplier.name.ilike(like) | Supplier.trade_name.ilike(like) | Supplier.tax_id.ilike(like)
        )
    return query.order_by(Supplier.name.asc()).all()


def get_supplier(db: Session, company_id: int, supplier_id: int) -> Supplier:
    supplier = db.query(Supplier).filter(Supplier.company_id == company_id, Supplier.id == supplier_id).first()
    if not supplier:
        raise NotFoundError("Supplier not found.")
    return supplier


def _ensure_unique_tax_id(db: Session, company_id: int, tax_id: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(Supplier.id).filter(Supplier.company_id == company_id, Supplier.tax_id == tax_id)
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise DuplicateCodeError(f"A supplier with tax id {tax_id} already exists.")


def create_supplier(db: Session, *, company_id: int, actor_id: Optional[int], tax_id: str, name: str, **fields) -> Supplier:
    formatted, tax_id_type = normalize_tax_id(tax_id)
    if not (name or "").strip():
        raise ValidationError("Supplier name is required.")
    _ensure_unique_tax_id(db, company_id, formatted)
    supplier = Supplier(company_id=company_id, tax_id=formatted, tax_id_type=tax_id_type, name=name.strip())
    for key in SUPPLIER_FIELDS[1:]:
        if key in fields:
            setattr(supplier, key, fields[key])
    db.add(supplier)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="supplier",
        entity_id=supplier.id,
        action="create",
        payload={"tax_id": supplier.tax_id, "name": supplier.name},
    )
    return supplier


def update_supplier(db: Session, *, company_id: int, actor_id: Optional[int], supplier_id: int, data: dict) -> Supplier:
    supplier = get_supplier(db, company_id, supplier_id)
    if data.get("tax_id"):
        formatted, tax_id_type = normalize_tax_id(data["tax_id"])
        _ensure_unique_tax_id(db, company_id, formatted, exclude_id=supplier.id)
        supplier.tax_id = formatted
        supplier.tax_id_type = tax_id_type
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("Supplier name is required.")
    for key in SUPPLIER_FIELDS:
        if key in data:
            setattr(supplier, key, data[key].strip() if key == "name" else data[key])
    if data.get("is_active") is not None:
        supplier.is_active = data["is_active"]
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="supplier",
        entity_id=supplier.id,
        action="update",
        payload=data,
    )
    return supplier


def archive_supplier(db: Session, *, company_id: int, actor_id: Optional[int], supplier_id: int) -> Supplier:
    return update_supplier(db, company_id=company_id, actor_id=actor_id, supplier_id=supplier_id, data={"is_active": False})
