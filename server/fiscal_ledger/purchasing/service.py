from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.account_defaults import resolve_role_account
from fiscal_ledger.accounting.posting import build_bill_entry
from fiscal_ledger.accounting.service import post_journal_entry, reverse_source_entry
from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.errors import (
    DuplicateCodeError,
    NoLinesError,
    NotDraftError,
    NotFoundError,
    StateConflict,
    ValidationError,
)
from fiscal_ledger.models import Bill, BillLine, PaymentAllocation
from fiscal_ledger.sales.calculations import (
    DocumentLineInput,
    calculate_document_totals,
    calculate_line_totals,
    validate_line_values,
)
from fiscal_ledger.suppliers.service import get_supplier
from fiscal_ledger.utils import ZERO, quantize_rate, to_money, to_quantity

logger = logging.getLogger(__name__)


def get_bill(db: Session, company_id: int, bill_id: int, *, for_update: bool = False) -> Bill:
    query = (
        db.query(Bill)
        .options(selectinload(Bill.lines), selectinload(Bill.supplier))
        .filter(Bill.company_id == company_id, Bill.id == bill_id)
    )
    if for_update:
        query = query.with_for_update()
    bill = query.first()
    if not bill:
        raise NotFoundError("Bill not found.")
    return bill


def list_bills(
    db: Session,
    company_id: int,
    *,
    status: Optional[str] = None,
    supplier_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    finalized: Optional[bool] = None,
) -> Sequence[Bill]:
    query = db.query(Bill).options(selectinload(Bill.supplier)).filter(Bill.company_id == company_id)
    if status:
        query = query.filter(Bill.status == status)
    if supplier_id:
        query = query.filter(Bill.supplier_id == supplier_id)
    if start_date:
        query = query.filter(Bill.bill_date >= start_date)
    if end_date:
        query = query.filter(Bill.bill_date <= end_date)
    if finalized is True:
        query = query.filter(Bill.finalized_at.isnot(None))
    elif finalized is False:
        query = query.filter(Bill.finalized_at.is_(None))
    return query.order_by(Bill.bill_date.desc(), Bill.id.desc()).all()


def _ensure_editable(bill: Bill) -> None:
    if bill.status == "cancelled":
        raise NotDraftError("Cancelled bills cannot be changed.", current_state="cancelled")
    if bill.is_finalized:
        raise NotDraftError("Finalized bills cannot be changed.", current_state="finalized")


def recalculate_bill_totals(bill: Bill) -> None:
    totals = calculate_document_totals(
        DocumentLineInput(quantity=line.quantity, unit_price=line.unit_price, tax_rate=line.tax_rate)
        for line in bill.lines
    )
    bill.subtotal = totals.subtotal
    bill.tax_amount = totals.tax_amount
    bill.total = totals.total


def recalculate_bill_balance(db: Session, bill: Bill) -> None:
    applied_total = (
        db.query(func.coalesce(func.sum(PaymentAllocation.amount_applied), 0))
        .filter(PaymentAllocation.document_type == "bill", PaymentAllocation.document_id == bill.id)
        .scalar()
    )
    bill.amount_paid = to_money(applied_total)


def update_bill_status(bill: Bill) -> None:
    if bill.status == "cancelled":
        return
    if bill.balance <= 0 and to_money(bill.total) > 0:
        bill.status = "paid"
    elif to_money(bill.amount_paid) > 0:
        bill.status = "partial"
    else:
        bill.status = "pending"


def create_draft_bill(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    supplier_id: int,
    bill_number: str,
    bill_date: date,
    due_date: Optional[date] = None,
    currency: str = "USD",
    exchange_rate: Decimal = Decimal("1"),
    notes: Optional[str] = None,
) -> Bill:
    supplier = get_supplier(db, company_id, supplier_id)
    if not supplier.is_active:
        raise ValidationError("Supplier is archived.")
    bill_number = (bill_number or "").strip()
    if not bill_number:
        raise ValidationError("Supplier bill number is required.")
    if due_date is not None and due_date < bill_date:
        raise ValidationError("Due date cannot be before the bill date.")
    if Decimal(exchange_rate) <= 0:
        raise ValidationError("Exchange rate must be greater than zero.")
    duplicate = (
        db.query(Bill.id)
        .filter(Bill.company_id == company_id, Bill.supplier_id == supplier_id, Bill.bill_number == bill_number)
        .first()
    )
    if duplicate:
        raise DuplicateCodeError(f"Bill {bill_number} is already registered for this supplier.")

    bill = Bill(
        company_id=company_id,
        supplier_id=supplier_id,
        bill_number=bill_number,
        status="pending",
        bill_date=bill_date,
        due_date=due_date,
        currency=currency,
        exchange_rate=exchange_rate,
        notes=notes,
        subtotal=ZERO,
        tax_amount=ZERO,
        total=ZERO,
        amount_paid=ZERO,
        created_by=actor_id,
    )
    db.add(bill)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bill",
        entity_id=bill.id,
        action="create_draft",
        payload={"supplier_id": supplier_id, "bill_number": bill_number},
    )
    return bill


def add_bill_line(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    bill_id: int,
    description: str,
    quantity: Decimal,
    unit_price: Decimal,
    tax_rate: Decimal = Decimal("0"),
) -> Bill:
    bill = get_bill(db, company_id, bill_id, for_update=True)
    _ensure_editable(bill)
    if not (description or "").strip():
        raise ValidationError("Line description is required.")
    rate = quantize_rate(tax_rate)
    quantity = to_quantity(quantity)
    unit_price = to_money(unit_price)
    validate_line_values(quantity, unit_price, rate)
    line_subtotal, line_tax, line_total = calculate_line_totals(
        DocumentLineInput(quantity=quantity, unit_price=unit_price, tax_rate=rate)
    )
    bill.lines.append(
        BillLine(
            description=description.strip(),
            quantity=quantity,
            unit_price=unit_price,
            tax_rate=rate,
            line_subtotal=line_subtotal,
            tax_amount=line_tax,
            line_total=line_total,
            sort_order=max((line.sort_order for line in bill.lines), default=0) + 1,
        )
    )
    recalculate_bill_totals(bill)
    bill.updated_at = datetime.utcnow()
    db.flush()
    return bill


def remove_bill_line(db: Session, *, company_id: int, actor_id: Optional[int], bill_id: int, line_id: int) -> Bill:
    bill = get_bill(db, company_id, bill_id, for_update=True)
    _ensure_editable(bill)
    line = next((line for line in bill.lines if line.id == line_id), None)
    if line is None:
        raise NotFoundError("Bill line not found.")
    bill.lines.remove(line)
    recalculate_bill_totals(bill)
    bill.updated_at = datetime.utcnow()
    db.flush()
    return bill


def finalize_bill(db: Session, *, company_id: int, actor_id: Optional[int], bill_id: int) -> Bill:
    bill = get_bill(db, company_id, bill_id, for_update=True)
    _ensure_editable(bill)
    if not bill.lines:
        raise NoLinesError("Bill has no lines.", current_state=bill.status)
    recalculate_bill_totals(bill)

    if to_money(bill.total) > 0:
        expense_account = resolve_role_account(db, company_id, "PURCHASES_EXPENSE")
        payable_account = resolve_role_account(db, company_id, "AP")
        tax_by_account = {}
        if to_money(bill.tax_amount) > 0:
            tax_by_account[resolve_role_account(db, company_id, "VAT_RECOVERABLE").id] = to_money(bill.tax_amount)
        entry = post_journal_entry(
            db,
            build_bill_entry(
                company_id=company_id,
                entry_date=bill.bill_date,
                payable_account_id=payable_account.id,
                expense_by_account={expense_account.id: to_money(bill.subtotal)},
                tax_by_account=tax_by_account,
                description=f"Bill {bill.bill_number} - {bill.supplier.name}",
                reference=bill.bill_number,
                source_id=bill.id,
            ),
            created_by=actor_id,
        )
        bill.journal_entry_id = entry.id

    bill.finalized_at = datetime.utcnow()
    bill.updated_at = datetime.utcnow()
    update_bill_status(bill)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bill",
        entity_id=bill.id,
        action="finalize",
        payload={"total": bill.total},
    )
    logger.info("Finalized bill company_id=%s id=%s number=%s total=%s", company_id, bill.id, bill.bill_number, bill.total)
    return bill


def cancel_bill(db: Session, *, company_id: int, actor_id: Optional[int], bill_id: int) -> Bill:
    bill = get_bill(db, company_id, bill_id, for_update=True)
    if bill.status == "cancelled":
        raise StateConflict("Bill is already cancelled.", current_state="cancelled")
    has_allocations = (
        db.query(PaymentAllocation.id)
        .filter(PaymentAllocation.document_type == "bill", PaymentAllocation.document_id == bill.id)
        .first()
    )
    if has_allocations:
        raise StateConflict("Bills with payments cannot be cancelled.", current_state=bill.status)

    if bill.journal_entry_id:
        reverse_source_entry(
            db,
            company_id,
            bill.journal_entry_id,
            description=f"Cancellation of bill {bill.bill_number}",
            source_type="bill_cancellation",
            source_id=bill.id,
            created_by=actor_id,
        )
    bill.status = "cancelled"
    bill.updated_at = datetime.utcnow()
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="bill",
        entity_id=bill.id,
        action="cancel",
    )
    logger.info("Cancelled bill company_id=%s id=%s", company_id, bill.id)
    return bill
