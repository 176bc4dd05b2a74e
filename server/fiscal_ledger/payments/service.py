from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.account_defaults import resolve_role_account
from fiscal_ledger.accounting.posting import build_payment_entry
from fiscal_ledger.accounting.service import load_postable_accounts, post_journal_entry
from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.errors import NotFoundError, OverAppliedError, StateConflict, ValidationError
from fiscal_ledger.models import Bill, Invoice, Payment, PaymentAllocation
from fiscal_ledger.payments.calculations import (
    AllocationCheck,
    AllocationInput,
    ensure_within_balance,
    merge_allocations,
    validate_payment_allocations,
)
from fiscal_ledger.purchasing.service import recalculate_bill_balance, update_bill_status
from fiscal_ledger.sales.service import recalculate_invoice_balance, update_invoice_status
from fiscal_ledger.utils import to_money

logger = logging.getLogger(__name__)

PAYMENT_TYPES = ("income", "expense")
PAYMENT_METHODS = ("cash", "transfer", "check", "card", "mobile")
DOCUMENT_TYPE_FOR_PAYMENT = {"income": "invoice", "expense": "bill"}


def get_payment(db: Session, company_id: int, payment_id: int) -> Payment:
    payment = (
        db.query(Payment)
        .options(selectinload(Payment.allocations))
        .filter(Payment.company_id == company_id, Payment.id == payment_id)
        .first()
    )
    if not payment:
        raise NotFoundError("Payment not found.")
    return payment


def list_payments(
    db: Session,
    company_id: int,
    *,
    payment_type: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    document_type: Optional[str] = None,
    document_id: Optional[int] = None,
) -> Sequence[Payment]:
    query = db.query(Payment).options(selectinload(Payment.allocations)).filter(Payment.company_id == company_id)
    if payment_type:
        query = query.filter(Payment.payment_type == payment_type)
    if start_date:
        query = query.filter(Payment.payment_date >= start_date)
    if end_date:
        query = query.filter(Payment.payment_date <= end_date)
    if document_type and document_id:
        query = query.filter(
            Payment.allocations.any(
                (PaymentAllocation.document_type == document_type) & (PaymentAllocation.document_id == document_id)
            )
        )
    return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()


def _find_by_idempotency_key(db: Session, company_id: int, key: Optional[str]) -> Optional[Payment]:
    if not key:
        return None
    return (
        db.query(Payment)
        .options(selectinload(Payment.allocations))
        .filter(Payment.company_id == company_id, Payment.idempotency_key == key)
        .first()
    )


def _lock_documents(db: Session, company_id: int, document_type: str, document_ids: list[int]):
    model = Invoice if document_type == "invoice" else Bill
    # Ascending id order keeps concurrent payers from deadlocking on each other.
    documents = (
        db.query(model)
        .filter(model.company_id == company_id, model.id.in_(document_ids))
        .order_by(model.id.asc())
        .with_for_update()
        .all()
    )
    if len(documents) != len(set(document_ids)):
        raise NotFoundError(f"One or more {document_type}s were not found.")
    return documents


def _ensure_payable(document_type: str, document) -> None:
    if document_type == "invoice":
        if document.status not in {"issued", "paid"}:
            raise StateConflict(
                f"Invoice {document.id} cannot receive payments.",
                current_state=document.status,
            )
        return
    if document.status == "cancelled":
        raise StateConflict(f"Bill {document.id} is cancelled.", current_state="cancelled")
    if not document.is_finalized:
        raise StateConflict(f"Bill {document.id} has not been finalized.", current_state="draft")


def register_payment(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    payment_type: str,
    payment_date: date,
    payment_method: str,
    amount: Decimal,
    allocations: Iterable[AllocationInput],
    currency: str = "USD",
    reference: Optional[str] = None,
    description: Optional[str] = None,
    account_id: Optional[int] = None,
    idempotency_key: Optional[str] = None,
) -> Payment:
    existing = _find_by_idempotency_key(db, company_id, idempotency_key)
    if existing is not None:
        logger.info("Replayed payment company_id=%s id=%s key=%s", company_id, existing.id, idempotency_key)
        return existing

    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Payment type must be one of: {', '.join(PAYMENT_TYPES)}.")
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}.")
    allocations = list(allocations)
    validate_payment_allocations(amount, allocations)
    document_type = DOCUMENT_TYPE_FOR_PAYMENT[payment_type]
    if any(allocation.document_type != document_type for allocation in allocations):
        raise ValidationError(f"{payment_type.capitalize()} payments can only be allocated to {document_type}s.")

    merged = merge_allocations(allocations)
    documents = _lock_documents(db, company_id, document_type, sorted(doc_id for _, doc_id in merged))
    checks = []
    for document in documents:
        _ensure_payable(document_type, document)
        if document_type == "invoice":
            recalculate_invoice_balance(db, document)
        else:
            recalculate_bill_balance(db, document)
        checks.append(
            AllocationCheck(
                document_type=document_type,
                document_id=document.id,
                document_balance=to_money(document.balance),
                applied_amount=merged[(document_type, document.id)],
            )
        )
    try:
        ensure_within_balance(checks)
    except OverAppliedError:
        logger.warning("Rejected over-applied payment company_id=%s amount=%s", company_id, amount)
        raise

    cash_account_id = None
    control_account_id = None
    if account_id is not None:
        cash_account_id = load_postable_accounts(db, company_id, [account_id])[account_id].id
        control_account_id = resolve_role_account(db, company_id, "AR" if payment_type == "income" else "AP").id

    payment = Payment(
        company_id=company_id,
        payment_type=payment_type,
        payment_date=payment_date,
        payment_method=payment_method,
        amount=to_money(amount),
        currency=currency,
        reference=reference,
        description=description,
        account_id=account_id,
        idempotency_key=idempotency_key or None,
        created_by=actor_id,
    )
    payment.allocations = [
        PaymentAllocation(
            document_type=allocation.document_type,
            document_id=allocation.document_id,
            amount_applied=to_money(allocation.amount),
        )
        for allocation in allocations
    ]
    db.add(payment)
    db.flush()

    for document in documents:
        if document_type == "invoice":
            recalculate_invoice_balance(db, document)
            update_invoice_status(document)
        else:
            recalculate_bill_balance(db, document)
            update_bill_status(document)
        document.updated_at = datetime.utcnow()

    if cash_account_id is not None:
        entry = post_journal_entry(
            db,
            build_payment_entry(
                company_id=company_id,
                entry_date=payment_date,
                payment_type=payment_type,
                cash_account_id=cash_account_id,
                control_account_id=control_account_id,
                amount=to_money(amount),
                description=description or f"{payment_type.capitalize()} payment #{payment.id}",
                reference=reference,
                source_id=payment.id,
            ),
            created_by=actor_id,
        )
        payment.journal_entry_id = entry.id

    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="payment",
        entity_id=payment.id,
        action="register",
        payload={
            "amount": payment.amount,
            "allocations": [[a.document_type, a.document_id, a.amount_applied] for a in payment.allocations],
        },
    )
    logger.info(
        "Registered %s payment company_id=%s id=%s amount=%s documents=%s",
        payment_type,
        company_id,
        payment.id,
        payment.amount,
        [document.id for document in documents],
    )
    return payment
