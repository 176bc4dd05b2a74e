"""Receivable/payable aging by counterparty.

Balances are the documents' current outstanding amounts; ``as_of`` decides
which documents are included and how overdue they are.
"""
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.errors import ValidationError
from fiscal_ledger.models import Bill, Invoice
from fiscal_ledger.utils import ZERO, to_money

REPORT_TYPES = ("receivable", "payable")
BUCKET_FIELDS = ("current_amount", "days_1_30", "days_31_60", "days_61_90", "days_over_90")


@dataclass
class AgingRow:
    entity_id: int
    entity_name: str
    entity_tax_id: str
    current_amount: Decimal = ZERO
    days_1_30: Decimal = ZERO
    days_31_60: Decimal = ZERO
    days_61_90: Decimal = ZERO
    days_over_90: Decimal = ZERO
    total_balance: Decimal = ZERO
    document_count: int = 0

    def add(self, bucket: str, amount: Decimal) -> None:
        setattr(self, bucket, getattr(self, bucket) + amount)
        self.total_balance += amount
        self.document_count += 1


@dataclass
class AgingReport:
    report_type: str
    as_of: date
    rows: List[AgingRow] = field(default_factory=list)

    @property
    def totals(self) -> Dict[str, Decimal]:
        out = {name: ZERO for name in (*BUCKET_FIELDS, "total_balance")}
        for row in self.rows:
            for name in out:
                out[name] += getattr(row, name)
        return out


def bucket_for(days_overdue: int) -> str:
    if days_overdue <= 0:
        return "current_amount"
    if days_overdue <= 30:
        return "days_1_30"
    if days_overdue <= 60:
        return "days_31_60"
    if days_overdue <= 90:
        return "days_61_90"
    return "days_over_90"


def _open_invoices(db: Session, company_id: int, as_of: date):
    return (
        db.query(Invoice)
        .options(selectinload(Invoice.customer))
        .filter(Invoice.company_id == company_id, Invoice.status == "issued", Invoice.invoice_date <= as_of)
        .all()
    )


def _open_bills(db: Session, company_id: int, as_of: date):
    return (
        db.query(Bill)
        .options(selectinload(Bill.supplier))
        .filter(
            Bill.company_id == company_id,
            Bill.finalized_at.isnot(None),
            Bill.status.in_(("pending", "partial")),
            Bill.bill_date <= as_of,
        )
        .all()
    )


def get_aging_report(db: Session, company_id: int, report_type: str, as_of: date) -> AgingReport:
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"Report type must be one of: {', '.join(REPORT_TYPES)}.")

    if report_type == "receivable":
        documents = [(doc, doc.customer, doc.invoice_date) for doc in _open_invoices(db, company_id, as_of)]
    else:
        documents = [(doc, doc.supplier, doc.bill_date) for doc in _open_bills(db, company_id, as_of)]

    rows: Dict[int, AgingRow] = {}
    for document, party, document_date in documents:
        balance = to_money(document.balance)
        if balance <= 0:
            continue
        days_overdue = (as_of - (document.due_date or document_date)).days
        row = rows.get(party.id)
        if row is None:
            row = rows[party.id] = AgingRow(entity_id=party.id, entity_name=party.name, entity_tax_id=party.tax_id)
        row.add(bucket_for(days_overdue), balance)

    return AgingReport(
        report_type=report_type,
        as_of=as_of,
        rows=sorted(rows.values(), key=lambda row: (row.entity_name.lower(), row.entity_id)),
    )
