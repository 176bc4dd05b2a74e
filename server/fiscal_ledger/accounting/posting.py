from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional

from fiscal_ledger.errors import InsufficientLinesError, UnbalancedEntryError, ValidationError
from fiscal_ledger.utils import ZERO, to_money


@dataclass(frozen=True)
class JournalLineInput:
    account_id: int
    debit: Decimal = ZERO
    credit: Decimal = ZERO
    description: Optional[str] = None


@dataclass(frozen=True)
class JournalEntryInput:
    company_id: int
    entry_date: date
    description: str
    lines: List[JournalLineInput] = field(default_factory=list)
    reference: Optional[str] = None
    source_type: str = "manual"
    source_id: Optional[int] = None


def validate_line_amounts(lines: Iterable[JournalLineInput]) -> None:
    for index, line in enumerate(lines, start=1):
        debit = to_money(line.debit)
        credit = to_money(line.credit)
        if debit < 0 or credit < 0:
            raise ValidationError(f"Line {index}: debit and credit cannot be negative.")
        if debit > 0 and credit > 0:
            raise ValidationError(f"Line {index}: a line cannot carry both a debit and a credit.")
        if debit == 0 and credit == 0:
            raise ValidationError(f"Line {index}: a line must carry a debit or a credit.")


def ensure_minimum_lines(lines: List[JournalLineInput]) -> None:
    if len(lines) < 2:
        raise InsufficientLinesError("Journal entries need at least two lines with an amount.")


def ensure_balanced(lines: List[JournalLineInput]) -> None:
    total_debits = sum((to_money(line.debit) for line in lines), ZERO)
    total_credits = sum((to_money(line.credit) for line in lines), ZERO)
    if total_debits != total_credits:
        raise UnbalancedEntryError(
            f"Journal entry is unbalanced: debits={total_debits} credits={total_credits}"
        )


def validate_entry_lines(lines: List[JournalLineInput]) -> None:
    validate_line_amounts(lines)
    ensure_minimum_lines(lines)
    ensure_balanced(lines)


def reversed_lines(lines: Iterable) -> List[JournalLineInput]:
    """Swap debit and credit on every line. Accepts inputs or persisted lines."""
    return [
        JournalLineInput(
            account_id=line.account_id,
            debit=to_money(line.credit),
            credit=to_money(line.debit),
            description=line.description,
        )
        for line in lines
    ]


def _credit_lines(amounts: Mapping[int, Decimal], description: Optional[str]) -> List[JournalLineInput]:
    return [
        JournalLineInput(account_id=account_id, credit=to_money(amount), description=description)
        for account_id, amount in amounts.items()
        if to_money(amount) != 0
    ]


def _debit_lines(amounts: Mapping[int, Decimal], description: Optional[str]) -> List[JournalLineInput]:
    return [
        JournalLineInput(account_id=account_id, debit=to_money(amount), description=description)
        for account_id, amount in amounts.items()
        if to_money(amount) != 0
    ]


def build_invoice_entry(
    *,
    company_id: int,
    entry_date: date,
    receivable_account_id: int,
    revenue_by_account: Mapping[int, Decimal],
    tax_by_account: Mapping[int, Decimal],
    description: str,
    reference: Optional[str] = None,
    source_id: Optional[int] = None,
) -> JournalEntryInput:
    total = sum((to_money(v) for v in revenue_by_account.values()), ZERO) + sum(
        (to_money(v) for v in tax_by_account.values()), ZERO
    )
    lines = [JournalLineInput(account_id=receivable_account_id, debit=total, description="Accounts receivable")]
    lines += _credit_lines(revenue_by_account, "Sales")
    lines += _credit_lines(tax_by_account, "Output tax")
    validate_entry_lines(lines)
    return JournalEntryInput(
        company_id=company_id,
        entry_date=entry_date,
        description=description,
        reference=reference,
        source_type="invoice",
        source_id=source_id,
        lines=lines,
    )


def build_bill_entry(
    *,
    company_id: int,
    entry_date: date,
    payable_account_id: int,
    expense_by_account: Mapping[int, Decimal],
    tax_by_account: Mapping[int, Decimal],
    description: str,
    reference: Optional[str] = None,
    source_id: Optional[int] = None,
) -> JournalEntryInput:
    total = sum((to_money(v) for v in expense_by_account.values()), ZERO) + sum(
        (to_money(v) for v in tax_by_account.values()), ZERO
    )
    lines = _debit_lines(expense_by_account, "Purchases")
    lines += _debit_lines(tax_by_account, "Input tax")
    lines.append(JournalLineInput(account_id=payable_account_id, credit=total, description="Accounts payable"))
    validate_entry_lines(lines)
    return JournalEntryInput(
        company_id=company_id,
        entry_date=entry_date,
        description=description,
        reference=reference,
        source_type="bill",
        source_id=source_id,
        lines=lines,
    )


def build_transfer_entry(
    *,
    company_id: int,
    entry_date: date,
    debit_account_id: int,
    credit_account_id: int,
    amount: Decimal,
    description: str,
    source_type: str,
    reference: Optional[str] = None,
    source_id: Optional[int] = None,
) -> JournalEntryInput:
    """Two-line entry moving ``amount`` from the credit account to the debit account."""
    if debit_account_id == credit_account_id:
        raise ValidationError("Debit and credit accounts must be different.")
    lines = [
        JournalLineInput(account_id=debit_account_id, debit=to_money(amount)),
        JournalLineInput(account_id=credit_account_id, credit=to_money(amount)),
    ]
    validate_entry_lines(lines)
    return JournalEntryInput(
        company_id=company_id,
        entry_date=entry_date,
        description=description,
        reference=reference,
        source_type=source_type,
        source_id=source_id,
        lines=lines,
    )


def build_payment_entry(
    *,
    company_id: int,
    entry_date: date,
    payment_type: str,
    cash_account_id: int,
    control_account_id: int,
    amount: Decimal,
    description: str,
    reference: Optional[str] = None,
    source_id: Optional[int] = None,
) -> JournalEntryInput:
    """Income: Dr cash / Cr receivable. Expense: Dr payable / Cr cash."""
    if payment_type == "income":
        debit_account_id, credit_account_id = cash_account_id, control_account_id
    else:
        debit_account_id, credit_account_id = control_account_id, cash_account_id
    return build_transfer_entry(
        company_id=company_id,
        entry_date=entry_date,
        debit_account_id=debit_account_id,
        credit_account_id=credit_account_id,
        amount=amount,
        description=description,
        source_type="payment",
        reference=reference,
        source_id=source_id,
    )
