from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
import logging
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.accounting.posting import (
    JournalEntryInput,
    JournalLineInput,
    reversed_lines,
    validate_entry_lines,
)
from fiscal_ledger.errors import InvalidAccountError, NotFoundError, StateConflict, ValidationError
from fiscal_ledger.models import DEBIT_NORMAL_TYPES, Account, JournalEntry, JournalLine
from fiscal_ledger.sequences.service import JOURNAL_ENTRY_SEQUENCE, next_company_sequence
from fiscal_ledger.utils import ZERO, to_money

logger = logging.getLogger(__name__)

MANUAL_SOURCE_TYPES = ("manual", "reversal")


@dataclass(frozen=True)
class AccountBalance:
    account_id: int
    account_code: str
    account_name: str
    account_type: str
    total_debit: Decimal
    total_credit: Decimal
    balance: Decimal


@dataclass(frozen=True)
class TrialBalance:
    as_of: date
    rows: List[AccountBalance] = field(default_factory=list)
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO

    @property
    def is_balanced(self) -> bool:
        return self.total_debit == self.total_credit


def compute_account_balance(account_type: str, debit: Decimal, credit: Decimal) -> Decimal:
    """Normal-balance convention: asset/expense grow on debit, everything else on credit."""
    if (account_type or "").lower() in DEBIT_NORMAL_TYPES:
        return debit - credit
    return credit - debit


def load_postable_accounts(
    db: Session,
    company_id: int,
    account_ids: Iterable[int],
    *,
    allow_inactive: bool = False,
) -> dict[int, Account]:
    wanted = set(account_ids)
    accounts = (
        db.query(Account)
        .filter(Account.company_id == company_id, Account.id.in_(wanted))
        .all()
    )
    by_id = {account.id: account for account in accounts}
    for account_id in sorted(wanted):
        account = by_id.get(account_id)
        if account is None:
            raise InvalidAccountError(f"Account {account_id} was not found.")
        if account.is_group:
            raise InvalidAccountError(f"Account {account.code} is a group account and cannot receive postings.")
        if not account.is_active and not allow_inactive:
            raise InvalidAccountError(f"Account {account.code} is inactive.")
    return by_id


def _build_lines(lines: Sequence[JournalLineInput]) -> List[JournalLine]:
    return [
        JournalLine(
            account_id=line.account_id,
            description=line.description,
            debit=to_money(line.debit),
            credit=to_money(line.credit),
        )
        for line in lines
    ]


def _assign_number_and_post(db: Session, entry: JournalEntry) -> None:
    entry.entry_number = next_company_sequence(db, entry.company_id, JOURNAL_ENTRY_SEQUENCE)
    entry.status = "posted"
    entry.posted_at = datetime.utcnow()


def _validate_input(db: Session, entry_input: JournalEntryInput, *, allow_inactive: bool = False) -> None:
    if not (entry_input.description or "").strip():
        raise ValidationError("Journal entry description is required.")
    validate_entry_lines(list(entry_input.lines))
    load_postable_accounts(
        db,
        entry_input.company_id,
        [line.account_id for line in entry_input.lines],
        allow_inactive=allow_inactive,
    )


def _persist(
    db: Session,
    entry_input: JournalEntryInput,
    *,
    created_by: Optional[int],
    post: bool,
    reverses_id: Optional[int] = None,
) -> JournalEntry:
    entry = JournalEntry(
        company_id=entry_input.company_id,
        entry_date=entry_input.entry_date,
        description=entry_input.description.strip(),
        reference=entry_input.reference,
        status="draft",
        source_type=entry_input.source_type,
        source_id=entry_input.source_id,
        reverses_id=reverses_id,
        created_by=created_by,
    )
    entry.lines = _build_lines(entry_input.lines)
    if post:
        _assign_number_and_post(db, entry)
    db.add(entry)
    db.flush()
    return entry


def post_journal_entry(
    db: Session,
    entry_input: JournalEntryInput,
    *,
    created_by: Optional[int] = None,
    allow_inactive: bool = False,
    reverses_id: Optional[int] = None,
) -> JournalEntry:
    _validate_input(db, entry_input, allow_inactive=allow_inactive)
    entry = _persist(db, entry_input, created_by=created_by, post=True, reverses_id=reverses_id)
    logger.info(
        "Posted journal entry company_id=%s number=%s source=%s:%s amount=%s",
        entry.company_id,
        entry.entry_number,
        entry.source_type,
        entry.source_id,
        entry.total_debit,
    )
    return entry


def create_draft_journal_entry(
    db: Session,
    entry_input: JournalEntryInput,
    *,
    created_by: Optional[int] = None,
) -> JournalEntry:
    _validate_input(db, entry_input)
    return _persist(db, entry_input, created_by=created_by, post=False)


def get_journal_entry(db: Session, company_id: int, entry_id: int, *, for_update: bool = False) -> JournalEntry:
    query = (
        db.query(JournalEntry)
        .options(selectinload(JournalEntry.lines))
        .filter(JournalEntry.company_id == company_id, JournalEntry.id == entry_id)
    )
    if for_update:
        query = query.with_for_update()
    entry = query.first()
    if not entry:
        raise NotFoundError("Journal entry not found.")
    return entry


def post_draft_journal_entry(db: Session, company_id: int, entry_id: int) -> JournalEntry:
    entry = get_journal_entry(db, company_id, entry_id, for_update=True)
    if entry.status != "draft":
        raise StateConflict("Only draft journal entries can be posted.", current_state=entry.status)
    lines = [
        JournalLineInput(account_id=line.account_id, debit=line.debit, credit=line.credit, description=line.description)
        for line in entry.lines
    ]
    validate_entry_lines(lines)
    load_postable_accounts(db, company_id, [line.account_id for line in lines])
    _assign_number_and_post(db, entry)
    db.flush()
    logger.info("Posted draft journal entry company_id=%s id=%s number=%s", company_id, entry.id, entry.entry_number)
    return entry


def cancel_draft_journal_entry(db: Session, company_id: int, entry_id: int) -> JournalEntry:
    entry = get_journal_entry(db, company_id, entry_id, for_update=True)
    if entry.status != "draft":
        raise StateConflict(
            "Posted entries cannot be cancelled; post a reversing entry instead.",
            current_state=entry.status,
        )
    entry.status = "cancelled"
    db.flush()
    return entry


def reverse_source_entry(
    db: Session,
    company_id: int,
    entry_id: int,
    *,
    entry_date: Optional[date] = None,
    description: Optional[str] = None,
    source_type: str = "reversal",
    source_id: Optional[int] = None,
    created_by: Optional[int] = None,
) -> JournalEntry:
    """Post the mirror image of a posted entry, whatever produced it.

    Document engines call this when a credit note or cancellation undoes the
    entry their document posted.
    """
    original = get_journal_entry(db, company_id, entry_id, for_update=True)
    return _post_reversal(
        db,
        original,
        entry_date=entry_date,
        description=description,
        source_type=source_type,
        source_id=source_id,
        created_by=created_by,
    )


def reverse_journal_entry(
    db: Session,
    company_id: int,
    entry_id: int,
    *,
    entry_date: Optional[date] = None,
    description: Optional[str] = None,
    created_by: Optional[int] = None,
) -> JournalEntry:
    original = get_journal_entry(db, company_id, entry_id, for_update=True)
    if original.source_type not in MANUAL_SOURCE_TYPES:
        # invoice, bill and payment entries are undone through their documents
        raise StateConflict(
            f"Entries generated by a {original.source_type} cannot be reversed manually.",
            current_state=original.status,
        )
    return _post_reversal(db, original, entry_date=entry_date, description=description, created_by=created_by)


def _post_reversal(
    db: Session,
    original: JournalEntry,
    *,
    entry_date: Optional[date] = None,
    description: Optional[str] = None,
    source_type: str = "reversal",
    source_id: Optional[int] = None,
    created_by: Optional[int] = None,
) -> JournalEntry:
    company_id = original.company_id
    if original.status != "posted":
        raise StateConflict("Only posted journal entries can be reversed.", current_state=original.status)
    already_reversed = (
        db.query(JournalEntry.id)
        .filter(
            JournalEntry.company_id == company_id,
            JournalEntry.reverses_id == original.id,
            JournalEntry.status == "posted",
        )
        .first()
    )
    if already_reversed:
        raise StateConflict("Journal entry has already been reversed.", current_state="reversed")

    reversal = JournalEntryInput(
        company_id=company_id,
        entry_date=entry_date or original.entry_date,
        description=description or f"Reversal of entry #{original.entry_number}",
        reference=original.reference,
        source_type=source_type,
        source_id=source_id if source_id is not None else original.id,
        lines=reversed_lines(original.lines),
    )
    return post_journal_entry(
        db,
        reversal,
        created_by=created_by,
        allow_inactive=True,
        reverses_id=original.id,
    )


def list_journal_entries(
    db: Session,
    company_id: int,
    *,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    account_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 100,
) -> Sequence[JournalEntry]:
    query = (
        db.query(JournalEntry)
        .options(selectinload(JournalEntry.lines))
        .filter(JournalEntry.company_id == company_id)
    )
    if status:
        query = query.filter(JournalEntry.status == status)
    if start_date:
        query = query.filter(JournalEntry.entry_date >= start_date)
    if end_date:
        query = query.filter(JournalEntry.entry_date <= end_date)
    if account_id:
        query = query.filter(JournalEntry.lines.any(JournalLine.account_id == account_id))
    if search:
        like = f"%{search}%"
        query = query.filter(JournalEntry.description.ilike(like) | JournalEntry.reference.ilike(like))
    return query.order_by(JournalEntry.entry_date.desc(), JournalEntry.id.desc()).limit(limit).all()


def get_account_balances(db: Session, company_id: int, as_of: date) -> List[AccountBalance]:
    rows = (
        db.query(
            Account.id,
            Account.code,
            Account.name,
            Account.type,
            func.coalesce(func.sum(JournalLine.debit), 0).label("total_debit"),
            func.coalesce(func.sum(JournalLine.credit), 0).label("total_credit"),
        )
        .join(JournalLine, JournalLine.account_id == Account.id)
        .join(JournalEntry, JournalEntry.id == JournalLine.journal_entry_id)
        .filter(
            Account.company_id == company_id,
            JournalEntry.company_id == company_id,
            JournalEntry.status == "posted",
            JournalEntry.entry_date <= as_of,
        )
        .group_by(Account.id, Account.code, Account.name, Account.type)
        .order_by(Account.code.asc())
        .all()
    )
    balances: List[AccountBalance] = []
    for row in rows:
        total_debit = to_money(row.total_debit)
        total_credit = to_money(row.total_credit)
        balances.append(
            AccountBalance(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=row.type,
                total_debit=total_debit,
                total_credit=total_credit,
                balance=compute_account_balance(row.type, total_debit, total_credit),
            )
        )
    return balances


def get_trial_balance(db: Session, company_id: int, as_of: date) -> TrialBalance:
    rows = get_account_balances(db, company_id, as_of)
    trial_balance = TrialBalance(
        as_of=as_of,
        rows=rows,
        total_debit=sum((row.total_debit for row in rows), ZERO),
        total_credit=sum((row.total_credit for row in rows), ZERO),
    )
    if not trial_balance.is_balanced:
        logger.error(
            "Trial balance out of balance company_id=%s as_of=%s debit=%s credit=%s",
            company_id,
            as_of,
            trial_balance.total_debit,
            trial_balance.total_credit,
        )
    return trial_balance
