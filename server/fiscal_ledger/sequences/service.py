"""Per-tenant counters.

Both counters are advanced with a single ``UPDATE ... SET n = n + 1`` so the
database serializes concurrent callers: on PostgreSQL the updated row stays
locked until the surrounding transaction commits or rolls back, and a second
issuer blocks on it instead of reading a stale value.
"""
from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fiscal_ledger.config import settings
from fiscal_ledger.errors import ConcurrencyConflict, StateConflict, ValidationError
from fiscal_ledger.models import CompanySequence, FiscalSequence

logger = logging.getLogger(__name__)

FISCAL_SEQUENCE_TYPES = ("invoice", "credit_note", "debit_note")
DEFAULT_FISCAL_PREFIXES = {
    "invoice": "FAC-",
    "credit_note": "NC-",
    "debit_note": "ND-",
}
DEFAULT_CONTROL_PREFIX = "00-"
JOURNAL_ENTRY_SEQUENCE = "journal_entry"


@dataclass(frozen=True)
class FiscalNumber:
    number: str
    control_number: str
    raw_number: int
    raw_control: int


def format_fiscal_number(prefix: str, value: int, padding: int) -> str:
    return f"{prefix}{value:0{padding}d}"


def _flush_new_row(db: Session, row, *, label: str) -> None:
    db.add(row)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConcurrencyConflict(f"{label} was created concurrently; retry the operation.") from None


def ensure_fiscal_sequence(db: Session, company_id: int, sequence_type: str) -> FiscalSequence:
    if sequence_type not in FISCAL_SEQUENCE_TYPES:
        raise ValidationError(f"Unknown fiscal sequence type '{sequence_type}'.")
    sequence = (
        db.query(FiscalSequence)
        .filter(FiscalSequence.company_id == company_id, FiscalSequence.sequence_type == sequence_type)
        .first()
    )
    if sequence:
        return sequence
    sequence = FiscalSequence(
        company_id=company_id,
        sequence_type=sequence_type,
        prefix=DEFAULT_FISCAL_PREFIXES[sequence_type],
        current_number=0,
        control_prefix=DEFAULT_CONTROL_PREFIX,
        control_current=0,
        padding=settings.fiscal_number_padding,
        is_active=True,
    )
    _flush_new_row(db, sequence, label=f"Fiscal sequence '{sequence_type}'")
    logger.info("Created fiscal sequence company_id=%s type=%s", company_id, sequence_type)
    return sequence


def ensure_fiscal_sequences(db: Session, company_id: int) -> list[FiscalSequence]:
    return [ensure_fiscal_sequence(db, company_id, sequence_type) for sequence_type in FISCAL_SEQUENCE_TYPES]


def configure_fiscal_sequence(
    db: Session,
    company_id: int,
    sequence_type: str,
    *,
    prefix: str | None = None,
    control_prefix: str | None = None,
    padding: int | None = None,
    is_active: bool | None = None,
) -> FiscalSequence:
    """Change presentation settings. Counters themselves can never be edited."""
    sequence = ensure_fiscal_sequence(db, company_id, sequence_type)
    if padding is not None and not 1 <= padding <= 20:
        raise ValidationError("Padding must be between 1 and 20.")
    if prefix is not None:
        sequence.prefix = prefix
    if control_prefix is not None:
        sequence.control_prefix = control_prefix
    if padding is not None:
        sequence.padding = padding
    if is_active is not None:
        sequence.is_active = is_active
    db.flush()
    return sequence


def next_fiscal_number(db: Session, company_id: int, sequence_type: str) -> FiscalNumber:
    sequence = ensure_fiscal_sequence(db, company_id, sequence_type)
    if not sequence.is_active:
        raise StateConflict(
            f"Fiscal sequence '{sequence_type}' is inactive.",
            current_state="inactive",
        )

    # The number is taken inside the caller's transaction, so a failed issuance
    # rolls the counter back with it instead of burning the number.
    db.flush()
    db.execute(
        update(FiscalSequence)
        .where(FiscalSequence.id == sequence.id)
        .values(
            current_number=FiscalSequence.current_number + 1,
            control_current=FiscalSequence.control_current + 1,
        )
        .execution_options(synchronize_session=False)
    )
    db.refresh(sequence)
    number = int(sequence.current_number)
    control = int(sequence.control_current)
    allocated = FiscalNumber(
        number=format_fiscal_number(sequence.prefix, number, sequence.padding),
        control_number=format_fiscal_number(sequence.control_prefix, control, sequence.padding),
        raw_number=number,
        raw_control=control,
    )
    logger.info(
        "Allocated fiscal number company_id=%s type=%s number=%s control=%s",
        company_id,
        sequence_type,
        allocated.number,
        allocated.control_number,
    )
    return allocated


def next_company_sequence(db: Session, company_id: int, name: str) -> int:
    exists = (
        db.query(CompanySequence.id)
        .filter(CompanySequence.company_id == company_id, CompanySequence.name == name)
        .first()
    )
    if not exists:
        _flush_new_row(
            db,
            CompanySequence(company_id=company_id, name=name, last_value=0),
            label=f"Company sequence '{name}'",
        )

    db.execute(
        update(CompanySequence)
        .where(CompanySequence.company_id == company_id, CompanySequence.name == name)
        .values(last_value=CompanySequence.last_value + 1, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    value = (
        db.query(CompanySequence.last_value)
        .filter(CompanySequence.company_id == company_id, CompanySequence.name == name)
        .scalar()
    )
    return int(value)
