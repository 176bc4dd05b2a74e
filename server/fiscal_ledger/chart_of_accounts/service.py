import csv
from dataclasses import dataclass
from io import StringIO
import logging
from typing import Iterable, Optional, Sequence

from sqlalchemy.orm import Session, selectinload

from fiscal_ledger.account_defaults import set_account_default
from fiscal_ledger.audit import record_audit_event
from fiscal_ledger.chart_of_accounts.template import STANDARD_CHART, STANDARD_ROLE_CODES
from fiscal_ledger.errors import (
    AccountInUseError,
    DuplicateCodeError,
    NotFoundError,
    ValidationError,
)
from fiscal_ledger.models import (
    ACCOUNT_TYPES,
    Account,
    BankAccount,
    CompanyAccountDefault,
    JournalLine,
    TaxProfile,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountImportRow:
    code: str
    name: str
    type: str
    is_group: bool = False
    parent_code: Optional[str] = None


def _normalize_code(code: Optional[str]) -> str:
    code = (code or "").strip()
    if not code:
        raise ValidationError("Account code is required.")
    return code


def _normalize_type(account_type: Optional[str]) -> str:
    value = (account_type or "").strip().lower()
    if value not in ACCOUNT_TYPES:
        raise ValidationError(f"Account type must be one of: {', '.join(ACCOUNT_TYPES)}.")
    return value


def get_account(db: Session, company_id: int, account_id: int) -> Account:
    account = (
        db.query(Account)
        .options(selectinload(Account.parent))
        .filter(Account.company_id == company_id, Account.id == account_id)
        .first()
    )
    if not account:
        raise NotFoundError("Account not found.")
    return account


def list_accounts(
    db: Session,
    company_id: int,
    *,
    account_type: Optional[str] = None,
    active: Optional[bool] = None,
    q: Optional[str] = None,
) -> Sequence[Account]:
    query = db.query(Account).options(selectinload(Account.parent)).filter(Account.company_id == company_id)
    if account_type:
        query = query.filter(Account.type == _normalize_type(account_type))
    if active is not None:
        query = query.filter(Account.is_active.is_(active))
    if q:
        like = f"%{q}%"
        query = query.filter((Account.name.ilike(like)) | (Account.code.ilike(like)))
    return query.order_by(Account.code.asc()).all()


def _code_exists(db: Session, company_id: int, code: str, *, exclude_id: Optional[int] = None) -> bool:
    query = db.query(Account.id).filter(Account.company_id == company_id, Account.code == code)
    if exclude_id is not None:
        query = query.filter(Account.id != exclude_id)
    return query.first() is not None


def _has_journal_lines(db: Session, account_id: int) -> bool:
    return db.query(JournalLine.id).filter(JournalLine.account_id == account_id).first() is not None


def _resolve_parent(
    db: Session,
    company_id: int,
    parent_id: Optional[int],
    *,
    code: str,
    account_type: str,
    account_id: Optional[int] = None,
) -> Optional[Account]:
    if parent_id is None:
        return None
    if account_id is not None and parent_id == account_id:
        raise ValidationError("An account cannot be its own parent.")
    parent = db.query(Account).filter(Account.company_id == company_id, Account.id == parent_id).first()
    if not parent:
        raise NotFoundError("Parent account not found.")
    if not parent.is_group:
        raise ValidationError(f"Parent account {parent.code} is not a group account.")
    if parent.type != account_type:
        raise ValidationError(f"Parent account {parent.code} is {parent.type}; child must match.")
    if not code.startswith(f"{parent.code}."):
        raise ValidationError(f"Account code {code} must start with '{parent.code}.'.")

    # Walk up from the new parent; meeting the account itself means a cycle.
    ancestor = parent
    seen: set[int] = set()
    while ancestor is not None and ancestor.id not in seen:
        if account_id is not None and ancestor.id == account_id:
            raise ValidationError("Account hierarchy cannot contain cycles.")
        seen.add(ancestor.id)
        ancestor = ancestor.parent
    return parent


def create_account(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    code: str,
    name: str,
    account_type: str,
    is_group: bool = False,
    parent_id: Optional[int] = None,
    description: Optional[str] = None,
    is_active: bool = True,
) -> Account:
    code = _normalize_code(code)
    account_type = _normalize_type(account_type)
    if not (name or "").strip():
        raise ValidationError("Account name is required.")
    if _code_exists(db, company_id, code):
        raise DuplicateCodeError(f"Account code '{code}' already exists.")
    parent = _resolve_parent(db, company_id, parent_id, code=code, account_type=account_type)

    account = Account(
        company_id=company_id,
        code=code,
        name=name.strip(),
        type=account_type,
        is_group=is_group,
        parent_id=parent.id if parent else None,
        description=description,
        is_active=is_active,
    )
    db.add(account)
    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="account",
        entity_id=account.id,
        action="create",
        payload={"code": account.code, "type": account.type},
    )
    return account


def update_account(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    account_id: int,
    data: dict,
) -> Account:
    """Apply a partial update. ``data`` holds only the fields the caller set."""
    account = get_account(db, company_id, account_id)
    in_use = _has_journal_lines(db, account.id)

    new_code = account.code
    if "code" in data:
        new_code = _normalize_code(data["code"])
        if new_code != account.code:
            if in_use:
                raise AccountInUseError("Account code cannot change once journal lines reference it.")
            if db.query(Account.id).filter(Account.parent_id == account.id).first():
                raise ValidationError("Account code cannot change while child accounts exist.")
            if _code_exists(db, company_id, new_code, exclude_id=account.id):
                raise DuplicateCodeError(f"Account code '{new_code}' already exists.")
    new_type = _normalize_type(data["type"]) if data.get("type") else account.type
    if new_type != account.type and in_use:
        raise AccountInUseError("Account type cannot change once journal lines reference it.")
    if new_type != account.type and db.query(Account.id).filter(Account.parent_id == account.id).first():
        raise ValidationError("Account type cannot change while child accounts exist.")
    if "is_group" in data and data["is_group"] is not None and data["is_group"] != account.is_group:
        if in_use:
            raise AccountInUseError("Group flag cannot change once journal lines reference the account.")
        if not data["is_group"] and db.query(Account.id).filter(Account.parent_id == account.id).first():
            raise AccountInUseError("Account with children must stay a group account.")
        account.is_group = data["is_group"]

    parent_id = data["parent_id"] if "parent_id" in data else account.parent_id
    if "parent_id" in data or new_code != account.code or new_type != account.type:
        _resolve_parent(
            db,
            company_id,
            parent_id,
            code=new_code,
            account_type=new_type,
            account_id=account.id,
        )
    account.parent_id = parent_id
    account.code = new_code
    account.type = new_type

    if data.get("name") is not None:
        if not data["name"].strip():
            raise ValidationError("Account name is required.")
        account.name = data["name"].strip()
    if "description" in data:
        account.description = data["description"]
    if data.get("is_active") is not None:
        account.is_active = data["is_active"]

    db.flush()
    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="account",
        entity_id=account.id,
        action="update",
        payload={key: value for key, value in data.items() if key != "description"},
    )
    return account


def deactivate_account(db: Session, *, company_id: int, actor_id: Optional[int], account_id: int) -> Account:
    return update_account(db, company_id=company_id, actor_id=actor_id, account_id=account_id, data={"is_active": False})


def delete_account(db: Session, *, company_id: int, actor_id: Optional[int], account_id: int) -> None:
    account = get_account(db, company_id, account_id)
    reasons = []
    if _has_journal_lines(db, account.id):
        reasons.append("journal lines")
    if db.query(Account.id).filter(Account.parent_id == account.id).first():
        reasons.append("child accounts")
    if db.query(BankAccount.id).filter(BankAccount.chart_account_id == account.id).first():
        reasons.append("bank accounts")
    if (
        db.query(TaxProfile.id)
        .filter((TaxProfile.sales_account_id == account.id) | (TaxProfile.tax_account_id == account.id))
        .first()
    ):
        reasons.append("tax profiles")
    if db.query(CompanyAccountDefault.id).filter(CompanyAccountDefault.account_id == account.id).first():
        reasons.append("posting defaults")
    if reasons:
        logger.warning("Refused to delete account %s in use by %s", account.code, ", ".join(reasons))
        raise AccountInUseError(f"Cannot delete account {account.code}: referenced by {', '.join(reasons)}.")

    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="account",
        entity_id=account.id,
        action="delete",
        payload={"code": account.code},
    )
    db.delete(account)
    db.flush()


def parse_import_csv(csv_data: str) -> list[AccountImportRow]:
    """Parse ``code,name,type,is_group,parent_code`` rows. A header row is skipped."""
    rows = list(csv.reader(StringIO((csv_data or "").strip())))
    if not rows:
        raise ValidationError("CSV data is empty.")
    if rows[0] and rows[0][0].strip().lower() == "code":
        rows = rows[1:]

    parsed: list[AccountImportRow] = []
    for index, row in enumerate(rows, start=1):
        if not any(cell.strip() for cell in row):
            continue
        if len(row) < 3 or len(row) > 5:
            raise ValidationError(
                f"Invalid row format at line {index}. Expected: code, name, type, is_group, parent_code."
            )
        padded = list(row) + [""] * (5 - len(row))
        code, name, account_type, is_group_raw, parent_raw = (cell.strip() for cell in padded)
        if not code or not name:
            raise ValidationError(f"Code and name are required at line {index}.")
        parent_code = parent_raw if parent_raw and parent_raw.lower() != "null" else None
        parsed.append(
            AccountImportRow(
                code=code,
                name=name,
                type=account_type,
                is_group=is_group_raw.lower() in {"1", "true", "yes", "y"},
                parent_code=parent_code,
            )
        )
    return parsed


def bulk_import(
    db: Session,
    *,
    company_id: int,
    actor_id: Optional[int],
    rows: Iterable[AccountImportRow],
) -> list[Account]:
    """Insert every row or none of them.

    Nothing is added to the session until the whole batch validates, so a bad
    row leaves the tenant's chart untouched.
    """
    rows = list(rows)
    if not rows:
        raise ValidationError("No accounts to import.")

    existing = {
        account.code: account
        for account in db.query(Account).filter(Account.company_id == company_id).all()
    }
    batch: dict[str, AccountImportRow] = {}
    for index, row in enumerate(rows, start=1):
        code = _normalize_code(row.code)
        if code in existing or code in batch:
            raise DuplicateCodeError(f"Duplicate account code '{code}' at row {index}.")
        account_type = _normalize_type(row.type)
        batch[code] = AccountImportRow(
            code=code,
            name=row.name.strip(),
            type=account_type,
            is_group=bool(row.is_group),
            parent_code=(row.parent_code or "").strip() or None,
        )

    for code, row in batch.items():
        if row.parent_code is None:
            continue
        parent = batch.get(row.parent_code) or existing.get(row.parent_code)
        if parent is None:
            raise ValidationError(f"Unable to resolve parent account code '{row.parent_code}' for {code}.")
        if not parent.is_group:
            raise ValidationError(f"Parent account {row.parent_code} is not a group account.")
        if parent.type != row.type:
            raise ValidationError(f"Parent account {row.parent_code} is {parent.type}; {code} must match.")
        if not code.startswith(f"{row.parent_code}."):
            raise ValidationError(f"Account code {code} must start with '{row.parent_code}.'.")

    code_to_account = dict(existing)
    created: list[Account] = []
    pending = dict(batch)
    # Parents first: a strict code prefix relation rules out cycles, so this terminates.
    while pending:
        for code, row in list(pending.items()):
            if row.parent_code is not None and row.parent_code not in code_to_account:
                continue
            parent = code_to_account.get(row.parent_code) if row.parent_code else None
            account = Account(
                company_id=company_id,
                code=row.code,
                name=row.name,
                type=row.type,
                is_group=row.is_group,
                parent_id=parent.id if parent else None,
                is_active=True,
            )
            db.add(account)
            db.flush()
            code_to_account[code] = account
            created.append(account)
            pending.pop(code)

    record_audit_event(
        db,
        company_id=company_id,
        user_id=actor_id,
        entity_type="chart_of_accounts",
        entity_id=company_id,
        action="bulk_import",
        payload={"count": len(created)},
    )
    logger.info("Imported %s accounts company_id=%s", len(created), company_id)
    return created


def import_standard_chart(db: Session, *, company_id: int, actor_id: Optional[int]) -> list[Account]:
    """Load the built-in basic chart and point the posting roles at it."""
    rows = [
        AccountImportRow(code=code, name=name, type=account_type, is_group=is_group, parent_code=parent_code)
        for code, name, account_type, is_group, parent_code in STANDARD_CHART
    ]
    created = bulk_import(db, company_id=company_id, actor_id=actor_id, rows=rows)
    by_code = {account.code: account for account in created}
    for role, code in STANDARD_ROLE_CODES.items():
        set_account_default(db, company_id, role, by_code[code].id)
    return created
