"""Posting-role defaults: which chart account a document engine posts to."""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from fiscal_ledger.errors import InvalidAccountError, MissingAccountDefaultError, ValidationError
from fiscal_ledger.models import Account, CompanyAccountDefault

logger = logging.getLogger(__name__)

ACCOUNT_ROLES = (
    "AR",
    "AP",
    "SALES",
    "VAT_PAYABLE",
    "VAT_RECOVERABLE",
    "PURCHASES_EXPENSE",
    "CASH",
)

# Expected account type per role.
ROLE_ACCOUNT_TYPES = {
    "AR": "asset",
    "AP": "liability",
    "SALES": "income",
    "VAT_PAYABLE": "liability",
    "VAT_RECOVERABLE": "asset",
    "PURCHASES_EXPENSE": "expense",
    "CASH": "asset",
}


def get_account_defaults(db: Session, company_id: int) -> dict[str, Optional[int]]:
    rows = db.query(CompanyAccountDefault).filter(CompanyAccountDefault.company_id == company_id).all()
    out: dict[str, Optional[int]] = {role: None for role in ACCOUNT_ROLES}
    for row in rows:
        out[row.role] = row.account_id
    return out


def set_account_default(db: Session, company_id: int, role: str, account_id: int) -> CompanyAccountDefault:
    role = (role or "").strip().upper()
    if role not in ACCOUNT_ROLES:
        raise ValidationError(f"Unknown posting role '{role}'.")
    account = db.query(Account).filter(Account.company_id == company_id, Account.id == account_id).first()
    if not account:
        raise InvalidAccountError(f"Account {account_id} was not found.")
    if account.is_group:
        raise InvalidAccountError(f"Account {account.code} is a group account and cannot be a posting default.")
    if account.type != ROLE_ACCOUNT_TYPES[role]:
        raise InvalidAccountError(
            f"Role {role} needs an {ROLE_ACCOUNT_TYPES[role]} account; {account.code} is {account.type}."
        )

    default = (
        db.query(CompanyAccountDefault)
        .filter(CompanyAccountDefault.company_id == company_id, CompanyAccountDefault.role == role)
        .first()
    )
    if default:
        default.account_id = account.id
    else:
        default = CompanyAccountDefault(company_id=company_id, role=role, account_id=account.id)
        db.add(default)
    db.flush()
    logger.info("Set posting default company_id=%s role=%s account=%s", company_id, role, account.code)
    return default


def resolve_role_account(db: Session, company_id: int, role: str) -> Account:
    """Return the active postable account for ``role`` or raise MissingAccountDefaultError."""
    account = (
        db.query(Account)
        .join(CompanyAccountDefault, CompanyAccountDefault.account_id == Account.id)
        .filter(CompanyAccountDefault.company_id == company_id, CompanyAccountDefault.role == role)
        .first()
    )
    if account is None:
        logger.warning("Missing posting default company_id=%s role=%s", company_id, role)
        raise MissingAccountDefaultError(
            f"No default account configured for role {role}.",
            current_state="unconfigured",
        )
    if account.is_group or not account.is_active:
        raise InvalidAccountError(f"Default account {account.code} for role {role} cannot receive postings.")
    return account
