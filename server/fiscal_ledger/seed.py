import logging
import os

from sqlalchemy.orm import Session

from .auth import create_access_token
from .chart_of_accounts.service import import_standard_chart
from .db import SessionLocal
from .models import Account, Company, User
from .sales.service import create_default_tax_profiles
from .sequences.service import ensure_fiscal_sequences

logger = logging.getLogger(__name__)


def _get_or_create_company(db: Session) -> Company:
    company = db.query(Company).order_by(Company.id.asc()).first()
    if company:
        return company

    company = Company(name=os.getenv("SEED_COMPANY_NAME", "Demo Company"), base_currency="USD")
    db.add(company)
    db.flush()
    return company


def _get_or_create_user(db: Session, company_id: int) -> User:
    email = os.getenv("SEED_USER_EMAIL", "admin@fiscal-ledger.local")
    user = db.query(User).filter(User.email == email).first()
    if user:
        if user.company_id != company_id:
            user.company_id = company_id
        user.is_active = True
        return user

    user = User(company_id=company_id, email=email, full_name="System Admin")
    db.add(user)
    db.flush()
    return user


def run_seed() -> str:
    """Bootstrap a tenant with the standard chart, tax profiles and fiscal sequences.

    Returns a bearer token for the seeded user.
    """
    db: Session = SessionLocal()
    try:
        company = _get_or_create_company(db)
        user = _get_or_create_user(db, company.id)

        has_chart = db.query(Account.id).filter(Account.company_id == company.id).first()
        if not has_chart:
            import_standard_chart(db, company_id=company.id, actor_id=user.id)
        create_default_tax_profiles(db, company.id)
        ensure_fiscal_sequences(db, company.id)
        db.commit()
        logger.info("Seeded company_id=%s user_id=%s", company.id, user.id)
        return create_access_token({"sub": str(user.id)})
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    print(run_seed())
