from jose import jwt
from sqlalchemy.orm import sessionmaker

from fiscal_ledger import seed
from fiscal_ledger.config import settings
from fiscal_ledger.models import Account, CompanyAccountDefault, FiscalSequence, TaxProfile, User


def test_seed_bootstraps_tenant_and_is_repeatable(monkeypatch, engine):
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    monkeypatch.setattr(seed, "SessionLocal", TestingSessionLocal)

    token = seed.run_seed()
    seed.run_seed()

    with TestingSessionLocal() as db:
        user = db.query(User).one()
        assert user.email == "admin@fiscal-ledger.local"
        assert db.query(Account).filter(Account.code == "1.1.03").count() == 1
        assert db.query(CompanyAccountDefault).count() == 7
        assert db.query(TaxProfile).count() == 3
        assert db.query(FiscalSequence).count() == 3

        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
        assert payload["sub"] == str(user.id)
