import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from fiscal_ledger.auth import get_current_user
from fiscal_ledger.chart_of_accounts.service import import_standard_chart
from fiscal_ledger.db import Base, get_db
from fiscal_ledger.main import app
from fiscal_ledger.models import Company, User
from fiscal_ledger.sales.service import create_default_tax_profiles


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def user(db):
    company = Company(name="Test Company", base_currency="USD")
    db.add(company)
    db.flush()
    user = User(company_id=company.id, email="admin@fiscal-ledger.local", full_name="Test Admin", is_active=True)
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def company_id(user):
    return user.company_id


@pytest.fixture
def ledger(db, user):
    """Standard chart plus default tax profiles, keyed by account code."""
    accounts = import_standard_chart(db, company_id=user.company_id, actor_id=user.id)
    create_default_tax_profiles(db, user.company_id)
    db.commit()
    return {account.code: account.id for account in accounts}


@pytest.fixture
def client(request, session_factory, user):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    if not request.node.get_closest_marker("real_auth"):
        actor = User(
            id=user.id,
            company_id=user.company_id,
            email=user.email,
            full_name=user.full_name,
            is_active=True,
        )
        app.dependency_overrides[get_current_user] = lambda: actor
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
