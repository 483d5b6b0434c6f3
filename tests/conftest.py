import os
from datetime import date
from decimal import Decimal

# Point the app at an in-memory database before config/db are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base
from app.constants import STATUS_PENDING, TYPE_EXPENSE
from app.deps import get_db
from main import app
from models import Transaction


def _transaction(**overrides) -> Transaction:
    fields = dict(
        id=1,
        owner_id="user-1",
        account_name="Checking",
        category="Housing",
        type=TYPE_EXPENSE,
        description="Rent",
        amount=Decimal("100.00"),
        due_date=date(2024, 1, 31),
        paid_date=None,
        status=STATUS_PENDING,
        notes=None,
        is_fixed=False,
        installments=None,
        start_date=None,
        end_date=None,
        day_of_month=None,
        cancelled_occurrences=[],
        is_override=False,
        parent_transaction_id=None,
        override_for_date=None,
    )
    fields.update(overrides)
    return Transaction(**fields)


@pytest.fixture
def make_single():
    def factory(**overrides):
        return _transaction(**overrides)

    return factory


@pytest.fixture
def make_fixed():
    def factory(**overrides):
        due = overrides.get("due_date", date(2024, 1, 31))
        fields = dict(
            is_fixed=True,
            due_date=due,
            start_date=due,
            day_of_month=due.day,
        )
        fields.update(overrides)
        return _transaction(**fields)

    return factory


@pytest.fixture
def make_installments():
    def factory(installments=3, **overrides):
        due = overrides.get("due_date", date(2024, 1, 15))
        fields = dict(
            installments=installments,
            due_date=due,
            start_date=due,
            day_of_month=due.day,
        )
        fields.update(overrides)
        return _transaction(**fields)

    return factory


@pytest.fixture
def make_override():
    def factory(parent, override_for_date, **overrides):
        fields = dict(
            id=1000 + override_for_date.month,
            owner_id=parent.owner_id,
            account_name=parent.account_name,
            category=parent.category,
            type=parent.type,
            description=parent.description,
            amount=parent.amount,
            due_date=override_for_date,
            is_override=True,
            parent_transaction_id=parent.id,
            override_for_date=override_for_date,
        )
        fields.update(overrides)
        return _transaction(**fields)

    return factory


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield TestingSession
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app, headers={"X-User-Id": "user-1"}) as test_client:
        yield test_client
    app.dependency_overrides.clear()
