from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from money_saver.db.core import Base, get_db, UserDB, CategoryDB, AccountDB, AccountType, TransactionDB
from money_saver.main import app


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    user = UserDB(db_id=1, id=uuid4(), email="saver@example.com", username="saver")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def other_user(db):
    user = UserDB(db_id=2, id=uuid4(), email="other@example.com", username="other")
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def category(db, user):
    category = CategoryDB(user_id=user.db_id, name="Groceries")
    db.add(category)
    db.commit()
    return category


@pytest.fixture
def account(db, user):
    account = AccountDB(user_id=user.db_id, name="Main Checking", account_type=AccountType.CHECKING)
    db.add(account)
    db.commit()
    return account


@pytest.fixture
def make_transaction(db, user):
    """Insert a transaction directly, bypassing the alert hook."""

    def _make(amount, transaction_date=None, merchant=None, **fields):
        transaction = TransactionDB(
            user_id=fields.pop("user_id", user.db_id),
            transaction_date=transaction_date or date.today(),
            amount=Decimal(str(amount)),
            merchant=merchant,
            description=fields.pop("description", ""),
            is_income=fields.pop("is_income", False),
            link_metadata={},
            **fields
        )
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    return _make


@pytest.fixture
def client(db, user):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
