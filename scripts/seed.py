import sys
import os
import random
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4
from faker import Faker

# Add the project root to the Python path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from money_saver.db.core import (
    Base,
    engine,
    session_local,
    UserDB,
    AccountDB,
    TransactionDB,
    CategoryDB,
    BudgetDB,
    AccountType,
    BudgetPeriod,
)
from money_saver.crud.crud_alert import initialize_default_alerts
from money_saver.services.automatic_linking import auto_link_transactions

fake = Faker()

SYSTEM_CATEGORIES = [
    ("Food & Dining", "#4CAF50", "utensils"),
    ("Shopping", "#9C27B0", "bag"),
    ("Auto & Transport", "#2196F3", "car"),
    ("Bills & Utilities", "#607D8B", "bolt"),
    ("Travel & Lifestyle", "#E91E63", "film"),
    ("Housing", "#795548", "home"),
    ("Health & Wellness", "#00BCD4", "heart"),
    ("Financial", "#3F51B5", "bank"),
    ("Other", "#9E9E9E", "tag"),
    ("Income", "#8BC34A", "dollar"),
]

# Card charge label, then the line items behind it
MARKETPLACE_ORDERS = [
    ("AMAZON MKTPL*{code}", [Decimal("24.99"), Decimal("12.49")]),
    ("Amazon.com*{code}", [Decimal("89.00")]),
    ("AMZN Mktp US*{code}", [Decimal("15.99"), Decimal("7.50"), Decimal("31.25")]),
]


def _add(db: Session, **fields) -> TransactionDB:
    transaction = TransactionDB(
        link_metadata={},
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow(),
        **fields
    )
    db.add(transaction)
    return transaction


def seed_database():
    """
    Fills the database with one demo user, the system categories and a few
    months of transactions, including marketplace charges with their line
    items so automatic linking has something to do.
    """
    Base.metadata.create_all(bind=engine)
    db: Session = session_local()

    try:
        # Check if data exists to prevent duplicate seeding
        if db.query(UserDB).count() > 0:
            print("Database appears to be already seeded. Exiting.")
            return

        print("Seeding database with sample data...")

        # 1. System categories
        print("Creating system categories...")
        categories = {}
        for name, color, icon in SYSTEM_CATEGORIES:
            category = CategoryDB(user_id=None, name=name, color=color, icon=icon)
            db.add(category)
            categories[name] = category
        db.flush()

        # 2. Demo user; the API resolves every request to db_id 1
        user = UserDB(db_id=1, id=uuid4(), email=fake.email(), username=fake.user_name())
        db.add(user)
        db.flush()

        # 3. Accounts
        checking = AccountDB(user_id=user.db_id, name="Main Checking",
                             account_type=AccountType.CHECKING, balance=Decimal("4200.00"))
        card = AccountDB(user_id=user.db_id, name="Rewards Card",
                         account_type=AccountType.CREDIT_CARD, balance=Decimal("-850.00"))
        db.add_all([checking, card])
        db.flush()

        # 4. Everyday transactions over the last 90 days
        print("Creating transactions...")
        today = date.today()
        spending = [c for name, c in categories.items() if name != "Income"]
        for _ in range(120):
            category = random.choice(spending)
            _add(
                db,
                user_id=user.db_id,
                account_id=random.choice([checking.id, card.id]),
                category_id=category.id,
                transaction_date=today - timedelta(days=random.randint(0, 90)),
                amount=Decimal(str(round(random.uniform(4.0, 180.0), 2))),
                merchant=fake.company(),
                description=fake.catch_phrase(),
                is_income=False,
            )

        for months_back in range(3):
            _add(
                db,
                user_id=user.db_id,
                account_id=checking.id,
                category_id=categories["Income"].id,
                transaction_date=today.replace(day=1) - timedelta(days=30 * months_back),
                amount=Decimal("3800.00"),
                merchant=fake.company(),
                description="Payroll deposit",
                is_income=True,
            )

        # 5. Marketplace charges and their unlinked line items
        print("Creating marketplace orders...")
        for label, items in MARKETPLACE_ORDERS:
            charge_date = today - timedelta(days=random.randint(5, 40))
            order_id = f"{random.randint(100, 999)}-{random.randint(1000000, 9999999)}-{random.randint(1000000, 9999999)}"

            _add(
                db,
                user_id=user.db_id,
                account_id=card.id,
                category_id=categories["Shopping"].id,
                transaction_date=charge_date,
                amount=sum(items, Decimal("0")),
                merchant=label.format(code=fake.bothify("??##??##").upper()),
                description="Card charge",
                is_income=False,
            )
            for amount in items:
                _add(
                    db,
                    user_id=user.db_id,
                    category_id=categories["Shopping"].id,
                    transaction_date=charge_date - timedelta(days=random.randint(0, 2)),
                    amount=amount,
                    merchant="Amazon",
                    description=fake.catch_phrase(),
                    is_income=False,
                    order_id=order_id,
                )

        # 6. Budgets for the current month
        month_start = today.replace(day=1)
        for name, limit in (("Food & Dining", Decimal("800")), ("Shopping", Decimal("400"))):
            db.add(BudgetDB(
                user_id=user.db_id,
                category_id=categories[name].id,
                amount=limit,
                period=BudgetPeriod.MONTHLY,
                start_date=month_start,
            ))

        db.commit()

        # 7. Alert settings and an initial auto-link pass
        initialize_default_alerts(db, user.db_id)
        result = auto_link_transactions(db, user.db_id)
        print(f"Auto-linked {result.auto_linked_count} orders, {result.suggested_count} left for review.")

        print("Successfully seeded database.")

    except Exception as e:
        print(f"An error occurred: {e}")
        import traceback
        traceback.print_exc()
        db.rollback()
    finally:
        db.close()

if __name__ == "__main__":
    seed_database()
