from datetime import date, timedelta
from decimal import Decimal

import pytest

from money_saver.db.core import (
    AlertEventDB, AlertSeverity, AlertType, BudgetPeriod, CategoryDB, LinkType, NotFoundError, TransactionDB
)
from money_saver.crud import crud_account, crud_alert, crud_budget, crud_category, crud_transaction
from money_saver.models.account import AccountCreate, AccountUpdate
from money_saver.models.alert import AlertEventCreate, AlertSettingCreate, AlertSettingUpdate
from money_saver.models.budget import BudgetCreate, BudgetUpdate
from money_saver.models.category import CategoryCreate, CategoryUpdate
from money_saver.models.transaction import TransactionCreate, TransactionFilter, TransactionImport, TransactionUpdate

TODAY = date.today()


# ===== ACCOUNTS =====

def test_account_lifecycle(db, user):
    account = crud_account.create_db_account(db, user.db_id, AccountCreate(
        name="  Rewards Card ", account_type="credit_card", balance=Decimal("-12.345")
    ))
    assert account.name == "Rewards Card"
    assert account.balance == Decimal("-12.34")

    updated = crud_account.update_db_account(db, account.id, user.db_id, AccountUpdate(account_type="other"))
    assert updated.account_type.value == "other"

    assert crud_account.delete_db_account(db, account.id, user.db_id)
    assert crud_account.read_db_account(db, account.id, user.db_id) is None


def test_account_name_is_unique_per_user(db, user, account):
    with pytest.raises(ValueError, match="already exists"):
        crud_account.create_db_account(db, user.db_id, AccountCreate(name="Main Checking", account_type="checking"))


def test_account_for_unknown_user(db):
    with pytest.raises(NotFoundError):
        crud_account.create_db_account(db, 42, AccountCreate(name="Ghost", account_type="checking"))


def test_account_with_transactions_cannot_be_deleted(db, user, account, make_transaction):
    make_transaction("5.00", account_id=account.id)

    with pytest.raises(ValueError, match="existing transactions"):
        crud_account.delete_db_account(db, account.id, user.db_id)


def test_account_balance(db, user, account, make_transaction):
    make_transaction("1000.00", account_id=account.id, is_income=True)
    make_transaction("250.25", account_id=account.id)
    make_transaction("99.00")

    balance = crud_account.get_account_balance(db, account.id, user.db_id)

    assert balance.balance == Decimal("749.75")
    assert balance.transaction_count == 2


# ===== CATEGORIES =====

def test_categories_include_system_ones(db, user, other_user):
    db.add_all([
        CategoryDB(user_id=None, name="Utilities"),
        CategoryDB(user_id=other_user.db_id, name="Secret"),
    ])
    db.commit()
    crud_category.create_db_category(db, user.db_id, CategoryCreate(name="Pets", color="#00AA00"))

    names = [c.name for c in crud_category.read_db_categories(db, user.db_id)]
    assert names == ["Pets", "Utilities"]


def test_category_name_clashes_with_system_category(db, user):
    db.add(CategoryDB(user_id=None, name="Utilities"))
    db.commit()

    with pytest.raises(ValueError, match="already exists"):
        crud_category.create_db_category(db, user.db_id, CategoryCreate(name="utilities"))


def test_system_categories_are_read_only(db, user):
    system = CategoryDB(user_id=None, name="Utilities")
    db.add(system)
    db.commit()

    with pytest.raises(ValueError, match="System categories cannot be modified"):
        crud_category.update_db_category(db, system.id, user.db_id, CategoryUpdate(name="Bills"))
    with pytest.raises(ValueError, match="System categories cannot be modified"):
        crud_category.delete_db_category(db, system.id, user.db_id)


def test_deleting_a_category_uncategorizes_its_transactions(db, user, category, make_transaction):
    txn = make_transaction("5.00", category_id=category.id)

    crud_category.delete_db_category(db, category.id, user.db_id)

    db.refresh(txn)
    assert txn.category_id is None


# ===== TRANSACTIONS =====

def test_create_transaction_runs_alerts(db, user, category):
    crud_alert.initialize_default_alerts(db, user.db_id)

    txn = crud_transaction.create_db_transaction(db, user.db_id, TransactionCreate(
        transaction_date=TODAY, amount=Decimal("250.00"), merchant="Camera Shop", category_id=category.id
    ))

    events = crud_alert.read_alert_events(db, user.db_id)
    assert len(events) == 1
    assert events[0].transaction_id == txn.id
    assert events[0].severity == AlertSeverity.HIGH


def test_create_transaction_survives_alert_failure(db, user, monkeypatch):
    from money_saver.services import alert_detection

    def broken(db, transaction):
        raise RuntimeError("boom")

    monkeypatch.setattr(alert_detection, "run_transaction_alerts", broken)

    txn = crud_transaction.create_db_transaction(db, user.db_id, TransactionCreate(
        transaction_date=TODAY, amount=Decimal("10.00")
    ))
    assert txn.id is not None


def test_create_transaction_checks_references(db, user, other_user):
    foreign = CategoryDB(user_id=other_user.db_id, name="Secret")
    db.add(foreign)
    db.commit()

    with pytest.raises(NotFoundError):
        crud_transaction.create_db_transaction(db, user.db_id, TransactionCreate(
            transaction_date=TODAY, amount=Decimal("10.00"), category_id=foreign.id
        ))


def test_amount_must_be_positive():
    with pytest.raises(ValueError):
        TransactionCreate(transaction_date=TODAY, amount=Decimal("0"))


def test_filters_and_stats(db, user, make_transaction):
    make_transaction("3000.00", TODAY - timedelta(days=5), "Employer", is_income=True)
    make_transaction("45.00", TODAY - timedelta(days=3), "Corner Market", description="groceries")
    make_transaction("12.00", TODAY, "Bakery")

    found = crud_transaction.read_db_transactions(db, user.db_id, TransactionFilter(search="corner"))
    assert [t.merchant for t in found] == ["Corner Market"]

    newest_first = crud_transaction.read_db_transactions(db, user.db_id)
    assert [t.merchant for t in newest_first] == ["Bakery", "Corner Market", "Employer"]

    expenses = TransactionFilter(is_income=False)
    assert crud_transaction.get_transactions_count(db, user.db_id, expenses) == 2

    stats = crud_transaction.get_transaction_stats(db, user.db_id)
    assert stats.total_income == Decimal("3000.00")
    assert stats.total_expenses == Decimal("57.00")
    assert stats.net_balance == Decimal("2943.00")
    assert stats.transaction_count == 3


def test_order_by_column(db, user, make_transaction):
    make_transaction("45.00", TODAY - timedelta(days=3), "Corner Market")
    make_transaction("12.00", TODAY, "Bakery")
    make_transaction("99.00", TODAY - timedelta(days=1), "Hardware")

    cheapest_first = crud_transaction.read_db_transactions(db, user.db_id, order_by="amount", order_desc=False)
    assert [t.merchant for t in cheapest_first] == ["Bakery", "Corner Market", "Hardware"]


@pytest.mark.parametrize("order_by", ["children", "parent", "category", "account", "not_a_field"])
def test_order_by_non_column_uses_date(db, user, make_transaction, order_by):
    make_transaction("45.00", TODAY - timedelta(days=3), "Corner Market")
    make_transaction("12.00", TODAY, "Bakery")

    found = crud_transaction.read_db_transactions(db, user.db_id, order_by=order_by, order_desc=False)
    assert [t.merchant for t in found] == ["Bakery", "Corner Market"]


def test_update_transaction(db, user, make_transaction):
    txn = make_transaction("12.00", TODAY, "Bakery")

    updated = crud_transaction.update_db_transaction(db, txn.id, user.db_id, TransactionUpdate(amount=Decimal("13.50")))
    assert updated.amount == Decimal("13.50")
    assert updated.merchant == "Bakery"


@pytest.mark.parametrize("field", ["transaction_date", "amount", "description", "is_income"])
def test_update_rejects_null_for_required_columns(field):
    with pytest.raises(ValueError, match=f"{field} cannot be null"):
        TransactionUpdate(**{field: None})


def test_update_allows_clearing_optional_columns(db, user, category, make_transaction):
    txn = make_transaction("12.00", TODAY, "Bakery", category_id=category.id)

    updated = crud_transaction.update_db_transaction(db, txn.id, user.db_id,
                                                     TransactionUpdate(merchant=None, category_id=None))
    assert updated.merchant is None
    assert updated.category_id is None
    assert updated.amount == Decimal("12.00")


def test_deleting_a_parent_unlinks_its_children(db, user, make_transaction):
    parent = make_transaction("20.00", TODAY, "AMAZON MKTPL*AB12CD")
    child = make_transaction("20.00", TODAY, "Amazon", parent_transaction_id=parent.id,
                             link_type=LinkType.MANUAL, link_confidence=90)

    crud_transaction.delete_db_transaction(db, parent.id, user.db_id)

    db.refresh(child)
    assert child.parent_transaction_id is None
    assert child.link_type is None
    assert child.link_confidence is None


def test_delete_missing_transaction(db, user):
    with pytest.raises(NotFoundError):
        crud_transaction.delete_db_transaction(db, 999, user.db_id)


def test_import_skips_duplicates_and_links(db, user, account, make_transaction):
    make_transaction("12.00", TODAY, "Bakery", description="bread")
    day = TODAY - timedelta(days=1)

    result = crud_transaction.import_transactions(db, user.db_id, TransactionImport(
        account_id=account.id,
        transactions=[
            TransactionCreate(transaction_date=TODAY, amount=Decimal("12.00"), merchant="bakery", description="Bread"),
            TransactionCreate(transaction_date=day, amount=Decimal("37.48"), merchant="AMAZON MKTPL*AB12CD"),
            TransactionCreate(transaction_date=day, amount=Decimal("24.99"), merchant="Amazon", order_id="A-1"),
            TransactionCreate(transaction_date=day, amount=Decimal("12.49"), merchant="Amazon", order_id="A-1"),
        ],
    ))

    assert len(result.created) == 3
    assert len(result.skipped) == 1
    assert result.duplicate_stats.duplicates == 1
    assert result.duplicate_stats.duplicate_percentage == 25.0
    assert result.auto_linked_count == 1
    assert all(t.account_id == account.id for t in result.created)

    parent_id = result.created[0].id
    assert [t.parent_transaction_id for t in result.created[1:]] == [parent_id, parent_id]


def test_import_keeps_duplicates_when_asked(db, user, make_transaction):
    make_transaction("12.00", TODAY, "Bakery", description="bread")

    result = crud_transaction.import_transactions(db, user.db_id, TransactionImport(
        transactions=[TransactionCreate(transaction_date=TODAY, amount=Decimal("12.00"), merchant="Bakery",
                                        description="bread")],
        skip_duplicates=False,
        auto_link=False,
    ))

    assert len(result.created) == 1
    assert result.duplicate_stats.duplicates == 1
    assert db.query(TransactionDB).count() == 2


def test_import_assigns_categories_by_keyword(db, user, category, other_user):
    dining = CategoryDB(user_id=None, name="Food & Dining")
    other = CategoryDB(user_id=user.db_id, name="Other")
    hidden = CategoryDB(user_id=other_user.db_id, name="Bills & Utilities")
    db.add_all([dining, other, hidden])
    db.commit()

    result = crud_transaction.import_transactions(db, user.db_id, TransactionImport(
        transactions=[
            TransactionCreate(transaction_date=TODAY, amount=Decimal("18.20"), merchant="Blue Bottle Coffee"),
            TransactionCreate(transaction_date=TODAY, amount=Decimal("60.00"), merchant="City Water", description="bill"),
            TransactionCreate(transaction_date=TODAY, amount=Decimal("9.99"), merchant="Cafe Nero",
                              category_id=category.id),
            TransactionCreate(transaction_date=TODAY, amount=Decimal("2500.00"), description="Payroll",
                              is_income=True),
        ],
        auto_link=False,
        auto_categorize=True,
    ))

    assert [t.category_id for t in result.created] == [dining.id, other.id, category.id, None]
    assert result.categorized_count == 2


def test_import_leaves_categories_alone_by_default(db, user):
    db.add(CategoryDB(user_id=None, name="Food & Dining"))
    db.commit()

    result = crud_transaction.import_transactions(db, user.db_id, TransactionImport(
        transactions=[TransactionCreate(transaction_date=TODAY, amount=Decimal("18.20"), merchant="Coffee Bar")],
        auto_link=False,
    ))

    assert result.created[0].category_id is None
    assert result.categorized_count == 0


# ===== BUDGETS =====

def test_budget_status_buckets(db, user, category, make_transaction):
    budget = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=category.id, amount=Decimal("200.00"), start_date=TODAY - timedelta(days=3)
    ))
    assert budget.period == BudgetPeriod.MONTHLY

    make_transaction("150.00", TODAY, category_id=category.id)
    status = crud_budget.get_budget_status(db, budget.id, user.db_id)
    assert status.status == "under"
    assert status.percentage == 75
    assert status.remaining == Decimal("50.00")

    make_transaction("50.00", TODAY, category_id=category.id)
    assert crud_budget.get_budget_status(db, budget.id, user.db_id).status == "at"

    make_transaction("0.01", TODAY, category_id=category.id)
    # 100.005% rounds to 100
    assert crud_budget.get_budget_status(db, budget.id, user.db_id).status == "at"

    make_transaction("10.00", TODAY, category_id=category.id)
    assert crud_budget.get_budget_status(db, budget.id, user.db_id).status == "over"


def test_budget_dates_are_checked(db, user, category):
    with pytest.raises(ValueError):
        BudgetCreate(category_id=category.id, amount=Decimal("10"), start_date=TODAY, end_date=TODAY)

    budget = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=category.id, amount=Decimal("10"), start_date=TODAY
    ))
    with pytest.raises(ValueError, match="end_date must be after start_date"):
        crud_budget.update_db_budget(db, budget.id, user.db_id, BudgetUpdate(end_date=TODAY - timedelta(days=1)))


def test_duplicate_budget_period(db, user, category):
    data = BudgetCreate(category_id=category.id, amount=Decimal("10"), start_date=TODAY)
    crud_budget.create_db_budget(db, user.db_id, data)

    with pytest.raises(ValueError, match="already exists"):
        crud_budget.create_db_budget(db, user.db_id, data)


def test_budgets_by_category(db, user, category):
    other = CategoryDB(user_id=None, name="Dining")
    db.add(other)
    db.commit()
    crud_budget.create_db_budget(db, user.db_id, BudgetCreate(category_id=category.id, amount=Decimal("10"), start_date=TODAY))
    crud_budget.create_db_budget(db, user.db_id, BudgetCreate(category_id=other.id, amount=Decimal("10"), start_date=TODAY))

    assert len(crud_budget.read_db_budgets(db, user.db_id)) == 2
    assert [b.category_id for b in crud_budget.read_db_budgets(db, user.db_id, category_id=other.id)] == [other.id]


# ===== ALERTS =====

def test_default_alert_settings(db, user):
    settings = {s.type: s for s in crud_alert.initialize_default_alerts(db, user.db_id)}

    assert settings[AlertType.LARGE_PURCHASE].threshold == Decimal("100")
    assert settings[AlertType.ANOMALY].threshold is None
    assert settings[AlertType.BUDGET_WARNING].threshold == Decimal("80")
    assert all(s.is_enabled for s in settings.values())

    # Running it again changes nothing
    assert len(crud_alert.initialize_default_alerts(db, user.db_id)) == 3


def test_one_setting_per_type(db, user):
    crud_alert.create_alert_setting(db, user.db_id, AlertSettingCreate(type=AlertType.ANOMALY))

    with pytest.raises(ValueError, match="already exists"):
        crud_alert.create_alert_setting(db, user.db_id, AlertSettingCreate(type=AlertType.ANOMALY))


def test_upsert_alert_setting(db, user):
    created = crud_alert.upsert_alert_setting(db, user.db_id, AlertSettingCreate(
        type=AlertType.LARGE_PURCHASE, threshold=Decimal("50")
    ))
    replaced = crud_alert.upsert_alert_setting(db, user.db_id, AlertSettingCreate(
        type=AlertType.LARGE_PURCHASE, threshold=Decimal("75"), is_enabled=False
    ))

    assert replaced.id == created.id
    assert replaced.threshold == Decimal("75")
    assert not replaced.is_enabled


def test_update_missing_setting(db, user):
    with pytest.raises(NotFoundError):
        crud_alert.update_alert_setting(db, 99, user.db_id, AlertSettingUpdate(is_enabled=False))


def _event(db, user_id, message="Heads up"):
    return crud_alert.create_alert_event(db, user_id, AlertEventCreate(
        type=AlertType.ANOMALY, message=message, severity=AlertSeverity.LOW, metadata={"amount": 1.5}
    ))


def test_alert_events(db, user, other_user):
    first = _event(db, user.db_id, "first")
    second = _event(db, user.db_id, "second")
    _event(db, other_user.db_id, "not mine")

    events = crud_alert.read_alert_events(db, user.db_id)
    assert [e.id for e in events] == [second.id, first.id]
    assert events[0].event_metadata == {"amount": 1.5}
    assert crud_alert.count_unread_alert_events(db, user.db_id) == 2

    crud_alert.mark_alert_event_read(db, first.id, user.db_id)
    assert [e.id for e in crud_alert.read_alert_events(db, user.db_id, unread_only=True)] == [second.id]

    assert crud_alert.mark_all_alert_events_read(db, user.db_id) == 1
    assert crud_alert.count_unread_alert_events(db, user.db_id) == 0
    assert crud_alert.count_unread_alert_events(db, other_user.db_id) == 1


def test_alert_event_limit(db, user):
    for i in range(5):
        _event(db, user.db_id, f"event {i}")

    assert len(crud_alert.read_alert_events(db, user.db_id, limit=3)) == 3


def test_delete_alert_event(db, user):
    event = _event(db, user.db_id)

    assert crud_alert.delete_alert_event(db, event.id, user.db_id)
    assert db.query(AlertEventDB).count() == 0
    with pytest.raises(NotFoundError):
        crud_alert.delete_alert_event(db, event.id, user.db_id)
