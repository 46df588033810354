from datetime import date, timedelta
from decimal import Decimal

import pytest

from money_saver.db.core import AlertSeverity, AlertType, BudgetDB, BudgetPeriod
from money_saver.crud import crud_alert
from money_saver.models.alert import AlertSettingUpdate
from money_saver.services import alert_detection

TODAY = date.today()


@pytest.fixture
def alerts(db, user):
    return {s.type: s for s in crud_alert.initialize_default_alerts(db, user.db_id)}


@pytest.fixture
def budget(db, user, category):
    budget = BudgetDB(
        user_id=user.db_id,
        category_id=category.id,
        amount=Decimal("100.00"),
        period=BudgetPeriod.MONTHLY,
        start_date=TODAY - timedelta(days=10),
    )
    db.add(budget)
    db.commit()
    return budget


# ===== LARGE PURCHASE =====

def test_large_purchase_medium(db, alerts, make_transaction):
    txn = make_transaction("150.00", TODAY, "Camera Shop")

    result = alert_detection.check_large_purchase_alert(db, txn)

    event = result.data
    assert event.type == AlertType.LARGE_PURCHASE
    assert event.severity == AlertSeverity.MEDIUM
    assert event.message == "Large purchase detected: $150.00 at Camera Shop"
    assert event.transaction_id == txn.id
    assert event.alert_id == alerts[AlertType.LARGE_PURCHASE].id
    assert event.event_metadata == {"amount": 150.0, "threshold": 100.0, "merchant": "Camera Shop"}


def test_large_purchase_high_at_double_threshold(db, alerts, make_transaction):
    result = alert_detection.check_large_purchase_alert(db, make_transaction("200.00", TODAY))

    assert result.data.severity == AlertSeverity.HIGH
    assert result.data.message == "Large purchase detected: $200.00"


def test_below_threshold_is_quiet(db, alerts, make_transaction):
    result = alert_detection.check_large_purchase_alert(db, make_transaction("99.99", TODAY))
    assert result.data is None
    assert result.error is None


def test_income_is_never_a_large_purchase(db, alerts, make_transaction):
    result = alert_detection.check_large_purchase_alert(db, make_transaction("5000.00", TODAY, is_income=True))
    assert result.data is None


def test_disabled_setting_is_quiet(db, user, alerts, make_transaction):
    crud_alert.update_alert_setting(db, alerts[AlertType.LARGE_PURCHASE].id, user.db_id,
                                    AlertSettingUpdate(is_enabled=False))

    assert alert_detection.check_large_purchase_alert(db, make_transaction("500.00", TODAY)).data is None


def test_no_setting_is_quiet(db, user, make_transaction):
    assert alert_detection.check_large_purchase_alert(db, make_transaction("500.00", TODAY)).data is None


# ===== BUDGETS =====

def test_budget_status(db, budget, make_transaction, category):
    make_transaction("30.00", TODAY, category_id=category.id)
    make_transaction("12.50", TODAY, category_id=category.id)
    make_transaction("999.00", TODAY, category_id=category.id, is_income=True)
    make_transaction("999.00", TODAY - timedelta(days=30), category_id=category.id)

    spend = alert_detection.calculate_budget_status(db, budget.id).data

    assert spend.spent == Decimal("42.50")
    assert spend.limit == Decimal("100.00")
    assert spend.percentage == 43


def test_budget_status_for_missing_budget(db, user):
    result = alert_detection.calculate_budget_status(db, 404)
    assert result.data is None
    assert result.error is None


@pytest.mark.parametrize("spent, severity, prefix", [
    ("100.00", AlertSeverity.HIGH, "Budget exceeded"),
    ("120.00", AlertSeverity.HIGH, "Budget exceeded"),
    ("99.00", AlertSeverity.MEDIUM, "Budget warning"),
    ("80.00", AlertSeverity.MEDIUM, "Budget warning"),
])
def test_budget_warning_severity(db, alerts, budget, category, make_transaction, spent, severity, prefix):
    make_transaction(spent, TODAY, category_id=category.id)

    event = alert_detection.check_budget_warning_alert(db, budget.id).data

    assert event.severity == severity
    assert event.budget_id == budget.id
    assert event.message.startswith(f"{prefix}: ")


def test_budget_message(db, alerts, budget, category, make_transaction):
    make_transaction("99.00", TODAY, category_id=category.id)

    event = alert_detection.check_budget_warning_alert(db, budget.id).data
    assert event.message == "Budget warning: 99% spent ($99.00 of $100.00)"


def test_budget_below_warning_threshold(db, alerts, budget, category, make_transaction):
    make_transaction("79.00", TODAY, category_id=category.id)

    assert alert_detection.check_budget_warning_alert(db, budget.id).data is None


# ===== ANOMALIES =====

def _history(make_transaction, category, amounts):
    for i, amount in enumerate(amounts):
        make_transaction(amount, TODAY - timedelta(days=i + 1), category_id=category.id)


def test_fewer_than_ten_samples_abstains(db, category, make_transaction):
    _history(make_transaction, category, ["20.00"] * 9)
    txn = make_transaction("5000.00", TODAY, category_id=category.id)

    assert alert_detection.detect_anomalies(db, txn).data is False


def test_stored_candidate_is_not_counted_in_its_baseline(db, category, make_transaction):
    amounts = ["18.00", "22.00", "20.00", "19.00", "21.00", "20.50", "19.50", "20.00", "21.50"]
    _history(make_transaction, category, amounts)
    txn = make_transaction("5000.00", TODAY, category_id=category.id)

    assert alert_detection.detect_anomalies(db, txn).data is False

    make_transaction("18.50", TODAY - timedelta(days=30), category_id=category.id)
    assert alert_detection.detect_anomalies(db, txn).data is True


def test_outlier_is_flagged(db, category, make_transaction):
    _history(make_transaction, category, ["18.00", "22.00", "20.00", "19.00", "21.00",
                                          "20.50", "19.50", "20.00", "21.50", "18.50"])
    txn = make_transaction("250.00", TODAY, category_id=category.id)

    assert alert_detection.detect_anomalies(db, txn).data is True


def test_ordinary_amount_is_not_flagged(db, category, make_transaction):
    _history(make_transaction, category, ["18.00", "22.00", "20.00", "19.00", "21.00",
                                          "20.50", "19.50", "20.00", "21.50", "18.50"])
    txn = make_transaction("21.00", TODAY, category_id=category.id)

    assert alert_detection.detect_anomalies(db, txn).data is False


def test_identical_history(db, category, make_transaction):
    _history(make_transaction, category, ["15.00"] * 10)

    same = make_transaction("15.00", TODAY, category_id=category.id)
    assert alert_detection.detect_anomalies(db, same).data is False

    different = make_transaction("15.01", TODAY, category_id=category.id)
    assert alert_detection.detect_anomalies(db, different).data is True


def test_old_history_is_ignored(db, category, make_transaction):
    for i in range(10):
        make_transaction("20.00", TODAY - timedelta(days=100 + i), category_id=category.id)
    txn = make_transaction("900.00", TODAY, category_id=category.id)

    assert alert_detection.detect_anomalies(db, txn).data is False


def test_uncategorized_is_never_an_anomaly(db, user, make_transaction):
    assert alert_detection.detect_anomalies(db, make_transaction("900.00", TODAY)).data is False


def test_anomaly_alert(db, alerts, category, make_transaction):
    _history(make_transaction, category, ["18.00", "22.00", "20.00", "19.00", "21.00",
                                          "20.50", "19.50", "20.00", "21.50", "18.50"])
    txn = make_transaction("90.00", TODAY, "Bistro", category_id=category.id)

    event = alert_detection.check_anomaly_alert(db, txn).data

    assert event.type == AlertType.ANOMALY
    assert event.severity == AlertSeverity.MEDIUM
    assert event.message == "Unusual spending detected: $90.00 at Bistro"


# ===== ORCHESTRATION =====

def test_run_transaction_alerts(db, alerts, budget, category, make_transaction):
    txn = make_transaction("150.00", TODAY, "Camera Shop", category_id=category.id)

    events = alert_detection.run_transaction_alerts(db, txn)

    assert sorted(e.type.value for e in events) == ["budget_warning", "large_purchase"]


def test_run_transaction_alerts_survives_a_failing_check(db, alerts, make_transaction, monkeypatch):
    def broken(db, transaction):
        raise RuntimeError("boom")

    monkeypatch.setattr(alert_detection, "check_anomaly_alert", broken)
    txn = make_transaction("150.00", TODAY)

    events = alert_detection.run_transaction_alerts(db, txn)

    assert [e.type for e in events] == [AlertType.LARGE_PURCHASE]


def test_budgets_outside_the_transaction_date_are_skipped(db, alerts, budget, category, make_transaction):
    txn = make_transaction("150.00", TODAY - timedelta(days=20), category_id=category.id)

    events = alert_detection.run_transaction_alerts(db, txn)

    assert [e.type for e in events] == [AlertType.LARGE_PURCHASE]
