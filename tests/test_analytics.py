from datetime import date
from decimal import Decimal

import pytest

from money_saver.crud import crud_budget
from money_saver.db.core import CategoryDB
from money_saver.models.analytics import MonthlySpending, SpendingTrend
from money_saver.models.budget import BudgetCreate
from money_saver.models.response import ServiceResponse
from money_saver.services import analytics

START = date(2024, 1, 1)
END = date(2024, 3, 31)


@pytest.mark.parametrize("income, expenses, expected", [
    ("1000", "700", 30.0),
    ("0", "500", 0.0),
    ("-10", "0", 0.0),
    ("1000", "0", 100.0),
    ("1000", "1200", -20.0),
    ("3", "2", 33.33),
])
def test_calculate_savings_rate(income, expenses, expected):
    assert analytics.calculate_savings_rate(Decimal(income), Decimal(expenses)) == expected


def test_savings_rate(db, user, account, make_transaction):
    make_transaction("1000.00", date(2024, 1, 5), is_income=True, account_id=account.id)
    make_transaction("700.00", date(2024, 1, 20), account_id=account.id)
    make_transaction("500.00", date(2023, 12, 31))

    rate = analytics.get_savings_rate(db, user.db_id, START, END)

    assert rate.savings_rate == 30.0
    assert rate.total_income == Decimal("1000.00")
    assert rate.total_expenses == Decimal("700.00")
    assert rate.net_savings == Decimal("300.00")


def test_savings_rate_by_account(db, user, account, make_transaction):
    make_transaction("1000.00", date(2024, 1, 5), is_income=True, account_id=account.id)
    make_transaction("700.00", date(2024, 1, 20))

    assert analytics.get_savings_rate(db, user.db_id, START, END, account_id=account.id).savings_rate == 100.0


def test_category_spending(db, user, category, make_transaction):
    dining = CategoryDB(user_id=user.db_id, name="Dining")
    db.add(dining)
    db.commit()

    make_transaction("60.00", date(2024, 2, 1), category_id=category.id)
    make_transaction("15.00", date(2024, 2, 2), category_id=category.id)
    make_transaction("25.00", date(2024, 2, 3), category_id=dining.id)
    make_transaction("900.00", date(2024, 2, 4), category_id=category.id, is_income=True)

    spending = analytics.get_category_spending(db, user.db_id, START, END)

    assert [(s.category_name, s.amount, s.transaction_count) for s in spending] == [
        ("Groceries", Decimal("75.00"), 2),
        ("Dining", Decimal("25.00"), 1),
    ]
    assert spending[0].percentage == 75.0
    assert spending[1].percentage == 25.0


def test_uncategorized_spending(db, user, make_transaction):
    make_transaction("10.00", date(2024, 2, 1))

    spending = analytics.get_category_spending(db, user.db_id, START, END)

    assert spending[0].category_id is None
    assert spending[0].category_name == "Uncategorized"
    assert spending[0].percentage == 100.0


def test_monthly_trends(db, user, make_transaction):
    make_transaction("2000.00", date(2024, 1, 1), is_income=True)
    make_transaction("500.00", date(2024, 1, 15))
    make_transaction("800.00", date(2024, 3, 2))

    trends = analytics.get_monthly_trends(db, user.db_id, START, END)

    assert [t.month for t in trends] == ["2024-01", "2024-03"]
    assert trends[0].net == Decimal("1500.00")
    assert trends[1].income == Decimal("0")
    assert trends[1].net == Decimal("-800.00")


def test_monthly_spending(db, user, make_transaction):
    make_transaction("3000.00", date(2024, 2, 1), is_income=True)
    make_transaction("120.50", date(2024, 2, 29))
    make_transaction("80.00", date(2024, 3, 1))

    spending = analytics.get_monthly_spending(db, user.db_id, 2024, 2)

    assert (spending.year, spending.month) == (2024, 2)
    assert spending.income == Decimal("3000.00")
    assert spending.expenses == Decimal("120.50")
    assert spending.net == Decimal("2879.50")
    assert spending.transaction_count == 2


def _month(expenses):
    return MonthlySpending(year=2024, month=1, income=Decimal("0"), expenses=Decimal(expenses),
                           net=-Decimal(expenses), transaction_count=0)


@pytest.mark.parametrize("current, previous, change, trend", [
    ("150", "100", 50.0, SpendingTrend.INCREASING),
    ("75", "100", -25.0, SpendingTrend.DECREASING),
    ("100", "100", 0.0, SpendingTrend.STABLE),
    ("0", "0", 0.0, SpendingTrend.STABLE),
    ("40", "0", 0.0, SpendingTrend.NO_DATA),
    ("0", "30", -100.0, SpendingTrend.DECREASING),
    ("2", "3", -33.33, SpendingTrend.DECREASING),
])
def test_compare_spending(current, previous, change, trend):
    comparison = analytics.compare_spending(_month(current), _month(previous))

    assert comparison.change_percentage == change
    assert comparison.trend == trend


def test_year_over_year(db, user, make_transaction):
    make_transaction("200.00", date(2023, 6, 10))
    make_transaction("250.00", date(2024, 6, 3))
    make_transaction("999.00", date(2024, 5, 31))

    comparison = analytics.get_year_over_year_comparison(db, user.db_id, 2024, 6)

    assert (comparison.previous.year, comparison.previous.month) == (2023, 6)
    assert comparison.previous.expenses == Decimal("200.00")
    assert comparison.current.expenses == Decimal("250.00")
    assert comparison.change_percentage == 25.0
    assert comparison.trend == SpendingTrend.INCREASING


def test_month_over_month_rolls_back_into_december(db, user, make_transaction):
    make_transaction("400.00", date(2023, 12, 20))
    make_transaction("100.00", date(2024, 1, 5))

    comparison = analytics.get_month_over_month_comparison(db, user.db_id, 2024, 1)

    assert (comparison.previous.year, comparison.previous.month) == (2023, 12)
    assert comparison.change_percentage == -75.0
    assert comparison.trend == SpendingTrend.DECREASING


def test_month_over_month_without_history(db, user, make_transaction):
    make_transaction("100.00", date(2024, 4, 5))

    comparison = analytics.get_month_over_month_comparison(db, user.db_id, 2024, 4)

    assert comparison.trend == SpendingTrend.NO_DATA
    assert comparison.change_percentage == 0.0


def test_category_trends(db, user, category, make_transaction):
    category.color = "#4CAF50"
    db.commit()

    make_transaction("30.00", date(2024, 1, 3), category_id=category.id)
    make_transaction("20.00", date(2024, 1, 9), category_id=category.id)
    make_transaction("70.00", date(2024, 1, 12))
    make_transaction("15.00", date(2024, 3, 1), category_id=category.id)
    make_transaction("500.00", date(2024, 2, 1), is_income=True)

    trends = analytics.get_category_trends(db, user.db_id, START, END)

    assert [(m.month, m.month_label) for m in trends] == [("2024-01", "Jan 2024"), ("2024-03", "Mar 2024")]
    assert [(c.category_name, c.total, c.color) for c in trends[0].categories] == [
        ("Uncategorized", Decimal("70.00"), "#6b7280"),
        ("Groceries", Decimal("50.00"), "#4CAF50"),
    ]
    assert trends[1].categories[0].total == Decimal("15.00")


def test_category_trends_empty(db, user):
    assert analytics.get_category_trends(db, user.db_id, START, END) == []


def test_budget_summary(db, user, category, make_transaction):
    older = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=category.id, amount=Decimal("100"), start_date=date(2024, 1, 1), end_date=date(2024, 1, 31)
    ))
    dining = CategoryDB(user_id=user.db_id, name="Dining")
    db.add(dining)
    db.commit()
    newer = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=dining.id, amount=Decimal("50"), start_date=date(2024, 2, 1), end_date=date(2024, 2, 29)
    ))
    make_transaction("120.00", date(2024, 1, 10), category_id=category.id)

    summary = analytics.get_budget_summary(db, user.db_id)

    assert [s.budget.id for s in summary] == [newer.id, older.id]
    assert summary[0].status == "under"
    assert summary[1].spent == Decimal("120.00")
    assert summary[1].status == "over"


def test_budget_summary_leaves_out_failed_budgets(db, user, category, monkeypatch):
    first = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=category.id, amount=Decimal("100"), start_date=date(2024, 1, 1), end_date=date(2024, 1, 31)
    ))
    second = crud_budget.create_db_budget(db, user.db_id, BudgetCreate(
        category_id=category.id, amount=Decimal("100"), start_date=date(2024, 2, 1), end_date=date(2024, 2, 29)
    ))
    calculate = crud_budget.calculate_budget_status

    def failing_for_first(db, budget_id):
        if budget_id == first.id:
            return ServiceResponse(error="database unavailable")
        return calculate(db, budget_id)

    monkeypatch.setattr(crud_budget, "calculate_budget_status", failing_for_first)

    assert [s.budget.id for s in analytics.get_budget_summary(db, user.db_id)] == [second.id]
