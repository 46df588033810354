import calendar
from collections import OrderedDict
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from sqlalchemy.orm import Session, joinedload

from money_saver.db.core import TransactionDB
from money_saver.crud import crud_budget
from money_saver.models.analytics import (
    SavingsRate, CategorySpending, MonthlyTrend, MonthlySpending, SpendingComparison, SpendingTrend,
    CategoryTrendEntry, CategoryTrendMonth
)
from money_saver.models.budget import BudgetStatus
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

UNCATEGORIZED = "Uncategorized"
ZERO = Decimal("0")
UNCATEGORIZED_COLOR = "#6b7280"


def _percentage(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return float((part / whole * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _transactions_between(db: Session, user_id: int, start_date: date, end_date: date,
                          account_id: Optional[int] = None):
    query = db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.transaction_date >= start_date,
        TransactionDB.transaction_date <= end_date
    )
    if account_id:
        query = query.filter(TransactionDB.account_id == account_id)
    return query


def calculate_savings_rate(total_income: Decimal, total_expenses: Decimal) -> float:
    """Percent of income kept, to 2 places. No income means a rate of 0."""
    if total_income <= 0:
        return 0.0
    return _percentage(total_income - total_expenses, total_income)


def get_savings_rate(db: Session, user_id: int, start_date: date, end_date: date,
                     account_id: Optional[int] = None) -> SavingsRate:
    transactions = _transactions_between(db, user_id, start_date, end_date, account_id).all()

    total_income = sum((t.amount for t in transactions if t.is_income), ZERO)
    total_expenses = sum((t.amount for t in transactions if not t.is_income), ZERO)

    return SavingsRate(
        savings_rate=calculate_savings_rate(total_income, total_expenses),
        total_income=total_income,
        total_expenses=total_expenses,
        net_savings=total_income - total_expenses,
    )


def get_category_spending(db: Session, user_id: int, start_date: date, end_date: date,
                          account_id: Optional[int] = None) -> List[CategorySpending]:
    """Expense totals per category, largest first"""
    expenses = _transactions_between(db, user_id, start_date, end_date, account_id).filter(
        TransactionDB.is_income.is_(False)
    ).options(joinedload(TransactionDB.category)).all()

    totals: Dict[Optional[int], dict] = {}
    for t in expenses:
        entry = totals.setdefault(t.category_id, {
            "name": t.category.name if t.category else UNCATEGORIZED,
            "amount": ZERO,
            "count": 0,
        })
        entry["amount"] += t.amount
        entry["count"] += 1

    grand_total = sum((e["amount"] for e in totals.values()), ZERO)

    spending = [
        CategorySpending(
            category_id=category_id,
            category_name=entry["name"],
            amount=entry["amount"],
            percentage=_percentage(entry["amount"], grand_total),
            transaction_count=entry["count"],
        )
        for category_id, entry in totals.items()
    ]
    return sorted(spending, key=lambda s: s.amount, reverse=True)


def get_monthly_trends(db: Session, user_id: int, start_date: date, end_date: date,
                       account_id: Optional[int] = None) -> List[MonthlyTrend]:
    """Income, expenses and net per calendar month, oldest first"""
    transactions = _transactions_between(db, user_id, start_date, end_date, account_id).order_by(
        TransactionDB.transaction_date
    ).all()

    months: "OrderedDict[str, Dict[str, Decimal]]" = OrderedDict()
    for t in transactions:
        bucket = months.setdefault(t.transaction_date.strftime("%Y-%m"), {"income": ZERO, "expenses": ZERO})
        if t.is_income:
            bucket["income"] += t.amount
        else:
            bucket["expenses"] += t.amount

    return [
        MonthlyTrend(month=month, income=b["income"], expenses=b["expenses"], net=b["income"] - b["expenses"])
        for month, b in months.items()
    ]


def get_monthly_spending(db: Session, user_id: int, year: int, month: int,
                         account_id: Optional[int] = None) -> MonthlySpending:
    last_day = calendar.monthrange(year, month)[1]
    transactions = _transactions_between(
        db, user_id, date(year, month, 1), date(year, month, last_day), account_id
    ).all()

    income = sum((t.amount for t in transactions if t.is_income), ZERO)
    expenses = sum((t.amount for t in transactions if not t.is_income), ZERO)

    return MonthlySpending(
        year=year,
        month=month,
        income=income,
        expenses=expenses,
        net=income - expenses,
        transaction_count=len(transactions),
    )


def compare_spending(current: MonthlySpending, previous: MonthlySpending) -> SpendingComparison:
    """
    Percent change in expenses from ``previous`` to ``current``.

    Two empty months are stable. A current month measured against an empty
    reference has no baseline, so its trend is ``no-data`` with a change of 0.
    """
    if previous.expenses == 0:
        trend = SpendingTrend.STABLE if current.expenses == 0 else SpendingTrend.NO_DATA
        change = 0.0
    else:
        change = float(((current.expenses - previous.expenses) / previous.expenses * 100).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        ))
        if change > 0:
            trend = SpendingTrend.INCREASING
        elif change < 0:
            trend = SpendingTrend.DECREASING
        else:
            trend = SpendingTrend.STABLE

    return SpendingComparison(current=current, previous=previous, change_percentage=change, trend=trend)


def get_year_over_year_comparison(db: Session, user_id: int, year: int, month: int,
                                  account_id: Optional[int] = None) -> SpendingComparison:
    """A month against the same month one year earlier"""
    return compare_spending(
        get_monthly_spending(db, user_id, year, month, account_id),
        get_monthly_spending(db, user_id, year - 1, month, account_id),
    )


def get_month_over_month_comparison(db: Session, user_id: int, year: int, month: int,
                                    account_id: Optional[int] = None) -> SpendingComparison:
    """A month against the month before it; January compares with December of the prior year"""
    previous_year, previous_month = (year - 1, 12) if month == 1 else (year, month - 1)
    return compare_spending(
        get_monthly_spending(db, user_id, year, month, account_id),
        get_monthly_spending(db, user_id, previous_year, previous_month, account_id),
    )


def get_category_trends(db: Session, user_id: int, start_date: date, end_date: date,
                        account_id: Optional[int] = None) -> List[CategoryTrendMonth]:
    """Expense totals per category for each month that has expenses, oldest month first"""
    expenses = _transactions_between(db, user_id, start_date, end_date, account_id).filter(
        TransactionDB.is_income.is_(False)
    ).options(joinedload(TransactionDB.category)).order_by(TransactionDB.transaction_date).all()

    months: "OrderedDict[str, Dict[Optional[int], CategoryTrendEntry]]" = OrderedDict()
    labels: Dict[str, str] = {}
    for t in expenses:
        key = t.transaction_date.strftime("%Y-%m")
        labels.setdefault(key, t.transaction_date.strftime("%b %Y"))
        categories = months.setdefault(key, {})

        entry = categories.get(t.category_id)
        if entry is None:
            entry = categories[t.category_id] = CategoryTrendEntry(
                category_id=t.category_id,
                category_name=t.category.name if t.category else UNCATEGORIZED,
                total=ZERO,
                color=(t.category.color if t.category else None) or UNCATEGORIZED_COLOR,
            )
        entry.total += t.amount

    return [
        CategoryTrendMonth(
            month=key,
            month_label=labels[key],
            categories=sorted(categories.values(), key=lambda e: e.total, reverse=True),
        )
        for key, categories in months.items()
    ]


def get_budget_summary(db: Session, user_id: int) -> List[BudgetStatus]:
    """Status of every budget the user has, newest start date first. Budgets that fail to compute are left out."""
    summary = []
    for budget in crud_budget.read_db_budgets(db, user_id, limit=None):
        try:
            summary.append(crud_budget.get_budget_status(db, budget.id, user_id))
        except ValueError as e:
            logger.warning(f"Skipping budget {budget.id} in summary: {e}")
    return summary
