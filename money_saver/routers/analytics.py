from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from money_saver.db.core import get_db
from money_saver.models import analytics as analytics_models
from money_saver.models.budget import BudgetStatus
from money_saver.services import analytics
from money_saver.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/analytics",
    tags=["analytics"],
)

@router.get("/savings-rate", response_model=analytics_models.SavingsRate)
def read_savings_rate(
    start_date: date,
    end_date: date,
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_savings_rate(db, user_id, start_date, end_date, account_id)

@router.get("/category-spending", response_model=List[analytics_models.CategorySpending])
def read_category_spending(
    start_date: date,
    end_date: date,
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_category_spending(db, user_id, start_date, end_date, account_id)

@router.get("/monthly-trends", response_model=List[analytics_models.MonthlyTrend])
def read_monthly_trends(
    start_date: date,
    end_date: date,
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_monthly_trends(db, user_id, start_date, end_date, account_id)

@router.get("/monthly-spending", response_model=analytics_models.MonthlySpending)
def read_monthly_spending(
    year: int = Query(..., ge=1900, le=9999, description="Calendar year"),
    month: int = Query(..., ge=1, le=12, description="Calendar month, 1-12"),
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_monthly_spending(db, user_id, year, month, account_id)

@router.get("/year-over-year", response_model=analytics_models.SpendingComparison)
def read_year_over_year(
    year: int = Query(..., ge=1901, le=9999, description="Calendar year"),
    month: int = Query(..., ge=1, le=12, description="Calendar month, 1-12"),
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_year_over_year_comparison(db, user_id, year, month, account_id)

@router.get("/month-over-month", response_model=analytics_models.SpendingComparison)
def read_month_over_month(
    year: int = Query(..., ge=1901, le=9999, description="Calendar year"),
    month: int = Query(..., ge=1, le=12, description="Calendar month, 1-12"),
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_month_over_month_comparison(db, user_id, year, month, account_id)

@router.get("/category-trends", response_model=List[analytics_models.CategoryTrendMonth])
def read_category_trends(
    start_date: date,
    end_date: date,
    account_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_category_trends(db, user_id, start_date, end_date, account_id)

@router.get("/budget-summary", response_model=List[BudgetStatus])
def read_budget_summary(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return analytics.get_budget_summary(db, user_id)
