import enum
from pydantic import BaseModel, Field
from typing import List, Optional
from decimal import Decimal

# ===== ANALYTICS PYDANTIC MODELS =====

class SavingsRate(BaseModel):
    savings_rate: float
    total_income: Decimal
    total_expenses: Decimal
    net_savings: Decimal

class CategorySpending(BaseModel):
    category_id: Optional[int]
    category_name: str
    amount: Decimal
    percentage: float
    transaction_count: int

class MonthlyTrend(BaseModel):
    month: str  # YYYY-MM
    income: Decimal
    expenses: Decimal
    net: Decimal

class MonthlySpending(BaseModel):
    """Totals for one calendar month"""
    year: int
    month: int = Field(..., ge=1, le=12)
    income: Decimal
    expenses: Decimal
    net: Decimal
    transaction_count: int

class SpendingTrend(str, enum.Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    NO_DATA = "no-data"

class SpendingComparison(BaseModel):
    """Expenses of one month against a reference month"""
    current: MonthlySpending
    previous: MonthlySpending
    change_percentage: float
    trend: SpendingTrend

class CategoryTrendEntry(BaseModel):
    category_id: Optional[int]
    category_name: str
    total: Decimal
    color: Optional[str] = None

class CategoryTrendMonth(BaseModel):
    month: str  # YYYY-MM
    month_label: str  # e.g. "Jan 2024"
    categories: List[CategoryTrendEntry]
