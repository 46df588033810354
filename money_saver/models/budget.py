from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime, date
from decimal import Decimal

from money_saver.db.core import BudgetPeriod

# ===== BUDGET PYDANTIC MODELS =====

class BudgetCreate(BaseModel):
    category_id: int = Field(..., description="The ID of the budgeted category")
    amount: Decimal = Field(..., description="Spending limit for the period")
    period: BudgetPeriod = Field(default=BudgetPeriod.MONTHLY, description="Budget period")
    start_date: date = Field(..., description="Budget start date")
    end_date: Optional[date] = Field(None, description="Budget end date, open-ended when omitted")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError('amount must be greater than zero')
        return round(v, 2)

    @field_validator('end_date')
    @classmethod
    def validate_end_date(cls, v: Optional[date], info) -> Optional[date]:
        if v is not None and 'start_date' in info.data and v <= info.data['start_date']:
            raise ValueError('end_date must be after start_date')
        return v

class BudgetUpdate(BaseModel):
    amount: Optional[Decimal] = None
    period: Optional[BudgetPeriod] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        if v <= 0:
            raise ValueError('amount must be greater than zero')
        return round(v, 2)

class BudgetResponse(BaseModel):
    id: int
    category_id: int
    amount: Decimal
    period: BudgetPeriod
    start_date: date
    end_date: Optional[date]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True

class BudgetStatus(BaseModel):
    """Budget spending computed from transactions"""
    budget: BudgetResponse
    spent: Decimal
    remaining: Decimal
    percentage: int
    status: str  # "under", "at", "over"

class BudgetSpend(BaseModel):
    """Expense total against a budget's limit, percentage rounded half-up"""
    spent: Decimal
    limit: Decimal
    percentage: int
