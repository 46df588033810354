from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal

from money_saver.db.core import AccountType


# ===== ACCOUNT PYDANTIC MODELS =====

VALID_ACCOUNT_TYPES = [t.value for t in AccountType]


def _validate_account_type(v: str) -> str:
    if v not in VALID_ACCOUNT_TYPES:
        raise ValueError(f"Invalid account type: {v}. Must be one of: {', '.join(VALID_ACCOUNT_TYPES)}")
    return v


class AccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Account name")
    account_type: str = Field(..., description="One of checking, savings, credit_card, investment, other")
    balance: Optional[Decimal] = Field(None, description="Starting balance")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip()

    @field_validator('account_type')
    @classmethod
    def validate_account_type(cls, v: str) -> str:
        return _validate_account_type(v)

    @field_validator('balance')
    @classmethod
    def validate_balance(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        return round(v, 2) if v is not None else v


class AccountUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    account_type: Optional[str] = None
    balance: Optional[Decimal] = None

    @field_validator('account_type')
    @classmethod
    def validate_account_type(cls, v: Optional[str]) -> Optional[str]:
        return _validate_account_type(v) if v is not None else v


class AccountResponse(BaseModel):
    id: int
    name: str
    account_type: AccountType
    balance: Optional[Decimal]
    last_synced: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AccountBalance(BaseModel):
    account_id: int
    balance: Decimal
    transaction_count: int
