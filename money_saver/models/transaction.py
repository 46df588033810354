from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from decimal import Decimal

from money_saver.db.core import LinkType

# ===== TRANSACTION PYDANTIC MODELS =====

class TransactionCreate(BaseModel):
    transaction_date: date = Field(..., description="Date of the transaction")
    amount: Decimal = Field(..., description="Transaction amount, always positive")
    merchant: Optional[str] = Field(None, max_length=255, description="Merchant name")
    description: str = Field("", max_length=500, description="Transaction description")
    category_id: Optional[int] = Field(None, description="The ID of the transaction's category")
    account_id: Optional[int] = Field(None, description="Account ID for this transaction")
    receipt_url: Optional[str] = Field(None, description="Link to a stored receipt")
    is_income: bool = Field(False, description="True for income, False for expenses")
    order_id: Optional[str] = Field(None, max_length=100, description="Retailer order number")

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError('amount must be greater than zero')
        return round(v, 2)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: str) -> str:
        return v.strip() if v else ""

    @field_validator('merchant')
    @classmethod
    def validate_merchant(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class TransactionUpdate(BaseModel):
    """Update transaction - all fields optional"""
    transaction_date: Optional[date] = None
    amount: Optional[Decimal] = None
    merchant: Optional[str] = Field(None, max_length=255)
    description: Optional[str] = Field(None, max_length=500)
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    receipt_url: Optional[str] = None
    is_income: Optional[bool] = None
    order_id: Optional[str] = Field(None, max_length=100)

    @field_validator('transaction_date', 'amount', 'description', 'is_income', mode='before')
    @classmethod
    def reject_null(cls, v, info):
        # These columns are NOT NULL; omit the field to leave it unchanged
        if v is None:
            raise ValueError(f'{info.field_name} cannot be null')
        return v

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is None:
            return v
        if v <= 0:
            raise ValueError('amount must be greater than zero')
        return round(v, 2)

    @field_validator('description')
    @classmethod
    def validate_description(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v

    @field_validator('merchant')
    @classmethod
    def validate_merchant(cls, v: Optional[str]) -> Optional[str]:
        return v.strip() if v else v


class TransactionResponse(BaseModel):
    """Transaction data returned to client"""
    id: int
    account_id: Optional[int]
    category_id: Optional[int]
    transaction_date: date
    amount: Decimal
    merchant: Optional[str]
    description: str
    receipt_url: Optional[str] = None
    is_income: bool
    order_id: Optional[str] = None
    parent_transaction_id: Optional[int] = None
    link_type: Optional[LinkType] = None
    link_confidence: Optional[int] = None
    link_metadata: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class TransactionImport(BaseModel):
    """Bulk transaction import"""
    account_id: Optional[int] = None
    transactions: List[TransactionCreate] = Field(..., min_length=1)
    skip_duplicates: bool = Field(default=True, description="Drop rows that already exist instead of importing them")
    auto_link: bool = Field(default=True, description="Run automatic linking after the import")
    auto_categorize: bool = Field(default=False, description="Assign a category by keyword to expense rows without one")


class TransactionFilter(BaseModel):
    """Filter parameters for transaction queries"""
    account_id: Optional[int] = None
    category_id: Optional[int] = None
    merchant: Optional[str] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    amount_min: Optional[Decimal] = None
    amount_max: Optional[Decimal] = None
    is_income: Optional[bool] = None
    search: Optional[str] = None
    unlinked_only: bool = False


class TransactionStats(BaseModel):
    """Transaction statistics"""
    total_income: Decimal
    total_expenses: Decimal
    net_balance: Decimal
    transaction_count: int


# ===== DUPLICATE DETECTION MODELS =====

class DuplicateCheckRequest(BaseModel):
    transaction_date: date
    amount: Decimal
    merchant: Optional[str] = None
    description: str = ""


class DuplicateCheckResult(BaseModel):
    """Outcome of checking one candidate; ``matched_transaction`` is the pool entry that matched"""
    is_duplicate: bool
    confidence: float
    matched_transaction: Optional[Any] = None


class DuplicateCheckResponse(DuplicateCheckResult):
    matched_transaction: Optional[TransactionResponse] = None

    class Config:
        from_attributes = True


class DuplicateStats(BaseModel):
    total: int
    duplicates: int
    new: int
    duplicate_percentage: float


class TransactionImportResult(BaseModel):
    """Outcome of a bulk import"""
    created: List[TransactionResponse]
    skipped: List[DuplicateCheckRequest]
    duplicate_stats: DuplicateStats
    auto_linked_count: int = 0
    suggested_count: int = 0
    categorized_count: int = 0
