from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date
from decimal import Decimal
from enum import Enum

from money_saver.db.core import LinkType
from money_saver.models.transaction import TransactionResponse

# ===== TRANSACTION LINKING PYDANTIC MODELS =====

class ConfidenceLevel(str, Enum):
    EXACT = "EXACT"
    PARTIAL = "PARTIAL"
    FUZZY = "FUZZY"
    UNMATCHED = "UNMATCHED"


def get_confidence_level(score: float) -> ConfidenceLevel:
    """Bucket a 0-100 confidence score. Boundaries are inclusive lower bounds."""
    if score >= 90:
        return ConfidenceLevel.EXACT
    if score >= 70:
        return ConfidenceLevel.PARTIAL
    if score >= 50:
        return ConfidenceLevel.FUZZY
    return ConfidenceLevel.UNMATCHED


class MatchingConfig(BaseModel):
    """Tuning knobs for parent/child matching"""
    date_window: int = Field(30, gt=0, description="Date window in days (+/-)")
    amount_tolerance: Decimal = Field(Decimal("3.00"), gt=0, description="Amount tolerance in dollars")
    auto_link_threshold: int = Field(90, ge=0, le=100, description="Minimum confidence to auto-link")
    suggest_threshold: int = Field(70, ge=0, le=100, description="Minimum confidence to suggest")
    enable_merchant_matching: bool = True
    merchant_keywords: List[str] = Field(default_factory=lambda: ["amazon", "amzn", "amazon.com", "amazon marketplace"])

    model_config = {"frozen": True}


DEFAULT_MATCHING_CONFIG = MatchingConfig()


class MatchScores(BaseModel):
    date_score: int = Field(..., ge=0, le=40)
    amount_score: int = Field(..., ge=0, le=50)
    order_group_score: int = Field(..., ge=0, le=10)
    total: int = Field(..., ge=0, le=100)


class TransactionGroup(BaseModel):
    """Line items that belong to one order, or that share a date when they carry no order number"""
    transaction_date: date
    transactions: List[Any] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")


class MatchCandidate(BaseModel):
    """A scored (parent, line item group) pair from the matching engine"""
    parent_transaction: Any
    child_transactions: List[Any]
    date_score: int
    amount_score: int
    order_group_score: int
    total_score: int
    confidence_level: ConfidenceLevel


class LinkSuggestion(BaseModel):
    parent_transaction: TransactionResponse
    child_transactions: List[TransactionResponse]
    confidence: int
    confidence_level: ConfidenceLevel
    match_scores: MatchScores
    reasons: List[str] = []

    class Config:
        from_attributes = True


class CreateLinkRequest(BaseModel):
    parent_transaction_id: int
    child_transaction_ids: List[int] = Field(..., min_length=1)
    link_type: LinkType = LinkType.MANUAL
    confidence: Optional[int] = Field(None, ge=0, le=100)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class UpdateLinkRequest(BaseModel):
    transaction_id: int
    confidence: Optional[int] = Field(None, ge=0, le=100)
    link_type: Optional[LinkType] = None
    metadata: Optional[Dict[str, Any]] = None


class LinkOperationResponse(BaseModel):
    success: bool
    linked_count: int = 0
    errors: List[str] = []
    warnings: List[str] = []


class LinkValidationResult(BaseModel):
    valid: bool
    errors: List[str] = []
    warnings: List[str] = []


class TransactionHierarchy(BaseModel):
    parent: TransactionResponse
    children: List[TransactionResponse]
    total_children: int
    total_amount: Decimal
    children_amount: Decimal

    class Config:
        from_attributes = True


class AutoLinkResult(BaseModel):
    """Outcome of one automatic linking run"""
    success: bool
    total_matches: int = 0
    auto_linked_count: int = 0
    suggested_count: int = 0
    errors: List[str] = []
    auto_linked_transactions: List[LinkSuggestion] = []
    suggested_transactions: List[LinkSuggestion] = []


class SuggestionDecision(BaseModel):
    """Accept or reject a pending suggestion from the review panel"""
    parent_transaction_id: int
    child_transaction_ids: List[int] = Field(..., min_length=1)
    confidence: Optional[int] = Field(None, ge=0, le=100)
    match_scores: Optional[MatchScores] = None
