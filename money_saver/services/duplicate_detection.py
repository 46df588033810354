"""
Duplicate detection for imported transactions.

A candidate is a duplicate of an existing transaction when the dates match
exactly, the amounts agree within one cent, and either the merchant or the
description agrees (case-insensitive, whitespace trimmed). The first matching
row in the pool wins; there is no best-match search.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from money_saver.db.core import TransactionDB
from money_saver.models.transaction import DuplicateCheckResult, DuplicateStats
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")

EXACT_MATCH_CONFIDENCE = 1.0
MERCHANT_MATCH_CONFIDENCE = 0.9
DESCRIPTION_MATCH_CONFIDENCE = 0.8


NOT_A_DUPLICATE = DuplicateCheckResult(is_duplicate=False, confidence=0)


def normalize_date(value: Any) -> str:
    """Return the plain YYYY-MM-DD form of a date, datetime or ISO string."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text.split("T")[0].split(" ")[0]


def _normalize_text(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def check_against_list(candidate: Any, existing_transactions: Sequence[Any]) -> DuplicateCheckResult:
    """
    Check one candidate against a pool of existing transactions.

    ``candidate`` and the pool entries only need ``transaction_date``,
    ``amount``, ``merchant`` and ``description`` attributes.
    """
    candidate_date = normalize_date(candidate.transaction_date)
    candidate_amount = _to_decimal(candidate.amount)
    candidate_merchant = _normalize_text(candidate.merchant)
    candidate_description = _normalize_text(candidate.description)

    for existing in existing_transactions:
        if normalize_date(existing.transaction_date) != candidate_date:
            continue

        if abs(_to_decimal(existing.amount) - candidate_amount) > AMOUNT_TOLERANCE:
            continue

        existing_merchant = _normalize_text(existing.merchant)
        merchant_match = existing_merchant == candidate_merchant
        description_match = _normalize_text(existing.description) == candidate_description

        if merchant_match and description_match:
            return DuplicateCheckResult(is_duplicate=True, confidence=EXACT_MATCH_CONFIDENCE, matched_transaction=existing)

        if merchant_match:
            return DuplicateCheckResult(is_duplicate=True, confidence=MERCHANT_MATCH_CONFIDENCE, matched_transaction=existing)

        # Description-only matches need merchant data on both sides
        if description_match and existing_merchant and candidate_merchant:
            return DuplicateCheckResult(is_duplicate=True, confidence=DESCRIPTION_MATCH_CONFIDENCE, matched_transaction=existing)

    return NOT_A_DUPLICATE


def _as_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(normalize_date(value))


def check_duplicate(db: Session, user_id: int, candidate: Any,
                    existing_transactions: Optional[Sequence[Any]] = None) -> DuplicateCheckResult:
    """Check a single transaction, querying the store when no pool is given."""
    if existing_transactions is not None:
        return check_against_list(candidate, existing_transactions)

    try:
        pool = db.query(TransactionDB).filter(
            TransactionDB.user_id == user_id,
            TransactionDB.transaction_date == _as_date(candidate.transaction_date)
        ).all()
    except SQLAlchemyError as e:
        logger.warning(f"Duplicate lookup failed for user {user_id}, treating as new: {e}")
        return NOT_A_DUPLICATE

    return check_against_list(candidate, pool)


def batch_check_duplicates(db: Session, user_id: int, candidates: Sequence[Any]) -> List[DuplicateCheckResult]:
    """
    Check many candidates with a single store query.

    The pool is every transaction between the earliest and latest candidate
    dates. Results are returned in input order. A store failure marks every
    candidate as new rather than failing the import.
    """
    if not candidates:
        return []

    dates = [_as_date(c.transaction_date) for c in candidates]

    try:
        pool = db.query(TransactionDB).filter(
            TransactionDB.user_id == user_id,
            TransactionDB.transaction_date >= min(dates),
            TransactionDB.transaction_date <= max(dates)
        ).order_by(TransactionDB.transaction_date.desc(), TransactionDB.id).all()
    except SQLAlchemyError as e:
        logger.warning(f"Batch duplicate lookup failed for user {user_id}, treating {len(candidates)} rows as new: {e}")
        return [NOT_A_DUPLICATE for _ in candidates]

    logger.debug(f"Checking {len(candidates)} candidates against {len(pool)} existing transactions")
    return [check_against_list(candidate, pool) for candidate in candidates]


def get_duplicate_stats(results: Sequence[DuplicateCheckResult]) -> DuplicateStats:
    total = len(results)
    duplicates = sum(1 for r in results if r.is_duplicate)

    return DuplicateStats(
        total=total,
        duplicates=duplicates,
        new=total - duplicates,
        duplicate_percentage=(duplicates / total) * 100 if total > 0 else 0.0,
    )
