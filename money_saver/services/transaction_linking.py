"""
Persistence of parent/child links between transactions.

A child points at its parent through ``parent_transaction_id``; links are one
level deep. Every operation here reports failures through
``LinkOperationResponse`` or ``ServiceResponse`` instead of raising, except
``get_link_suggestions`` which lets store errors through so the auto-link
run can abort.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from money_saver.db.core import TransactionDB, LinkType
from money_saver.models.response import ServiceResponse
from money_saver.models.transaction import TransactionResponse
from money_saver.models.transaction_link import (
    CreateLinkRequest,
    UpdateLinkRequest,
    LinkOperationResponse,
    LinkSuggestion,
    LinkValidationResult,
    MatchScores,
    MatchingConfig,
    SuggestionDecision,
    TransactionHierarchy,
    DEFAULT_MATCHING_CONFIG,
)
from money_saver.services import transaction_matching
from money_saver.services.merchant_filter import is_linkable_amazon_transaction, LINE_ITEM_MERCHANT
from money_saver.logging_config import get_logger

logger = get_logger(__name__)

# Manual links whose amounts differ by more than this fraction get a warning
MANUAL_AMOUNT_WARNING_RATIO = Decimal("0.1")
CANDIDATE_WINDOW_DAYS = 7


def _failure(*errors: str) -> LinkOperationResponse:
    return LinkOperationResponse(success=False, linked_count=0, errors=list(errors))


def _get_user_transaction(db: Session, user_id: int, transaction_id: int) -> Optional[TransactionDB]:
    return db.query(TransactionDB).filter(
        TransactionDB.id == transaction_id,
        TransactionDB.user_id == user_id
    ).first()


def validate_link(request: CreateLinkRequest, parent: TransactionDB,
                  children: Sequence[TransactionDB]) -> LinkValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if parent.parent_transaction_id is not None:
        errors.append("Parent transaction is already a child of another transaction")

    for child in children:
        if child.parent_transaction_id is not None:
            errors.append(f"Child transaction {child.id} is already linked")
        if child.children:
            errors.append(f"Child transaction {child.id} has linked children of its own")

    if request.parent_transaction_id in request.child_transaction_ids:
        errors.append("Transaction cannot link to itself")

    if request.link_type == LinkType.MANUAL and parent.amount:
        children_total = sum((c.amount for c in children), Decimal("0"))
        if abs(parent.amount - children_total) / parent.amount > MANUAL_AMOUNT_WARNING_RATIO:
            warnings.append(
                f"Child amounts (${children_total:.2f}) differ significantly from parent (${parent.amount:.2f})"
            )

    return LinkValidationResult(valid=not errors, errors=errors, warnings=warnings)


def create_link(db: Session, user_id: int, request: CreateLinkRequest) -> LinkOperationResponse:
    """Point every requested child at the parent after validating the link."""
    try:
        parent = _get_user_transaction(db, user_id, request.parent_transaction_id)
        if not parent:
            return _failure(f"Parent transaction {request.parent_transaction_id} not found")

        children = db.query(TransactionDB).filter(
            TransactionDB.id.in_(request.child_transaction_ids),
            TransactionDB.user_id == user_id
        ).all()
        missing = set(request.child_transaction_ids) - {c.id for c in children}
        if missing:
            return _failure(*(f"Child transaction {i} not found" for i in sorted(missing)))

        validation = validate_link(request, parent, children)
        if not validation.valid:
            return LinkOperationResponse(success=False, errors=validation.errors, warnings=validation.warnings)

        metadata: Dict[str, Any] = {**request.metadata, "linked_at": datetime.utcnow().isoformat()}
        for child in children:
            child.parent_transaction_id = parent.id
            child.link_type = request.link_type
            child.link_confidence = request.confidence
            child.link_metadata = dict(metadata)

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to link {request.child_transaction_ids} to {request.parent_transaction_id}: {e}")
        return _failure(str(e))

    logger.info(f"Linked {len(children)} transactions to parent {parent.id} ({request.link_type.value})")
    return LinkOperationResponse(success=True, linked_count=len(children), warnings=validation.warnings)


def remove_link(db: Session, user_id: int, transaction_id: int) -> LinkOperationResponse:
    try:
        child = _get_user_transaction(db, user_id, transaction_id)
        if not child:
            return _failure(f"Transaction {transaction_id} not found")

        child.parent_transaction_id = None
        child.link_type = None
        child.link_confidence = None
        child.link_metadata = {}
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        return _failure(str(e))

    return LinkOperationResponse(success=True, linked_count=1)


def update_link(db: Session, user_id: int, request: UpdateLinkRequest) -> LinkOperationResponse:
    """Change the confidence, type or metadata of an existing link. Metadata is merged."""
    try:
        child = _get_user_transaction(db, user_id, request.transaction_id)
        if not child:
            return _failure(f"Transaction {request.transaction_id} not found")
        if child.parent_transaction_id is None:
            return _failure(f"Transaction {request.transaction_id} is not linked")

        if request.confidence is not None:
            child.link_confidence = request.confidence
        if request.link_type is not None:
            child.link_type = request.link_type
        if request.metadata is not None:
            child.link_metadata = {**(child.link_metadata or {}), **request.metadata}

        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        return _failure(str(e))

    return LinkOperationResponse(success=True, linked_count=1)


def get_linked_transactions(db: Session, user_id: int, parent_id: int) -> ServiceResponse[TransactionHierarchy]:
    try:
        parent = _get_user_transaction(db, user_id, parent_id)
        if not parent:
            return ServiceResponse(error="Parent transaction not found")

        children = db.query(TransactionDB).filter(
            TransactionDB.parent_transaction_id == parent_id
        ).order_by(TransactionDB.transaction_date, TransactionDB.id).all()
    except SQLAlchemyError as e:
        return ServiceResponse(error=f"Failed to fetch children: {e}")

    return ServiceResponse(data=TransactionHierarchy(
        parent=TransactionResponse.model_validate(parent),
        children=[TransactionResponse.model_validate(c) for c in children],
        total_children=len(children),
        total_amount=parent.amount,
        children_amount=sum((c.amount for c in children), Decimal("0")),
    ))


def get_link_suggestions(db: Session, user_id: int, min_confidence: Optional[int] = None,
                         config: MatchingConfig = DEFAULT_MATCHING_CONFIG) -> List[LinkSuggestion]:
    """
    Score the user's unlinked marketplace charges against unlinked line items.

    Only this user's rows are considered. Store errors propagate.
    """
    if min_confidence is not None:
        config = config.model_copy(update={"suggest_threshold": min_confidence})

    unlinked = db.query(TransactionDB).filter(
        TransactionDB.user_id == user_id,
        TransactionDB.parent_transaction_id.is_(None),
        TransactionDB.merchant.isnot(None)
    )

    parents = [
        t for t in unlinked.filter(TransactionDB.merchant != LINE_ITEM_MERCHANT).all()
        if is_linkable_amazon_transaction(t.merchant)
    ]
    children = unlinked.filter(TransactionDB.merchant == LINE_ITEM_MERCHANT).all()

    logger.debug(f"User {user_id}: {len(parents)} parent candidates, {len(children)} line items")

    matches = transaction_matching.find_matching_transactions(parents, children, config)

    return [
        LinkSuggestion(
            parent_transaction=TransactionResponse.model_validate(match.parent_transaction),
            child_transactions=[TransactionResponse.model_validate(c) for c in match.child_transactions],
            confidence=match.total_score,
            confidence_level=match.confidence_level,
            match_scores=MatchScores(
                date_score=match.date_score,
                amount_score=match.amount_score,
                order_group_score=match.order_group_score,
                total=match.total_score,
            ),
            reasons=[
                f"Date proximity: {match.date_score}/{transaction_matching.MAX_DATE_SCORE} points",
                f"Amount match: {match.amount_score}/{transaction_matching.MAX_AMOUNT_SCORE} points",
            ],
        )
        for match in matches
        if match.total_score >= config.suggest_threshold
    ]


def bulk_create_links(db: Session, user_id: int, requests: Sequence[CreateLinkRequest]) -> List[LinkOperationResponse]:
    return [create_link(db, user_id, request) for request in requests]


def find_candidate_transactions(db: Session, user_id: int, parent: TransactionDB,
                                window_days: int = CANDIDATE_WINDOW_DAYS) -> List[TransactionDB]:
    """Unlinked transactions within a few days of the parent, for manual linking."""
    try:
        return db.query(TransactionDB).filter(
            TransactionDB.user_id == user_id,
            TransactionDB.parent_transaction_id.is_(None),
            TransactionDB.id != parent.id,
            TransactionDB.transaction_date >= parent.transaction_date - timedelta(days=window_days),
            TransactionDB.transaction_date <= parent.transaction_date + timedelta(days=window_days)
        ).order_by(TransactionDB.transaction_date).all()
    except SQLAlchemyError as e:
        logger.error(f"Failed to fetch link candidates for transaction {parent.id}: {e}")
        return []


def accept_suggestion(db: Session, user_id: int, decision: SuggestionDecision) -> LinkOperationResponse:
    metadata: Dict[str, Any] = {"source": "suggestion"}
    if decision.match_scores is not None:
        metadata["match_scores"] = decision.match_scores.model_dump()

    return create_link(db, user_id, CreateLinkRequest(
        parent_transaction_id=decision.parent_transaction_id,
        child_transaction_ids=decision.child_transaction_ids,
        link_type=LinkType.MANUAL,
        confidence=decision.confidence,
        metadata=metadata,
    ))


def reject_suggestion(decision: SuggestionDecision) -> LinkOperationResponse:
    # Pending suggestions are never stored, so there is nothing to discard
    logger.info(f"Suggestion for parent {decision.parent_transaction_id} rejected")
    return LinkOperationResponse(success=True, linked_count=0)
