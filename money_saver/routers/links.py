from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import Dict, List, Optional

from money_saver.db.core import get_db, TransactionDB
from money_saver.models.transaction import TransactionResponse
from money_saver.models.transaction_link import (
    AutoLinkResult,
    CreateLinkRequest,
    LinkOperationResponse,
    LinkSuggestion,
    LinkValidationResult,
    SuggestionDecision,
    TransactionHierarchy,
    UpdateLinkRequest,
)
from money_saver.services import automatic_linking, transaction_linking
from money_saver.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/links",
    tags=["links"],
)


def _raise_on_failure(result: LinkOperationResponse) -> LinkOperationResponse:
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="; ".join(result.errors))
    return result


@router.post("/", response_model=LinkOperationResponse, status_code=status.HTTP_201_CREATED)
def create_link(
    request: CreateLinkRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return _raise_on_failure(transaction_linking.create_link(db, user_id, request))

@router.post("/bulk", response_model=List[LinkOperationResponse])
def bulk_create_links(
    requests: List[CreateLinkRequest],
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Create several links in order. Each request succeeds or fails on its own.
    """
    return transaction_linking.bulk_create_links(db, user_id, requests)

@router.post("/validate", response_model=LinkValidationResult)
def validate_link(
    request: CreateLinkRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    parent = db.query(TransactionDB).filter(
        TransactionDB.id == request.parent_transaction_id,
        TransactionDB.user_id == user_id
    ).first()
    if not parent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parent transaction not found")

    children = db.query(TransactionDB).filter(
        TransactionDB.id.in_(request.child_transaction_ids),
        TransactionDB.user_id == user_id
    ).all()
    return transaction_linking.validate_link(request, parent, children)

@router.put("/", response_model=LinkOperationResponse)
def update_link(
    request: UpdateLinkRequest,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return _raise_on_failure(transaction_linking.update_link(db, user_id, request))

@router.get("/suggestions", response_model=List[LinkSuggestion])
def read_link_suggestions(
    min_confidence: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Pending parent/child matches for review, highest confidence first.
    """
    try:
        return transaction_linking.get_link_suggestions(db, user_id, min_confidence)
    except SQLAlchemyError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

@router.post("/suggestions/accept", response_model=LinkOperationResponse)
def accept_suggestion(
    decision: SuggestionDecision,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return _raise_on_failure(transaction_linking.accept_suggestion(db, user_id, decision))

@router.post("/suggestions/reject", response_model=LinkOperationResponse)
def reject_suggestion(decision: SuggestionDecision):
    return transaction_linking.reject_suggestion(decision)

@router.post("/auto", response_model=AutoLinkResult)
def run_auto_link(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Link every high-confidence match and return the rest as suggestions.
    """
    return automatic_linking.auto_link_transactions(db, user_id)

@router.get("/auto/pending")
def read_auto_link_pending(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
) -> Dict[str, bool]:
    return {"should_run": automatic_linking.should_run_auto_link(db, user_id)}

@router.get("/{parent_id}", response_model=TransactionHierarchy)
def read_linked_transactions(
    parent_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    result = transaction_linking.get_linked_transactions(db, user_id, parent_id)
    if result.error:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=result.error)
    return result.data

@router.get("/{parent_id}/candidates", response_model=List[TransactionResponse])
def read_link_candidates(
    parent_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Unlinked transactions within a week of the parent, for manual linking.
    """
    parent = db.query(TransactionDB).filter(
        TransactionDB.id == parent_id,
        TransactionDB.user_id == user_id
    ).first()
    if not parent:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Parent transaction not found")
    return transaction_linking.find_candidate_transactions(db, user_id, parent)

@router.delete("/{transaction_id}", response_model=LinkOperationResponse)
def remove_link(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return _raise_on_failure(transaction_linking.remove_link(db, user_id, transaction_id))
