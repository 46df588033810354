from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from money_saver.db.core import NotFoundError, get_db
from money_saver.models.transaction import (
    TransactionCreate, TransactionUpdate, TransactionResponse, TransactionFilter, TransactionStats,
    TransactionImport, TransactionImportResult, DuplicateCheckRequest, DuplicateCheckResponse
)
from money_saver.crud.crud_transaction import (
    create_db_transaction,
    read_db_transaction,
    read_db_transactions,
    update_db_transaction,
    delete_db_transaction,
    get_transaction_stats,
    import_transactions,
)
from money_saver.services import duplicate_detection
from money_saver.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/transactions",
    tags=["transactions"],
)

@router.post("/", response_model=TransactionResponse, status_code=status.HTTP_201_CREATED)
def create_transaction(
    transaction: TransactionCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return create_db_transaction(db, user_id, transaction)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

@router.get("/", response_model=List[TransactionResponse])
def read_transactions(
    filters: TransactionFilter = Depends(),
    skip: int = 0,
    limit: int = 100,
    order_by: str = "transaction_date",
    order_desc: bool = True,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return read_db_transactions(db, user_id, filters=filters, skip=skip, limit=limit,
                                order_by=order_by, order_desc=order_desc)

@router.get("/stats", response_model=TransactionStats)
def read_transaction_stats(
    filters: TransactionFilter = Depends(),
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return get_transaction_stats(db, user_id, filters=filters)

@router.post("/import", response_model=TransactionImportResult)
def import_transaction_batch(
    transaction_import: TransactionImport,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Import a batch of transactions, dropping rows that already exist and then
    linking line items to their card charges.
    """
    try:
        return import_transactions(db, user_id, transaction_import)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

@router.post("/duplicates/check", response_model=List[DuplicateCheckResponse])
def check_duplicates(
    candidates: List[DuplicateCheckRequest],
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    results = duplicate_detection.batch_check_duplicates(db, user_id, candidates)
    return [DuplicateCheckResponse.model_validate(r, from_attributes=True) for r in results]

@router.get("/{transaction_id}", response_model=TransactionResponse)
def read_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if db_transaction is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return db_transaction

@router.put("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: int,
    transaction: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return update_db_transaction(db, transaction_id, user_id, transaction)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

@router.delete("/{transaction_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        delete_db_transaction(db, transaction_id, user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
