from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import or_, desc, asc
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from money_saver.db.core import TransactionDB, AccountDB, UserDB, CategoryDB, AlertEventDB, NotFoundError
from money_saver.models.transaction import (
    TransactionCreate, TransactionUpdate, TransactionFilter, TransactionStats,
    TransactionImport, TransactionImportResult, TransactionResponse, DuplicateCheckRequest
)
from money_saver.crud.crud_category import read_db_categories
from money_saver.services import alert_detection, automatic_linking, category_mapping, duplicate_detection
from money_saver.logging_config import get_logger

logger = get_logger(__name__)


# ===== UTILITY FUNCTIONS =====

def _verify_user(db: Session, user_id: int) -> UserDB:
    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")
    return user


def _verify_references(db: Session, user_id: int, account_id: Optional[int], category_id: Optional[int]):
    """Account must belong to the user; category must be a system category or the user's own"""
    if account_id:
        account = db.query(AccountDB).filter(
            AccountDB.id == account_id,
            AccountDB.user_id == user_id
        ).first()
        if not account:
            raise NotFoundError(f"Account with id {account_id} not found")

    if category_id:
        category = db.query(CategoryDB).filter(
            CategoryDB.id == category_id,
            or_(CategoryDB.user_id.is_(None), CategoryDB.user_id == user_id)
        ).first()
        if not category:
            raise NotFoundError(f"Category with id {category_id} not found")


def _apply_filters(query, filters: Optional[TransactionFilter]):
    if not filters:
        return query

    if filters.account_id:
        query = query.filter(TransactionDB.account_id == filters.account_id)

    if filters.category_id:
        query = query.filter(TransactionDB.category_id == filters.category_id)

    if filters.merchant:
        query = query.filter(TransactionDB.merchant.ilike(f"%{filters.merchant}%"))

    if filters.date_from:
        query = query.filter(TransactionDB.transaction_date >= filters.date_from)

    if filters.date_to:
        query = query.filter(TransactionDB.transaction_date <= filters.date_to)

    if filters.amount_min is not None:
        query = query.filter(TransactionDB.amount >= filters.amount_min)

    if filters.amount_max is not None:
        query = query.filter(TransactionDB.amount <= filters.amount_max)

    if filters.is_income is not None:
        query = query.filter(TransactionDB.is_income == filters.is_income)

    if filters.search:
        query = query.filter(
            or_(
                TransactionDB.description.ilike(f"%{filters.search}%"),
                TransactionDB.merchant.ilike(f"%{filters.search}%")
            )
        )

    if filters.unlinked_only:
        query = query.filter(TransactionDB.parent_transaction_id.is_(None))

    return query


def _new_transaction(user_id: int, transaction_data: TransactionCreate) -> TransactionDB:
    return TransactionDB(
        user_id=user_id,
        account_id=transaction_data.account_id,
        category_id=transaction_data.category_id,
        transaction_date=transaction_data.transaction_date,
        amount=transaction_data.amount,
        merchant=transaction_data.merchant,
        description=transaction_data.description,
        receipt_url=transaction_data.receipt_url,
        is_income=transaction_data.is_income,
        order_id=transaction_data.order_id,
        link_metadata={},
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )


def _run_alerts(db: Session, db_transaction: TransactionDB):
    # Alert failures must never fail the write that triggered them
    try:
        alert_detection.run_transaction_alerts(db, db_transaction)
    except Exception:
        logger.exception(f"Alert detection failed for transaction {db_transaction.id}")


# ===== DATABASE OPERATIONS =====

def create_db_transaction(db: Session, user_id: int, transaction_data: TransactionCreate) -> TransactionDB:
    """Create a new transaction and run alert detection on it"""

    _verify_user(db, user_id)
    _verify_references(db, user_id, transaction_data.account_id, transaction_data.category_id)

    db_transaction = _new_transaction(user_id, transaction_data)

    try:
        db.add(db_transaction)
        db.commit()
        db.refresh(db_transaction)
    except IntegrityError:
        db.rollback()
        raise ValueError("Transaction creation failed due to database constraint")

    _run_alerts(db, db_transaction)
    return db_transaction


def read_db_transaction(db: Session, transaction_id: int, user_id: Optional[int] = None) -> Optional[TransactionDB]:
    """Read a transaction by ID, optionally filtering by user"""

    query = db.query(TransactionDB).filter(TransactionDB.id == transaction_id)

    if user_id:
        query = query.filter(TransactionDB.user_id == user_id)

    return query.first()


def read_db_transactions(db: Session, user_id: int, filters: Optional[TransactionFilter] = None,
                         skip: int = 0, limit: int = 100, order_by: str = "transaction_date",
                         order_desc: bool = True) -> List[TransactionDB]:
    """Read transactions with filtering and pagination"""

    query = _apply_filters(db.query(TransactionDB).filter(TransactionDB.user_id == user_id), filters)

    # Only plain columns are sortable; relationship names fall back to the default
    if order_by in TransactionDB.__table__.columns.keys():
        order_column = getattr(TransactionDB, order_by)
        query = query.order_by(desc(order_column) if order_desc else asc(order_column), desc(TransactionDB.id))
    else:
        query = query.order_by(desc(TransactionDB.transaction_date), desc(TransactionDB.id))

    return query.options(joinedload(TransactionDB.category)).offset(skip).limit(limit).all()


def get_transactions_count(db: Session, user_id: int, filters: Optional[TransactionFilter] = None) -> int:
    """Get count of transactions for pagination"""

    query = db.query(TransactionDB).filter(TransactionDB.user_id == user_id)
    return _apply_filters(query, filters).count()


def update_db_transaction(db: Session, transaction_id: int, user_id: int,
                          transaction_updates: TransactionUpdate) -> TransactionDB:
    """Update an existing transaction"""

    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")

    update_data = transaction_updates.model_dump(exclude_unset=True)
    _verify_references(db, user_id, update_data.get('account_id'), update_data.get('category_id'))

    for field, value in update_data.items():
        setattr(db_transaction, field, value)

    db_transaction.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_transaction)
        return db_transaction
    except IntegrityError:
        db.rollback()
        raise ValueError("Transaction update failed due to database constraint")


def delete_db_transaction(db: Session, transaction_id: int, user_id: int) -> bool:
    """Delete a transaction. Its linked children become unlinked."""

    db_transaction = read_db_transaction(db, transaction_id, user_id)
    if not db_transaction:
        raise NotFoundError(f"Transaction with id {transaction_id} not found")

    try:
        for child in db_transaction.children:
            child.parent_transaction_id = None
            child.link_type = None
            child.link_confidence = None
            child.link_metadata = {}

        db.query(AlertEventDB).filter(AlertEventDB.transaction_id == transaction_id).delete(synchronize_session=False)
        db.delete(db_transaction)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to delete transaction: {str(e)}")


def get_transaction_stats(db: Session, user_id: int, filters: Optional[TransactionFilter] = None) -> TransactionStats:
    """Get income and expense totals for a user"""

    query = _apply_filters(db.query(TransactionDB).filter(TransactionDB.user_id == user_id), filters)
    transactions = query.all()

    total_income = Decimal('0.00')
    total_expenses = Decimal('0.00')

    for transaction in transactions:
        if transaction.is_income:
            total_income += transaction.amount
        else:
            total_expenses += transaction.amount

    return TransactionStats(
        total_income=total_income,
        total_expenses=total_expenses,
        net_balance=total_income - total_expenses,
        transaction_count=len(transactions)
    )


def import_transactions(db: Session, user_id: int, transaction_import: TransactionImport) -> TransactionImportResult:
    """
    Bulk import with duplicate filtering.

    Rows are checked against what is already stored with a single batch
    lookup, after expense rows with no category are optionally assigned one by
    keyword. New rows are committed together, then alert detection runs on each
    and, when requested, automatic linking runs for the user.
    """
    _verify_user(db, user_id)

    rows = list(transaction_import.transactions)
    if transaction_import.account_id:
        rows = [row.model_copy(update={"account_id": transaction_import.account_id}) for row in rows]

    for row in rows:
        _verify_references(db, user_id, row.account_id, row.category_id)

    categorized_count = 0
    if transaction_import.auto_categorize:
        categories = read_db_categories(db, user_id, limit=None)
        for i, row in enumerate(rows):
            if row.category_id is not None or row.is_income:
                continue
            category = category_mapping.match_category(row.description, row.merchant, categories)
            if category is not None:
                rows[i] = row.model_copy(update={"category_id": category.id})
                categorized_count += 1

    results = duplicate_detection.batch_check_duplicates(db, user_id, rows)
    stats = duplicate_detection.get_duplicate_stats(results)

    created: List[TransactionDB] = []
    skipped: List[DuplicateCheckRequest] = []

    for row, result in zip(rows, results):
        if result.is_duplicate and transaction_import.skip_duplicates:
            skipped.append(DuplicateCheckRequest(
                transaction_date=row.transaction_date,
                amount=row.amount,
                merchant=row.merchant,
                description=row.description,
            ))
            continue
        created.append(_new_transaction(user_id, row))

    try:
        if created:
            db.add_all(created)
            db.commit()
            for transaction in created:
                db.refresh(transaction)
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Bulk transaction import failed: {str(e)}")

    logger.info(f"Imported {len(created)} transactions for user {user_id}, skipped {len(skipped)} duplicates")

    for transaction in created:
        _run_alerts(db, transaction)

    auto_linked_count = 0
    suggested_count = 0
    if transaction_import.auto_link and created:
        link_result = automatic_linking.auto_link_transactions(db, user_id)
        auto_linked_count = link_result.auto_linked_count
        suggested_count = link_result.suggested_count
        for error in link_result.errors:
            logger.warning(f"Auto-link after import: {error}")
        for transaction in created:
            db.refresh(transaction)

    return TransactionImportResult(
        created=[TransactionResponse.model_validate(t) for t in created],
        skipped=skipped,
        duplicate_stats=stats,
        auto_linked_count=auto_linked_count,
        suggested_count=suggested_count,
        categorized_count=categorized_count,
    )
