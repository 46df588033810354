from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from money_saver.db.core import AccountDB, UserDB, TransactionDB, NotFoundError, AccountType
from money_saver.models.account import AccountCreate, AccountUpdate, AccountBalance


# ===== DATABASE OPERATIONS =====

def create_db_account(db: Session, user_id: int, account_data: AccountCreate) -> AccountDB:
    """Create a new account for a user"""

    # Verify user exists
    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")

    existing_account = db.query(AccountDB).filter(
        AccountDB.user_id == user_id,
        AccountDB.name == account_data.name
    ).first()
    if existing_account:
        raise ValueError(f"Account name '{account_data.name}' already exists")

    db_account = AccountDB(
        user_id=user_id,
        name=account_data.name,
        account_type=AccountType(account_data.account_type),
        balance=account_data.balance,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_account)
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account creation failed due to database constraint")


def read_db_account(db: Session, account_id: int, user_id: Optional[int] = None) -> Optional[AccountDB]:
    """Read an account by ID, optionally filtering by user"""

    query = db.query(AccountDB).filter(AccountDB.id == account_id)

    if user_id:
        query = query.filter(AccountDB.user_id == user_id)

    return query.first()


def read_db_accounts(db: Session, user_id: int, account_type: Optional[AccountType] = None,
                     skip: int = 0, limit: int = 100) -> List[AccountDB]:
    """Read accounts for a user, optionally filtered by account type"""

    query = db.query(AccountDB).filter(AccountDB.user_id == user_id)

    if account_type:
        query = query.filter(AccountDB.account_type == account_type)

    return query.order_by(AccountDB.name).offset(skip).limit(limit).all()


def update_db_account(db: Session, account_id: int, user_id: int, account_updates: AccountUpdate) -> AccountDB:
    """Update an existing account"""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    if account_updates.name and account_updates.name != db_account.name:
        existing_name = db.query(AccountDB).filter(
            AccountDB.user_id == user_id,
            AccountDB.name == account_updates.name,
            AccountDB.id != account_id
        ).first()
        if existing_name:
            raise ValueError(f"Account name '{account_updates.name}' already exists")

    update_data = account_updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == 'account_type' and value:
            setattr(db_account, field, AccountType(value))
        else:
            setattr(db_account, field, value)

    db_account.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_account)
        return db_account
    except IntegrityError:
        db.rollback()
        raise ValueError("Account update failed due to database constraint")


def delete_db_account(db: Session, account_id: int, user_id: int) -> bool:
    """Delete an account (only if it has no transactions)"""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    if db_account.transactions:
        raise ValueError("Cannot delete account with existing transactions")

    try:
        db.delete(db_account)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to delete account: {str(e)}")


def get_account_balance(db: Session, account_id: int, user_id: int) -> AccountBalance:
    """Balance from the account's transactions: income adds, expenses subtract"""

    db_account = read_db_account(db, account_id, user_id)
    if not db_account:
        raise NotFoundError(f"Account with id {account_id} not found")

    amounts = db.query(TransactionDB.amount, TransactionDB.is_income).filter(
        TransactionDB.account_id == account_id,
        TransactionDB.user_id == user_id
    ).all()

    balance = Decimal('0.00')
    for amount, is_income in amounts:
        balance += amount if is_income else -amount

    return AccountBalance(
        account_id=account_id,
        balance=balance,
        transaction_count=len(amounts),
    )
