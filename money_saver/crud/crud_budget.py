from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import desc, or_
from typing import Optional, List
from datetime import datetime

from money_saver.db.core import BudgetDB, CategoryDB, UserDB, NotFoundError
from money_saver.models.budget import BudgetCreate, BudgetUpdate, BudgetResponse, BudgetStatus
from money_saver.services.alert_detection import calculate_budget_status


# ===== DATABASE OPERATIONS =====

def create_db_budget(db: Session, user_id: int, budget_data: BudgetCreate) -> BudgetDB:
    """Create a spending limit for one category"""

    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")

    category = db.query(CategoryDB).filter(
        CategoryDB.id == budget_data.category_id,
        or_(CategoryDB.user_id.is_(None), CategoryDB.user_id == user_id)
    ).first()
    if not category:
        raise NotFoundError(f"Category with id {budget_data.category_id} not found")

    existing_budget = db.query(BudgetDB).filter(
        BudgetDB.user_id == user_id,
        BudgetDB.category_id == budget_data.category_id,
        BudgetDB.period == budget_data.period,
        BudgetDB.start_date == budget_data.start_date
    ).first()
    if existing_budget:
        raise ValueError(f"A {budget_data.period.value} budget for category '{category.name}' "
                         f"starting {budget_data.start_date} already exists")

    db_budget = BudgetDB(
        user_id=user_id,
        category_id=budget_data.category_id,
        amount=budget_data.amount,
        period=budget_data.period,
        start_date=budget_data.start_date,
        end_date=budget_data.end_date,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_budget)
        db.commit()
        db.refresh(db_budget)
        return db_budget
    except IntegrityError:
        db.rollback()
        raise ValueError("Budget creation failed due to database constraint")


def read_db_budget(db: Session, budget_id: int, user_id: Optional[int] = None) -> Optional[BudgetDB]:
    query = db.query(BudgetDB).filter(BudgetDB.id == budget_id)

    if user_id:
        query = query.filter(BudgetDB.user_id == user_id)

    return query.first()


def read_db_budgets(db: Session, user_id: int, category_id: Optional[int] = None,
                    skip: int = 0, limit: Optional[int] = 100) -> List[BudgetDB]:
    """Read budgets for a user, newest start date first"""

    query = db.query(BudgetDB).filter(BudgetDB.user_id == user_id)

    if category_id:
        query = query.filter(BudgetDB.category_id == category_id)

    return query.order_by(desc(BudgetDB.start_date), desc(BudgetDB.id)).offset(skip).limit(limit).all()


def update_db_budget(db: Session, budget_id: int, user_id: int, budget_updates: BudgetUpdate) -> BudgetDB:
    """Update an existing budget"""

    db_budget = read_db_budget(db, budget_id, user_id)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")

    update_data = budget_updates.model_dump(exclude_unset=True)

    start_date = update_data.get('start_date', db_budget.start_date)
    end_date = update_data.get('end_date', db_budget.end_date)
    if end_date is not None and end_date <= start_date:
        raise ValueError("end_date must be after start_date")

    for field, value in update_data.items():
        setattr(db_budget, field, value)

    db_budget.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_budget)
        return db_budget
    except IntegrityError:
        db.rollback()
        raise ValueError("Budget update failed due to database constraint")


def delete_db_budget(db: Session, budget_id: int, user_id: int) -> bool:
    db_budget = read_db_budget(db, budget_id, user_id)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")

    try:
        db.delete(db_budget)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to delete budget: {str(e)}")


def get_budget_status(db: Session, budget_id: int, user_id: int) -> BudgetStatus:
    """Spending against a budget, classified as under, at or over the limit"""

    db_budget = read_db_budget(db, budget_id, user_id)
    if not db_budget:
        raise NotFoundError(f"Budget with id {budget_id} not found")

    result = calculate_budget_status(db, budget_id)
    if result.error or not result.data:
        raise ValueError(f"Failed to calculate budget status: {result.error}")

    spend = result.data
    if spend.percentage < 100:
        status = "under"
    elif spend.percentage == 100:
        status = "at"
    else:
        status = "over"

    return BudgetStatus(
        budget=BudgetResponse.model_validate(db_budget),
        spent=spend.spent,
        remaining=spend.limit - spend.spent,
        percentage=spend.percentage,
        status=status,
    )
