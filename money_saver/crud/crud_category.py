from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from sqlalchemy import or_
from typing import List, Optional
from datetime import datetime

from money_saver.db.core import CategoryDB, TransactionDB, BudgetDB, NotFoundError
from money_saver.models.category import CategoryCreate, CategoryUpdate


def _visible_to(user_id: int):
    # System categories have no owner and are shared by everyone
    return or_(CategoryDB.user_id.is_(None), CategoryDB.user_id == user_id)


def create_db_category(db: Session, user_id: int, category_data: CategoryCreate) -> CategoryDB:
    """Create a category owned by the user"""

    existing_category = db.query(CategoryDB).filter(
        _visible_to(user_id),
        CategoryDB.name.ilike(category_data.name)
    ).first()
    if existing_category:
        raise ValueError(f"Category with name '{category_data.name}' already exists")

    db_category = CategoryDB(
        user_id=user_id,
        name=category_data.name,
        color=category_data.color,
        icon=category_data.icon,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_category)
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ValueError("Category creation failed due to a database constraint.")

def read_db_categories(db: Session, user_id: int, skip: int = 0, limit: Optional[int] = 100) -> List[CategoryDB]:
    """System categories plus the user's own, by name. ``limit=None`` returns them all"""
    return db.query(CategoryDB).filter(_visible_to(user_id)).order_by(CategoryDB.name).offset(skip).limit(limit).all()

def read_db_category(db: Session, category_id: int, user_id: int) -> Optional[CategoryDB]:
    return db.query(CategoryDB).filter(CategoryDB.id == category_id, _visible_to(user_id)).first()

def _read_own_category(db: Session, category_id: int, user_id: int) -> CategoryDB:
    db_category = read_db_category(db, category_id, user_id)
    if not db_category:
        raise NotFoundError(f"Category with id {category_id} not found")
    if db_category.is_system:
        raise ValueError("System categories cannot be modified")
    return db_category

def update_db_category(db: Session, category_id: int, user_id: int, category_updates: CategoryUpdate) -> CategoryDB:
    """Update one of the user's own categories"""
    db_category = _read_own_category(db, category_id, user_id)

    update_data = category_updates.model_dump(exclude_unset=True)

    if 'name' in update_data:
        new_name = update_data['name'].strip()
        existing = db.query(CategoryDB).filter(
            _visible_to(user_id),
            CategoryDB.name.ilike(new_name),
            CategoryDB.id != category_id
        ).first()
        if existing:
            raise ValueError(f"Category with name '{new_name}' already exists")
        update_data['name'] = new_name

    for field, value in update_data.items():
        setattr(db_category, field, value)

    db_category.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_category)
        return db_category
    except IntegrityError:
        db.rollback()
        raise ValueError("Category update failed due to a database constraint.")

def delete_db_category(db: Session, category_id: int, user_id: int) -> bool:
    """Delete one of the user's own categories. Its transactions become uncategorized."""
    db_category = _read_own_category(db, category_id, user_id)

    try:
        db.query(TransactionDB).filter(TransactionDB.category_id == category_id).update(
            {TransactionDB.category_id: None}
        )
        db.query(BudgetDB).filter(BudgetDB.category_id == category_id).delete()
        db.delete(db_category)
        db.commit()
        return True
    except IntegrityError:
        db.rollback()
        raise ValueError("Cannot delete category as it is currently in use.")
