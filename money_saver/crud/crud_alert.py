from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy import desc, func
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from money_saver.db.core import AlertSettingDB, AlertEventDB, AlertType, UserDB, NotFoundError
from money_saver.models.alert import AlertSettingCreate, AlertSettingUpdate, AlertEventCreate


DEFAULT_ALERT_SETTINGS = (
    (AlertType.LARGE_PURCHASE, Decimal("100")),  # dollars
    (AlertType.ANOMALY, None),
    (AlertType.BUDGET_WARNING, Decimal("80")),  # percent of budget
)

DEFAULT_EVENT_LIMIT = 50


# ===== ALERT SETTINGS =====

def read_alert_settings(db: Session, user_id: int) -> List[AlertSettingDB]:
    return db.query(AlertSettingDB).filter(
        AlertSettingDB.user_id == user_id
    ).order_by(AlertSettingDB.type).all()


def read_alert_setting(db: Session, setting_id: int, user_id: int) -> Optional[AlertSettingDB]:
    return db.query(AlertSettingDB).filter(
        AlertSettingDB.id == setting_id,
        AlertSettingDB.user_id == user_id
    ).first()


def read_alert_setting_by_type(db: Session, user_id: int, alert_type: AlertType) -> Optional[AlertSettingDB]:
    return db.query(AlertSettingDB).filter(
        AlertSettingDB.user_id == user_id,
        AlertSettingDB.type == alert_type
    ).first()


def create_alert_setting(db: Session, user_id: int, setting_data: AlertSettingCreate) -> AlertSettingDB:
    """Create an alert setting; each alert type can be configured once per user"""

    user = db.query(UserDB).filter(UserDB.db_id == user_id).first()
    if not user:
        raise NotFoundError(f"User with id {user_id} not found")

    if read_alert_setting_by_type(db, user_id, setting_data.type):
        raise ValueError(f"Alert setting for '{setting_data.type.value}' already exists")

    db_setting = AlertSettingDB(
        user_id=user_id,
        type=setting_data.type,
        threshold=setting_data.threshold,
        is_enabled=setting_data.is_enabled,
        created_at=datetime.utcnow(),
        updated_at=datetime.utcnow()
    )

    try:
        db.add(db_setting)
        db.commit()
        db.refresh(db_setting)
        return db_setting
    except IntegrityError:
        db.rollback()
        raise ValueError("Alert setting creation failed due to database constraint")


def update_alert_setting(db: Session, setting_id: int, user_id: int, setting_updates: AlertSettingUpdate) -> AlertSettingDB:
    db_setting = read_alert_setting(db, setting_id, user_id)
    if not db_setting:
        raise NotFoundError(f"Alert setting with id {setting_id} not found")

    update_data = setting_updates.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(db_setting, field, value)

    db_setting.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_setting)
        return db_setting
    except IntegrityError:
        db.rollback()
        raise ValueError("Alert setting update failed due to database constraint")


def upsert_alert_setting(db: Session, user_id: int, setting_data: AlertSettingCreate) -> AlertSettingDB:
    """Create the setting for this alert type, or overwrite the existing one"""

    db_setting = read_alert_setting_by_type(db, user_id, setting_data.type)
    if not db_setting:
        return create_alert_setting(db, user_id, setting_data)

    db_setting.threshold = setting_data.threshold
    db_setting.is_enabled = setting_data.is_enabled
    db_setting.updated_at = datetime.utcnow()

    try:
        db.commit()
        db.refresh(db_setting)
        return db_setting
    except IntegrityError:
        db.rollback()
        raise ValueError("Alert setting update failed due to database constraint")


def delete_alert_setting(db: Session, setting_id: int, user_id: int) -> bool:
    db_setting = read_alert_setting(db, setting_id, user_id)
    if not db_setting:
        raise NotFoundError(f"Alert setting with id {setting_id} not found")

    try:
        db.delete(db_setting)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to delete alert setting: {str(e)}")


def initialize_default_alerts(db: Session, user_id: int) -> List[AlertSettingDB]:
    """Give a user the default alert settings. Types already configured are left alone."""

    for alert_type, threshold in DEFAULT_ALERT_SETTINGS:
        if not read_alert_setting_by_type(db, user_id, alert_type):
            create_alert_setting(db, user_id, AlertSettingCreate(type=alert_type, threshold=threshold, is_enabled=True))

    return read_alert_settings(db, user_id)


# ===== ALERT EVENTS =====

def read_alert_events(db: Session, user_id: int, limit: int = DEFAULT_EVENT_LIMIT,
                      unread_only: bool = False) -> List[AlertEventDB]:
    """Alert events for a user, newest first"""

    query = db.query(AlertEventDB).filter(AlertEventDB.user_id == user_id)

    if unread_only:
        query = query.filter(AlertEventDB.is_read.is_(False))

    return query.order_by(desc(AlertEventDB.created_at), desc(AlertEventDB.id)).limit(limit).all()


def read_alert_event(db: Session, event_id: int, user_id: int) -> Optional[AlertEventDB]:
    return db.query(AlertEventDB).filter(
        AlertEventDB.id == event_id,
        AlertEventDB.user_id == user_id
    ).first()


def create_alert_event(db: Session, user_id: int, event_data: AlertEventCreate) -> AlertEventDB:
    db_event = AlertEventDB(
        user_id=user_id,
        alert_id=event_data.alert_id,
        transaction_id=event_data.transaction_id,
        budget_id=event_data.budget_id,
        type=event_data.type,
        message=event_data.message,
        severity=event_data.severity,
        is_read=False,
        event_metadata=event_data.metadata,
        created_at=datetime.utcnow()
    )

    try:
        db.add(db_event)
        db.commit()
        db.refresh(db_event)
        return db_event
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to create alert event: {str(e)}")


def mark_alert_event_read(db: Session, event_id: int, user_id: int) -> AlertEventDB:
    db_event = read_alert_event(db, event_id, user_id)
    if not db_event:
        raise NotFoundError(f"Alert event with id {event_id} not found")

    db_event.is_read = True

    try:
        db.commit()
        db.refresh(db_event)
        return db_event
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to update alert event: {str(e)}")


def mark_all_alert_events_read(db: Session, user_id: int) -> int:
    """Mark every unread event as read. Returns how many were updated."""
    try:
        updated = db.query(AlertEventDB).filter(
            AlertEventDB.user_id == user_id,
            AlertEventDB.is_read.is_(False)
        ).update({AlertEventDB.is_read: True}, synchronize_session=False)
        db.commit()
        return updated
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to update alert events: {str(e)}")


def delete_alert_event(db: Session, event_id: int, user_id: int) -> bool:
    db_event = read_alert_event(db, event_id, user_id)
    if not db_event:
        raise NotFoundError(f"Alert event with id {event_id} not found")

    try:
        db.delete(db_event)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        raise ValueError(f"Failed to delete alert event: {str(e)}")


def count_unread_alert_events(db: Session, user_id: int) -> int:
    return db.query(func.count(AlertEventDB.id)).filter(
        AlertEventDB.user_id == user_id,
        AlertEventDB.is_read.is_(False)
    ).scalar() or 0
