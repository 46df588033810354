from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from typing import List

from money_saver.crud import crud_alert
from money_saver.models import alert as alert_models
from money_saver.db.core import get_db, NotFoundError
from money_saver.routers.dependencies import get_current_user_id

router = APIRouter(
    prefix="/alerts",
    tags=["alerts"],
)


# ===== SETTINGS =====

@router.get("/settings", response_model=List[alert_models.AlertSettingResponse])
def read_alert_settings(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return crud_alert.read_alert_settings(db=db, user_id=user_id)

@router.post("/settings", response_model=alert_models.AlertSettingResponse, status_code=status.HTTP_201_CREATED)
def create_alert_setting(
    setting: alert_models.AlertSettingCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return crud_alert.create_alert_setting(db=db, user_id=user_id, setting_data=setting)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.put("/settings", response_model=alert_models.AlertSettingResponse)
def upsert_alert_setting(
    setting: alert_models.AlertSettingCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Create or replace the setting for the given alert type.
    """
    try:
        return crud_alert.upsert_alert_setting(db=db, user_id=user_id, setting_data=setting)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.post("/settings/defaults", response_model=List[alert_models.AlertSettingResponse])
def initialize_default_alerts(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return crud_alert.initialize_default_alerts(db=db, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.put("/settings/{setting_id}", response_model=alert_models.AlertSettingResponse)
def update_alert_setting(
    setting_id: int,
    setting: alert_models.AlertSettingUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return crud_alert.update_alert_setting(db=db, setting_id=setting_id, user_id=user_id, setting_updates=setting)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.delete("/settings/{setting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_alert_setting(
    setting_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        crud_alert.delete_alert_setting(db=db, setting_id=setting_id, user_id=user_id)
    except (NotFoundError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


# ===== EVENTS =====

@router.get("/events", response_model=List[alert_models.AlertEventResponse])
def read_alert_events(
    limit: int = crud_alert.DEFAULT_EVENT_LIMIT,
    unread_only: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Alert events for the current user, newest first.
    """
    return crud_alert.read_alert_events(db=db, user_id=user_id, limit=limit, unread_only=unread_only)

@router.get("/events/unread-count", response_model=alert_models.UnreadCount)
def read_unread_count(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    return alert_models.UnreadCount(count=crud_alert.count_unread_alert_events(db=db, user_id=user_id))

@router.post("/events/read-all", response_model=alert_models.UnreadCount)
def mark_all_alert_events_read(
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    """
    Mark every unread event as read. Returns the number of events updated.
    """
    try:
        return alert_models.UnreadCount(count=crud_alert.mark_all_alert_events_read(db=db, user_id=user_id))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.get("/events/{event_id}", response_model=alert_models.AlertEventResponse)
def read_alert_event(
    event_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    db_event = crud_alert.read_alert_event(db=db, event_id=event_id, user_id=user_id)
    if db_event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Alert event not found")
    return db_event

@router.post("/events/{event_id}/read", response_model=alert_models.AlertEventResponse)
def mark_alert_event_read(
    event_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        return crud_alert.mark_alert_event_read(db=db, event_id=event_id, user_id=user_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_alert_event(
    event_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(get_current_user_id)
):
    try:
        crud_alert.delete_alert_event(db=db, event_id=event_id, user_id=user_id)
    except (NotFoundError, ValueError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
