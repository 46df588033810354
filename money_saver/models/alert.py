from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from decimal import Decimal

from money_saver.db.core import AlertType, AlertSeverity

# ===== ALERT SETTING PYDANTIC MODELS =====

class AlertSettingCreate(BaseModel):
    type: AlertType
    threshold: Optional[Decimal] = Field(None, gt=0, description="Dollar amount or budget percentage, depending on type")
    is_enabled: bool = True

class AlertSettingUpdate(BaseModel):
    threshold: Optional[Decimal] = Field(None, gt=0)
    is_enabled: Optional[bool] = None

class AlertSettingResponse(BaseModel):
    id: int
    type: AlertType
    threshold: Optional[Decimal]
    is_enabled: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


# ===== ALERT EVENT PYDANTIC MODELS =====

class AlertEventCreate(BaseModel):
    type: AlertType
    message: str = Field(..., min_length=1)
    severity: AlertSeverity
    alert_id: Optional[int] = None
    transaction_id: Optional[int] = None
    budget_id: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None

class AlertEventResponse(BaseModel):
    id: int
    alert_id: Optional[int]
    transaction_id: Optional[int]
    budget_id: Optional[int]
    type: AlertType
    message: str
    severity: AlertSeverity
    is_read: bool
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="event_metadata")
    created_at: datetime

    class Config:
        from_attributes = True
        populate_by_name = True

class UnreadCount(BaseModel):
    count: int
