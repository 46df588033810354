from pydantic import BaseModel
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# ===== SERVICE RESULT MODEL =====

class ServiceResponse(BaseModel, Generic[T]):
    """
    Data/error pair returned by the reconciliation services.

    Store failures are reported through ``error`` instead of being raised, so
    callers check the field before using ``data``. ``data`` may hold ORM rows.
    """
    data: Optional[T] = None
    error: Optional[str] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def ok(self) -> bool:
        return self.error is None
