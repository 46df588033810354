from pydantic import BaseModel, Field, field_validator
from typing import List, Optional

# ===== CATEGORY PYDANTIC MODELS =====

class CategoryBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, description="Category name")
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$", description="Hex color code")
    icon: Optional[str] = Field(None, max_length=50, description="Icon name")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip()

class CategoryCreate(CategoryBase):
    pass

class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100, description="Category name")
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    icon: Optional[str] = Field(None, max_length=50)

class CategoryResponse(CategoryBase):
    id: int
    user_id: Optional[int] = None
    is_system: bool = False

    class Config:
        from_attributes = True

class CategoryMatch(BaseModel):
    """One keyword-based category suggestion for a transaction"""
    category_id: int
    category_name: str
    confidence: float = Field(..., ge=0, le=1)
    matched_keywords: List[str] = []
