from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional

class Review(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    product_id: str
    order_id: Optional[str] = None
    rating: int
    title: str
    comment: str
    images: List[str] = []
    is_verified_purchase: bool = False
    helpful_votes: int = 0
    status: str = "pending"  # pending, approved, rejected
    created_at: str
    updated_at: Optional[str] = None

class ReviewCreate(BaseModel):
    product_id: str
    rating: int = Field(..., ge=1, le=5)
    title: str = Field(..., min_length=1)
    comment: str = Field(..., min_length=1)
    images: List[str] = []

class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    title: Optional[str] = None
    comment: Optional[str] = None

class ReviewStatusUpdate(BaseModel):
    status: str
