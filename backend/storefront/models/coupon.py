from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional
from datetime import datetime

class Coupon(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    code: str
    type: str = "percentage"  # 'percentage' or 'fixed'
    value: float
    min_purchase: float = 0
    max_discount: Optional[float] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    usage_limit: Optional[int] = None  # None = unlimited
    used_count: int = 0
    is_active: bool = True
    description: str = ""
    applicable_products: List[str] = []
    applicable_categories: List[str] = []
    created_at: str
    updated_at: Optional[str] = None

class CouponCreate(BaseModel):
    code: str
    type: str = "percentage"
    value: float = Field(..., gt=0)
    min_purchase: float = Field(0, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    is_active: bool = True
    description: str = ""
    applicable_products: List[str] = []
    applicable_categories: List[str] = []

    @field_validator('type')
    @classmethod
    def check_type(cls, v):
        if v not in ("percentage", "fixed"):
            raise ValueError("type must be 'percentage' or 'fixed'")
        return v

class CouponUpdate(BaseModel):
    code: Optional[str] = None
    type: Optional[str] = None
    value: Optional[float] = Field(None, gt=0)
    min_purchase: Optional[float] = Field(None, ge=0)
    max_discount: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=0)
    is_active: Optional[bool] = None
    description: Optional[str] = None
    applicable_products: Optional[List[str]] = None
    applicable_categories: Optional[List[str]] = None

class CouponValidateRequest(BaseModel):
    code: str
    cart_total: float = Field(..., gt=0)
    product_ids: List[str] = []

class ErrorLog(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    error_type: str
    error_message: str
    endpoint: str
    user_id: Optional[str] = None
    stack_trace: Optional[str] = None
    created_at: str
