from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from typing import List, Optional
from datetime import datetime, timezone

def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

class FlashSaleProduct(BaseModel):
    product_id: str
    discount_type: str = "percentage"  # 'percentage' or 'fixed'
    discount_value: float = Field(..., ge=0)
    max_quantity_per_customer: Optional[int] = Field(None, ge=0)
    total_quantity: Optional[int] = Field(None, ge=0)
    sold_quantity: int = Field(0, ge=0)

class FlashSale(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    description: str = ""
    start_date: str
    end_date: str
    is_active: bool = True
    products: List[FlashSaleProduct] = []
    created_at: str
    updated_at: Optional[str] = None

class FlashSaleCreate(BaseModel):
    name: str
    description: str = ""
    start_date: datetime
    end_date: datetime
    is_active: bool = True
    products: List[FlashSaleProduct]

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalise_dates(cls, v):
        return _as_utc(v)

    @model_validator(mode='after')
    def check_window(self):
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

class FlashSaleUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_active: Optional[bool] = None
    products: Optional[List[FlashSaleProduct]] = None

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalise_dates(cls, v):
        return _as_utc(v)
