from pydantic import BaseModel, Field
from typing import Dict, List, Optional

class CartItemIn(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = 1
    selected_attributes: Dict[str, str] = {}

class CartAddRequest(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    quantity: int = Field(1, ge=1)
    selected_attributes: Dict[str, str] = {}

class CartUpdateRequest(BaseModel):
    item_id: str
    quantity: int = Field(..., ge=1)

class CartSyncRequest(BaseModel):
    items: List[CartItemIn]

class CheckoutQuoteRequest(BaseModel):
    items: List[CartItemIn]
    coupon_code: Optional[str] = None
