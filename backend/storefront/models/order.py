from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional

from storefront.models.cart import CartItemIn

class ShippingAddress(BaseModel):
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: str

class OrderItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    price: float
    original_price: float
    quantity: int
    sale_quantity: int = 0
    image: str = ""
    attributes: Dict[str, str] = {}
    flash_sale_id: Optional[str] = None

class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    user_email: Optional[str] = None
    items: List[OrderItem]
    subtotal: float
    discount: float = 0
    coupon_code: Optional[str] = None
    total: float
    status: str = "pending"  # pending, processing, completed, cancelled
    payment_intent_id: str
    shipping_address: Optional[ShippingAddress] = None
    stock_issues: List[Dict] = []
    created_at: str
    updated_at: Optional[str] = None

class OrderStatusUpdate(BaseModel):
    status: str

class PaymentIntentRequest(BaseModel):
    items: List[CartItemIn]
    coupon_code: Optional[str] = None
    currency: str = "USD"
    shipping_address: Optional[ShippingAddress] = None
