from pydantic import BaseModel, Field, ConfigDict
from typing import Any, Dict, List, Optional

class ProductVariant(BaseModel):
    id: Optional[str] = None
    sku: str
    price: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    attributes: Dict[str, str] = {}

class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    description: str
    price: float
    category_id: str
    cover_image: str
    images: List[str] = []
    stock: int = 0
    low_stock_threshold: int = 10
    notify_low_stock: bool = True
    featured: bool = False
    attributes: Dict[str, Any] = {}
    variants: List[ProductVariant] = []
    views: int = 0
    last_viewed: Optional[str] = None
    sales_count: int = 0
    last_sold: Optional[str] = None
    total_revenue: float = 0
    created_at: str
    updated_at: Optional[str] = None

class ProductCreate(BaseModel):
    name: str
    description: str
    price: float = Field(..., ge=0)
    category_id: str
    cover_image: str
    images: List[str] = []
    stock: int = Field(..., ge=0)
    low_stock_threshold: int = Field(10, ge=0)
    notify_low_stock: bool = True
    featured: bool = False
    attributes: Dict[str, Any] = {}
    variants: List[ProductVariant] = []

class ProductUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    category_id: Optional[str] = None
    cover_image: Optional[str] = None
    images: Optional[List[str]] = None
    stock: Optional[int] = Field(None, ge=0)
    low_stock_threshold: Optional[int] = Field(None, ge=0)
    notify_low_stock: Optional[bool] = None
    featured: Optional[bool] = None
    attributes: Optional[Dict[str, Any]] = None
    variants: Optional[List[ProductVariant]] = None

class BulkOperation(BaseModel):
    operation: str  # update-price, update-stock, categorize, delete
    product_ids: List[str]
    value: Optional[Any] = None

class LowStockThresholdUpdate(BaseModel):
    product_id: str
    low_stock_threshold: int = Field(..., ge=0)

class ProductImportRequest(BaseModel):
    csv_data: str
