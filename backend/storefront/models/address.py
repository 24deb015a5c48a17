from pydantic import BaseModel, ConfigDict
from typing import Optional

class Address(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    user_id: str
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    is_default: bool = False
    created_at: str

class AddressCreate(BaseModel):
    full_name: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    is_default: bool = False
