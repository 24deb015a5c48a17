from pydantic import BaseModel
from typing import Optional

class GeneralSettings(BaseModel):
    name: str
    email: str
    description: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    currency: str = "USD"
    timezone: str = "UTC"
