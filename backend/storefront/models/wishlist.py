from pydantic import BaseModel

class WishlistAdd(BaseModel):
    product_id: str
