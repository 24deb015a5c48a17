from pydantic import BaseModel, ConfigDict
from typing import Any, List, Optional

class AttributeDefinition(BaseModel):
    name: str
    type: str = "text"  # text, number, boolean, select, multiselect
    required: bool = False
    options: List[str] = []
    default_value: Optional[Any] = None

class Category(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    name: str
    slug: str
    description: str = ""
    attributes: List[AttributeDefinition] = []
    created_at: str
    updated_at: Optional[str] = None

class CategoryCreate(BaseModel):
    name: str
    description: str = ""
    attributes: List[AttributeDefinition] = []

class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    attributes: Optional[List[AttributeDefinition]] = None
