from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import List, Optional

class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    id: str
    email: EmailStr
    name: str
    password_hash: str
    role: str = "customer"  # 'admin' or 'customer'
    status: str = "active"  # 'active', 'inactive' or 'blocked'
    phone: Optional[str] = None
    address: Optional[str] = None
    session_version: int = 0
    created_at: str
    updated_at: Optional[str] = None

class UserCreate(BaseModel):
    email: EmailStr
    name: str
    password: str = Field(..., min_length=8)

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    role: str
    status: str
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse

class ProfileUpdate(BaseModel):
    email: EmailStr
    name: str
    phone: Optional[str] = None
    address: Optional[str] = None

class PasswordChange(BaseModel):
    current_password: str
    new_password: str

class AdminUserCreate(BaseModel):
    name: str
    email: str
    password: str
    status: str = "active"
    role: str = "customer"

class UserStatusUpdate(BaseModel):
    status: str
