from fastapi import APIRouter, HTTPException, Depends, Response
from typing import Optional
import uuid

from storefront.core.security import (
    hash_password, verify_password, create_access_token, require_auth, get_current_user,
    set_session_cookie, clear_session_cookie
)
from storefront.db.mongo import db
from storefront.models.user import UserCreate, UserLogin, TokenResponse, UserResponse
from storefront.services.utils import format_user_response, now_iso

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/register", response_model=TokenResponse)
async def register(user_data: UserCreate, response: Response):
    email = user_data.email.lower()
    existing_user = await db.users.find_one({"email": email})
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user_doc = {
        "id": str(uuid.uuid4()),
        "email": email,
        "name": user_data.name,
        "password_hash": hash_password(user_data.password),
        "role": "customer",
        "status": "active",
        "session_version": 0,
        "created_at": now_iso()
    }
    await db.users.insert_one(user_doc)

    token = create_access_token(user_doc)
    set_session_cookie(response, token)
    return TokenResponse(
        access_token=token,
        user=format_user_response(user_doc)
    )

@router.post("/login", response_model=TokenResponse)
async def login(credentials: UserLogin, response: Response):
    user = await db.users.find_one({"email": credentials.email.lower()}, {"_id": 0})
    if not user or not verify_password(credentials.password, user['password_hash']):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if user.get('status', 'active') != 'active':
        raise HTTPException(status_code=403, detail=f"Account is {user['status']}")

    token = create_access_token(user)
    set_session_cookie(response, token)
    return TokenResponse(
        access_token=token,
        user=format_user_response(user)
    )

@router.post("/logout")
async def logout(response: Response, user: Optional[dict] = Depends(get_current_user)):
    # Bumping the session version revokes every token issued so far
    if user:
        await db.users.update_one({"id": user['id']}, {"$inc": {"session_version": 1}})
    clear_session_cookie(response)
    return {"message": "Logged out"}

@router.get("/me", response_model=UserResponse)
async def get_me(user: dict = Depends(require_auth)):
    return format_user_response(user)

@router.get("/check-role")
async def check_role(user: dict = Depends(require_auth)):
    return {"role": user.get('role', 'customer')}
