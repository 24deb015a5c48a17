from fastapi import APIRouter, HTTPException, Depends

from storefront.core.config import MIN_PASSWORD_LENGTH
from storefront.core.security import require_auth, hash_password, verify_password
from storefront.db.mongo import db
from storefront.models.user import ProfileUpdate, PasswordChange
from storefront.services.utils import format_user_response, now_iso

router = APIRouter(prefix="/user", tags=["user"])

async def change_password(user: dict, request: PasswordChange):
    if not verify_password(request.current_password, user['password_hash']):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    if len(request.new_password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )

    await db.users.update_one(
        {"id": user['id']},
        {"$set": {"password_hash": hash_password(request.new_password), "updated_at": now_iso()}}
    )

@router.patch("/profile")
async def update_profile(request: ProfileUpdate, user: dict = Depends(require_auth)):
    if request.email.lower() != user['email'].lower():
        raise HTTPException(status_code=400, detail="Email cannot be changed")

    update_dict = {
        "name": request.name,
        "phone": request.phone,
        "address": request.address,
        "updated_at": now_iso()
    }
    await db.users.update_one({"id": user['id']}, {"$set": update_dict})
    updated = await db.users.find_one({"id": user['id']}, {"_id": 0})
    return format_user_response(updated)

@router.post("/security")
async def update_password(request: PasswordChange, user: dict = Depends(require_auth)):
    await change_password(user, request)
    return {"message": "Password updated successfully"}
