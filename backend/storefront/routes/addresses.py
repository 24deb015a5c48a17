from fastapi import APIRouter, HTTPException, Depends
import uuid

from storefront.core.security import require_auth
from storefront.db.mongo import db
from storefront.models.address import AddressCreate
from storefront.services.utils import now_iso

router = APIRouter(prefix="/addresses", tags=["addresses"])

@router.get("")
async def get_addresses(user: dict = Depends(require_auth)):
    addresses = await db.addresses.find({"user_id": user['id']}, {"_id": 0}).sort("created_at", -1).to_list(100)
    return addresses

@router.post("")
async def create_address(address_data: AddressCreate, user: dict = Depends(require_auth)):
    # First address becomes the default
    has_any = await db.addresses.count_documents({"user_id": user['id']}) > 0
    is_default = address_data.is_default or not has_any

    if is_default:
        await db.addresses.update_many({"user_id": user['id']}, {"$set": {"is_default": False}})

    address = {
        "id": str(uuid.uuid4()),
        "user_id": user['id'],
        **address_data.model_dump(),
        "is_default": is_default,
        "created_at": now_iso()
    }
    await db.addresses.insert_one({**address})
    return address

@router.put("/{address_id}/default")
async def set_default_address(address_id: str, user: dict = Depends(require_auth)):
    address = await db.addresses.find_one({"id": address_id, "user_id": user['id']})
    if not address:
        raise HTTPException(status_code=404, detail="Address not found")

    await db.addresses.update_many({"user_id": user['id']}, {"$set": {"is_default": False}})
    await db.addresses.update_one({"id": address_id}, {"$set": {"is_default": True}})
    return {"message": "Default address updated"}

@router.delete("/{address_id}")
async def delete_address(address_id: str, user: dict = Depends(require_auth)):
    result = await db.addresses.delete_one({"id": address_id, "user_id": user['id']})
    if result.deleted_count == 0:
        raise HTTPException(status_code=404, detail="Address not found")
    return {"message": "Address deleted"}
