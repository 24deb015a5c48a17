from datetime import datetime, timezone
from typing import Optional
import uuid

from storefront.db.mongo import db

def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()

def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Normalise an incoming datetime to the stored UTC ISO string"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()

async def log_error(error_type: str, error_message: str, endpoint: str, user_id: str = None, stack_trace: str = None):
    """Log error to database"""
    error_doc = {
        "id": str(uuid.uuid4()),
        "error_type": error_type,
        "error_message": error_message,
        "endpoint": endpoint,
        "user_id": user_id,
        "stack_trace": stack_trace,
        "created_at": now_iso()
    }
    await db.error_logs.insert_one(error_doc)

async def create_audit_log(admin: dict, action: str, target_type: str, target_id: str,
                           old_value: dict = None, new_value: dict = None, reason: str = None,
                           ip_address: str = None):
    """Create audit log entry"""
    audit = {
        "id": str(uuid.uuid4()),
        "admin_id": admin["id"],
        "admin_email": admin["email"],
        "action": action,
        "target_type": target_type,
        "target_id": target_id,
        "old_value": old_value,
        "new_value": new_value,
        "reason": reason,
        "ip_address": ip_address,
        "created_at": now_iso()
    }
    await db.audit_logs.insert_one(audit)

def format_user_response(user: dict):
    """Format user dict for API response"""
    from storefront.models.user import UserResponse

    created_at = user.get('created_at', now_iso())
    if isinstance(created_at, datetime):
        created_at = created_at.isoformat()

    return UserResponse(
        id=user['id'],
        email=user['email'],
        name=user['name'],
        role=user.get('role', 'customer'),
        status=user.get('status', 'active'),
        phone=user.get('phone'),
        address=user.get('address'),
        created_at=created_at
    )

def client_ip(request) -> Optional[str]:
    return request.client.host if request and request.client else None
