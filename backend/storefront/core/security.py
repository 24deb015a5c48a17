from datetime import datetime, timezone, timedelta
import jwt
import bcrypt
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from storefront.core.config import (
    JWT_SECRET, JWT_ALGORITHM, JWT_EXPIRATION_HOURS, SESSION_COOKIE_NAME, COOKIE_SECURE
)
from storefront.db.mongo import db

security = HTTPBearer(auto_error=False)

def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')

def verify_password(plain_password: str, hashed_password: str) -> bool:
    return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))

def create_access_token(user: dict) -> str:
    expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS)
    payload = {
        "sub": user["id"],
        "role": user.get("role", "customer"),
        "sv": user.get("session_version", 0),
        "exp": expire,
        "iat": datetime.now(timezone.utc)
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)

def set_session_cookie(response: Response, token: str):
    response.set_cookie(
        SESSION_COOKIE_NAME,
        token,
        max_age=JWT_EXPIRATION_HOURS * 3600,
        httponly=True,
        secure=COOKIE_SECURE,
        samesite="lax"
    )

def clear_session_cookie(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME)

def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials:
        return credentials.credentials
    return request.cookies.get(SESSION_COOKIE_NAME)

async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Optional[dict]:
    token = _extract_token(request, credentials)
    if not token:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None
    user = await db.users.find_one({"id": user_id}, {"_id": 0})
    if not user:
        return None
    # Tokens issued before a forced logout carry a stale session version
    if payload.get("sv", 0) != user.get("session_version", 0):
        return None
    if user.get("status", "active") != "active":
        return None
    return user

async def require_auth(user: Optional[dict] = Depends(get_current_user)) -> dict:
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return user

async def require_admin(user: dict = Depends(require_auth)) -> dict:
    if user.get('role') != 'admin':
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return user
