# app/utils/auth_utils.py
from __future__ import annotations

import os
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from bson import ObjectId

from ..db.mongo import users_collection

# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------
# Support either JWT_SECRET_KEY (yours) or JWT_SECRET (fallback)
SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Allowlist for admin-only routes. Users with role == "admin" pass as well.
_ADMIN_EMAILS = {
    s.strip().lower() for s in (os.getenv("ADMIN_EMAILS", "") or "").split(",") if s.strip()
}

# Token may also arrive as a cookie, so the header is optional here
bearer_scheme = HTTPBearer(auto_error=False)
TOKEN_COOKIE = "token"


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------
def _extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    if credentials and credentials.credentials:
        return credentials.credentials
    token = request.cookies.get(TOKEN_COOKIE)
    if token:
        return token
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authorized, no token")


async def _load_user_or_401(user_id: str):
    if not ObjectId.is_valid(user_id):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")

    user = await users_collection.find_one({"_id": ObjectId(user_id)}, {"password": 0})
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found.")
    return user


# ------------------------------------------------------------------
# Public dependencies
# ------------------------------------------------------------------
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
):
    """
    Validates the JWT from the Bearer header (or the 'token' cookie) and loads the user.
    Returns the Mongo user document (with ObjectId _id, without the password hash).
    """
    token = _extract_token(request, credentials)
    if not SECRET_KEY:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="JWT secret not configured.")

    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        user_id = payload.get("user_id")
        if not user_id:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload.")
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or expired token.")

    return await _load_user_or_401(user_id)


def is_admin(user: dict) -> bool:
    if user.get("role") == "admin":
        return True
    email = (user.get("email") or "").lower()
    return bool(email and email in _ADMIN_EMAILS)


async def get_current_admin_user(user: dict = Depends(get_current_user)):
    """
    Admin guard. Accepts user.role == 'admin' or an email on the ADMIN_EMAILS allowlist.
    """
    if not is_admin(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only.")
    return user
