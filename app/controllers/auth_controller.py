from fastapi import HTTPException
from pymongo.errors import DuplicateKeyError

from .achievement_controller import derive_badges
from ..db.mongo import users_collection
from ..models.user_model import UserModel
from ..schemas.auth_schema import AuthResponse, BadgeOut, LoginRequest, RegisterRequest, UserOut
from ..services.progression import ensure_user_defaults, record_activity, update_streak
from ..utils.datetime_utils import utcnow
from ..utils.hashing import hash_password, verify_password
from ..utils.jwt_utils import create_jwt_token


# -----------------------
# Helpers
# -----------------------
async def _user_out(user: dict) -> UserOut:
    out = UserOut.model_validate(user)
    out.badges = [BadgeOut.model_validate(b) for b in await derive_badges(user)]
    return out


async def _touch_activity(user: dict) -> dict:
    """Login and profile fetches count as activity for the streak and the activity log."""
    ensure_user_defaults(user)
    now = utcnow()
    update_streak(user, now)
    record_activity(user, now)
    await users_collection.update_one(
        {"_id": user["_id"]},
        {"$set": {
            "current_streak": user["current_streak"],
            "longest_streak": user["longest_streak"],
            "last_active": user["last_active"],
            "activity": user["activity"],
            "updated_at": now,
        }},
    )
    return user


# -----------------------
# Register
# -----------------------
async def register_user(payload: RegisterRequest) -> AuthResponse:
    email = payload.email.lower()
    if await users_collection.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="⚠️ User already exists.")

    now = utcnow()
    doc = UserModel(
        email=email,
        username=payload.username,
        password=hash_password(payload.password),
        created_at=now,
        updated_at=now,
    ).model_dump(by_alias=True, exclude={"id"})

    try:
        result = await users_collection.insert_one(doc)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="⚠️ User already exists.")

    doc["_id"] = result.inserted_id
    token = create_jwt_token({"user_id": str(result.inserted_id)})
    return AuthResponse(token=token, user=await _user_out(doc))


# -----------------------
# Login with email & password
# -----------------------
async def login_with_email_password(payload: LoginRequest) -> AuthResponse:
    user = await users_collection.find_one({"email": payload.email.lower()})
    if not user or not verify_password(payload.password, user.get("password", "")):
        raise HTTPException(status_code=401, detail="❌ Invalid credentials.")

    await _touch_activity(user)
    token = create_jwt_token({"user_id": str(user["_id"])})
    return AuthResponse(token=token, user=await _user_out(user))


# -----------------------
# Current user
# -----------------------
async def get_authenticated_user(current_user: dict) -> UserOut:
    user = await _touch_activity(dict(current_user))
    return await _user_out(user)
