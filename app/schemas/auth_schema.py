from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, EmailStr, Field, field_validator

from ._base_schema import ApiModel, PyObjectId

# ✅ Request Schemas
class RegisterRequest(ApiModel):
    username: str
    email: EmailStr
    password: str = Field(min_length=6)

    @field_validator("username", mode="before")
    @classmethod
    def _trim(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("username is required")
        return v

class LoginRequest(ApiModel):
    email: EmailStr
    password: str

# ✅ Response Schemas
class UserStatsOut(ApiModel):
    goals_created: int = 0
    goals_completed: int = 0
    achievements_unlocked: int = 0
    groups_joined: int = 0

class ActivityOut(ApiModel):
    date: datetime
    count: int = 0

class BadgeOut(ApiModel):
    name: Optional[str] = None
    icon: Optional[str] = None
    description: Optional[str] = None
    earned_at: Optional[datetime] = None

class UserOut(ApiModel):
    id: PyObjectId = Field(validation_alias=AliasChoices("_id", "id"))
    email: EmailStr
    username: str
    role: str = "user"
    total_xp: int = Field(default=0, serialization_alias="totalXP")
    level: int = 1
    tokens: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_active: Optional[datetime] = None
    stats: UserStatsOut = UserStatsOut()
    activity: List[ActivityOut] = []
    badges: List[BadgeOut] = []
    created_at: Optional[datetime] = None

class AuthResponse(ApiModel):
    token: str
    user: UserOut
