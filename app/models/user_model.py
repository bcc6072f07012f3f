# app/models/user_model.py
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, EmailStr, Field
from bson import ObjectId


class UserStats(BaseModel):
    goals_created: int = 0
    goals_completed: int = 0
    achievements_unlocked: int = 0
    groups_joined: int = 0


class ActivityEntry(BaseModel):
    date: datetime          # local calendar day at 00:00
    count: int = 0


class AchievementProgress(BaseModel):
    progress: int = 0                   # raw count toward criteria.threshold
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class UserModel(BaseModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    email: EmailStr
    username: str
    password: str                        # bcrypt hash
    role: str = "user"

    total_xp: int = 0
    level: int = 1
    tokens: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_active: Optional[datetime] = None

    stats: UserStats = Field(default_factory=UserStats)
    activity: List[ActivityEntry] = Field(default_factory=list)
    # keyed by str(achievement _id)
    achievements: Dict[str, AchievementProgress] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = None

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
        "extra": "ignore",
    }
