# app/models/achievement_model.py
from datetime import datetime
from typing import Literal, Optional
from pydantic import BaseModel, Field
from bson import ObjectId

CriteriaType = Literal["goal_count", "streak_days", "join_groups", "complete_achievements", "group_goals"]
Rarity = Literal["common", "uncommon", "rare", "legendary"]
TimeOfDay = Literal["morning", "afternoon", "evening", "night"]
AchievementCategory = Literal[
    "consistency", "streaks", "reading", "learning", "fitness", "health", "wellness",
    "social", "productivity", "creativity", "finance", "meta",
]


class AchievementCriteria(BaseModel):
    type: CriteriaType
    threshold: int
    category: Optional[str] = None          # goal_count: goal category filter
    time_of_day: Optional[TimeOfDay] = None  # goal_count: completion-hour filter
    # group_goals: "group" counts the group goals of the user's groups,
    # "members" counts every completed goal owned by a fellow member
    scope: Literal["group", "members"] = "group"


class AchievementModel(BaseModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    title: str                               # unique, upsert key
    description: str
    icon: str
    category: AchievementCategory
    rarity: Rarity = "common"
    xp_reward: int
    criteria: AchievementCriteria

    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
