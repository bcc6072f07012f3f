# app/schemas/achievement_schema.py
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, Field

from ._base_schema import ApiModel, PyObjectId


class AchievementCriteriaOut(ApiModel):
    type: str
    threshold: int
    category: Optional[str] = None
    time_of_day: Optional[str] = None
    scope: Optional[str] = None


class AchievementOut(ApiModel):
    id: PyObjectId = Field(validation_alias=AliasChoices("_id", "id"))
    title: str
    description: str = ""
    icon: str = ""
    category: str
    rarity: str = "common"
    xp_reward: int = 0
    criteria: Optional[AchievementCriteriaOut] = None


class UserAchievementOut(AchievementOut):
    progress: int = 0                    # percent, 0..100
    raw_progress: int = 0
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class AchievementStats(ApiModel):
    total: int = 0
    unlocked: int = 0
    in_progress: int = 0
    locked: int = 0
    completion_rate: int = 0


class UserAchievementsResponse(ApiModel):
    unlocked: List[UserAchievementOut] = []
    in_progress: List[UserAchievementOut] = []
    locked: List[UserAchievementOut] = []
    stats: AchievementStats = AchievementStats()


class AchievementCheckResult(ApiModel):
    unlocked: bool = False
    new_achievements: List[AchievementOut] = []


class AchievementProgressOut(ApiModel):
    achievement: AchievementOut
    raw_progress: int = 0
    threshold: int = 0
    progress: int = 0                    # percent
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class LeaderboardEntry(ApiModel):
    id: PyObjectId = Field(validation_alias=AliasChoices("_id", "id"))
    username: Optional[str] = None
    achievement_count: int = 0
    total_xp: int = Field(default=0, serialization_alias="totalXP")
    level: int = 1


class SeedResult(ApiModel):
    matched: int = 0
    modified: int = 0
    upserted: int = 0
    total: int = 0
    achievements: List[AchievementOut] = []
