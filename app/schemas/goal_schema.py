# app/schemas/goal_schema.py
from datetime import datetime
from typing import List, Optional
from pydantic import AliasChoices, Field, field_validator

from ._base_schema import ApiModel, PyObjectId
from ..models.goal_model import Difficulty, GoalCategory, GoalStatus


# ✅ Requests
class GoalCreateRequest(ApiModel):
    goal_name: str
    description: Optional[str] = ""
    category: GoalCategory = "other"
    difficulty: Difficulty = "medium"
    deadline: datetime
    is_group_goal: bool = False
    group_id: Optional[str] = None

    @field_validator("goal_name", mode="before")
    @classmethod
    def _name_required(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("goalName is required")
        return v

    @field_validator("category", "difficulty", mode="before")
    @classmethod
    def _default_when_blank(cls, v, info):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "other" if info.field_name == "category" else "medium"
        return v


class GoalProgressRequest(ApiModel):
    progress: float


# ✅ Responses
class MemberCompletionOut(ApiModel):
    user: PyObjectId
    status: str
    completed_date: Optional[datetime] = None


class GoalOut(ApiModel):
    id: PyObjectId = Field(validation_alias=AliasChoices("_id", "id"))
    user: PyObjectId
    goal_name: str
    description: str = ""
    category: str = "other"
    difficulty: str = "medium"
    deadline: Optional[datetime] = None
    status: GoalStatus = "active"
    progress: float = 0
    is_group_goal: bool = False
    group_id: Optional[PyObjectId] = None
    completed_date: Optional[datetime] = None
    xp_reward: int = 0
    token_reward: int = 0
    member_completions: List[MemberCompletionOut] = []
    completion_percentage: int = 0
    created_at: Optional[datetime] = None

    # caller's own completion on group goals
    user_completed: Optional[bool] = None


class GoalCounts(ApiModel):
    total: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0


class UserGoalsResponse(ApiModel):
    all: List[GoalOut] = []
    active: List[GoalOut] = []
    completed: List[GoalOut] = []
    failed: List[GoalOut] = []
    counts: GoalCounts = GoalCounts()


class CompletionRewards(ApiModel):
    xp: int
    tokens: int
    total_xp: int = Field(serialization_alias="totalXP")
    level: int
    leveled_up: bool = False
    current_streak: int = 0
