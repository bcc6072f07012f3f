# app/models/goal_model.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from bson import ObjectId

GoalCategory = Literal[
    "fitness", "reading", "learning", "meditation", "nutrition", "productivity",
    "creativity", "social", "finance", "career", "other",
]
Difficulty = Literal["easy", "medium", "hard"]
GoalStatus = Literal["active", "completed", "failed"]

# difficulty -> (xp_reward, token_reward), fixed at creation time
DIFFICULTY_REWARDS = {
    "easy": (50, 5),
    "medium": (100, 10),
    "hard": (200, 20),
}


class MemberCompletion(BaseModel):
    user: ObjectId
    status: Literal["active", "completed"] = "active"
    completed_date: Optional[datetime] = None

    model_config = {"arbitrary_types_allowed": True}


class GoalModel(BaseModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    user: ObjectId                       # creator / owner
    goal_name: str
    description: str = ""
    category: GoalCategory = "other"
    difficulty: Difficulty = "medium"
    deadline: datetime
    status: GoalStatus = "active"
    progress: float = 0

    is_group_goal: bool = False
    group_id: Optional[ObjectId] = None
    member_completions: List[MemberCompletion] = Field(default_factory=list)
    completion_percentage: int = 0

    completed_date: Optional[datetime] = None
    xp_reward: int = 100
    token_reward: int = 10

    # bumped on every write; writes are conditional on the value they read
    version: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
