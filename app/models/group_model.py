# app/models/group_model.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field
from bson import ObjectId

from .goal_model import GoalCategory


class GroupMember(BaseModel):
    user: ObjectId
    role: Literal["admin", "member"] = "member"
    joined_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"arbitrary_types_allowed": True}


class GroupModel(BaseModel):
    id: Optional[ObjectId] = Field(alias="_id", default=None)
    name: str
    description: str = ""
    category: GoalCategory = "other"
    creator: ObjectId
    members: List[GroupMember] = Field(default_factory=list)
    privacy: Literal["public", "private"] = "public"
    invite_code: str                     # unique index
    max_members: int = 10

    # denormalized counters, maintained by the goal lifecycle
    active_goals: int = 0
    completed_goals: int = 0
    total_xp: int = 0

    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
