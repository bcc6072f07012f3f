# app/schemas/group_schema.py
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import AliasChoices, Field, field_validator

from ._base_schema import ApiModel, PyObjectId
from .goal_schema import GoalOut
from ..models.goal_model import GoalCategory


# ✅ Requests
class GroupCreateRequest(ApiModel):
    name: str
    description: Optional[str] = ""
    category: GoalCategory = "other"
    privacy: Literal["public", "private"] = "public"
    max_members: Optional[int] = Field(default=None, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def _name_required(cls, v):
        v = str(v or "").strip()
        if not v:
            raise ValueError("Group name is required")
        return v


class GroupUpdateRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[GoalCategory] = None
    privacy: Optional[Literal["public", "private"]] = None
    max_members: Optional[int] = Field(default=None, ge=1)

    @field_validator("name", mode="before")
    @classmethod
    def _trim(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class GroupJoinRequest(ApiModel):
    group_id: str
    invite_code: Optional[str] = None


class JoinByCodeRequest(ApiModel):
    invite_code: str

    @field_validator("invite_code", mode="before")
    @classmethod
    def _code_required(cls, v):
        v = str(v or "").strip().upper()
        if not v:
            raise ValueError("Invite code is required")
        return v


# ✅ Responses
class GroupMemberOut(ApiModel):
    user: PyObjectId
    role: str = "member"
    joined_at: Optional[datetime] = None


class GroupStats(ApiModel):
    total_goals: int = 0
    active_goals: int = 0
    completed_goals: int = 0
    completion_rate: int = 0


class GroupOut(ApiModel):
    id: PyObjectId = Field(validation_alias=AliasChoices("_id", "id"))
    name: str
    description: str = ""
    category: str = "other"
    creator: PyObjectId
    members: List[GroupMemberOut] = []
    privacy: str = "public"
    invite_code: Optional[str] = None      # members only
    max_members: int = 10
    active_goals: int = 0
    completed_goals: int = 0
    total_xp: int = Field(default=0, serialization_alias="totalXP")
    completion_rate: int = 0
    created_at: Optional[datetime] = None

    is_member: bool = False
    is_admin: bool = False
    goals: Optional[List[GoalOut]] = None


class InviteCodeOut(ApiModel):
    invite_code: str
