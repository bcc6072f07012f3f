# app/controllers/group_controller.py
import logging
import os
import secrets
from typing import List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ..db.mongo import goals_collection, groups_collection, transaction, users_collection
from ..models.group_model import GroupMember, GroupModel
from ..schemas.goal_schema import GoalOut
from ..schemas.group_schema import (
    GroupCreateRequest,
    GroupOut,
    GroupStats,
    GroupUpdateRequest,
    InviteCodeOut,
)
from ..services.progression import percent
from ..utils.datetime_utils import utcnow

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
INVITE_CODE_LEN = min(8, max(6, int(os.getenv("INVITE_CODE_LENGTH", "8"))))
GROUP_DEFAULT_MAX_MEMBERS = int(os.getenv("GROUP_DEFAULT_MAX_MEMBERS", "10"))
DISCOVERY_LIMIT = 10

# Unambiguous chars: no 0/O, 1/I
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_CODE_ATTEMPTS = 20


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _oid(v) -> ObjectId:
    if isinstance(v, ObjectId):
        return v
    if not ObjectId.is_valid(str(v)):
        raise HTTPException(status_code=400, detail="❌ Invalid ObjectId")
    return ObjectId(str(v))


def generate_invite_code() -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(INVITE_CODE_LEN))


def _member(group: dict, user_id: ObjectId) -> Optional[dict]:
    return next((m for m in group.get("members") or [] if m.get("user") == user_id), None)


def _is_admin(group: dict, user_id: ObjectId) -> bool:
    m = _member(group, user_id)
    return bool(m and m.get("role") == "admin")


async def _get_group_or_404(group_id) -> dict:
    group = await groups_collection.find_one({"_id": _oid(group_id)})
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    return group


async def _require_admin(group_id, user_id: ObjectId) -> dict:
    group = await _get_group_or_404(group_id)
    if not _is_admin(group, user_id):
        raise HTTPException(status_code=403, detail="Only group admins can do this")
    return group


async def _live_stats(group_id: ObjectId) -> GroupStats:
    base = {"group_id": group_id, "is_group_goal": True}
    total = await goals_collection.count_documents(base)
    active = await goals_collection.count_documents({**base, "status": "active"})
    completed = await goals_collection.count_documents({**base, "status": "completed"})
    return GroupStats(
        total_goals=total,
        active_goals=active,
        completed_goals=completed,
        completion_rate=percent(completed, total),
    )


async def _group_out(group: dict, viewer_id: ObjectId, with_goals: bool = False) -> GroupOut:
    stats = await _live_stats(group["_id"])
    is_member = _member(group, viewer_id) is not None

    out = GroupOut.model_validate(group)
    out.is_member = is_member
    out.is_admin = _is_admin(group, viewer_id)
    out.active_goals = stats.active_goals
    out.completed_goals = stats.completed_goals
    out.completion_rate = stats.completion_rate
    if not is_member:
        out.invite_code = None

    if with_goals:
        cursor = goals_collection.find({"group_id": group["_id"], "is_group_goal": True}).sort("created_at", -1)
        out.goals = [GoalOut.model_validate(g) async for g in cursor]
    return out


async def _insert_with_unique_code(doc: dict, session=None) -> dict:
    """Insert a group, regenerating the invite code on collision."""
    for _ in range(_CODE_ATTEMPTS):
        try:
            result = await groups_collection.insert_one(doc, session=session)
            doc["_id"] = result.inserted_id
            return doc
        except DuplicateKeyError:
            # collision on invite_code; try again
            doc.pop("_id", None)
            doc["invite_code"] = generate_invite_code()
    raise HTTPException(status_code=500, detail="Failed to generate invite code")


async def _add_member(group: dict, user_id: ObjectId) -> dict:
    """
    Push the member only while there is room and they are not already in.
    The capacity check rides on the filter so two joins can't overfill the group.
    """
    max_members = int(group.get("max_members") or GROUP_DEFAULT_MAX_MEMBERS)
    member = GroupMember(user=user_id, role="member", joined_at=utcnow()).model_dump()

    updated = await groups_collection.find_one_and_update(
        {
            "_id": group["_id"],
            "members.user": {"$ne": user_id},
            f"members.{max_members - 1}": {"$exists": False},
        },
        {"$push": {"members": member}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        fresh = await _get_group_or_404(group["_id"])
        if _member(fresh, user_id):
            raise HTTPException(status_code=400, detail="You are already a member of this group")
        raise HTTPException(status_code=400, detail="Group is full")

    await users_collection.update_one({"_id": user_id}, {"$inc": {"stats.groups_joined": 1}})
    logging.info("User %s joined group %s", user_id, group["_id"])
    return updated


def _check_joinable(group: dict, user_id: ObjectId, invite_code: Optional[str]) -> None:
    if _member(group, user_id):
        raise HTTPException(status_code=400, detail="You are already a member of this group")
    if len(group.get("members") or []) >= int(group.get("max_members") or GROUP_DEFAULT_MAX_MEMBERS):
        raise HTTPException(status_code=400, detail="Group is full")
    if group.get("privacy") == "private":
        if not invite_code or invite_code.strip().upper() != group.get("invite_code"):
            raise HTTPException(status_code=403, detail="Invalid invite code")


# ──────────────────────────────────────────────────────────────────────────────
# Public controller functions
# ──────────────────────────────────────────────────────────────────────────────
async def create_group(data: GroupCreateRequest, current_user: dict) -> GroupOut:
    user_id = current_user["_id"]
    now = utcnow()
    doc = GroupModel(
        name=data.name,
        description=data.description or "",
        category=data.category,
        creator=user_id,
        members=[GroupMember(user=user_id, role="admin", joined_at=now)],
        privacy=data.privacy,
        invite_code=generate_invite_code(),
        max_members=data.max_members or GROUP_DEFAULT_MAX_MEMBERS,
        created_at=now,
    ).model_dump(by_alias=True, exclude={"id"})

    async with transaction() as session:
        doc = await _insert_with_unique_code(doc, session=session)
        await users_collection.update_one({"_id": user_id}, {"$inc": {"stats.groups_joined": 1}}, session=session)

    logging.info("Group %s created by %s", doc["_id"], user_id)
    return await _group_out(doc, user_id)


async def join_group(group_id: str, invite_code: Optional[str], current_user: dict) -> GroupOut:
    user_id = current_user["_id"]
    group = await _get_group_or_404(group_id)
    _check_joinable(group, user_id, invite_code)
    updated = await _add_member(group, user_id)
    return await _group_out(updated, user_id)


async def join_group_by_code(invite_code: str, current_user: dict) -> GroupOut:
    user_id = current_user["_id"]
    code = invite_code.strip().upper()
    group = await groups_collection.find_one({"invite_code": code})
    if not group:
        raise HTTPException(status_code=404, detail="Invalid invite code")
    _check_joinable(group, user_id, code)
    updated = await _add_member(group, user_id)
    return await _group_out(updated, user_id)


async def leave_group(group_id: str, current_user: dict) -> dict:
    user_id = current_user["_id"]
    group = await _get_group_or_404(group_id)
    members = group.get("members") or []
    me = _member(group, user_id)
    if not me:
        raise HTTPException(status_code=400, detail="You are not a member of this group")

    if len(members) == 1:
        # last one out: the group and its goals go with them
        async with transaction() as session:
            removed = await goals_collection.delete_many({"group_id": group["_id"]}, session=session)
            await groups_collection.delete_one({"_id": group["_id"]}, session=session)
        logging.info("Group %s deleted with %d goals (last member left)", group["_id"], removed.deleted_count)
        return {"deleted": True}

    admins = [m for m in members if m.get("role") == "admin"]
    if me.get("role") == "admin" and len(admins) == 1:
        raise HTTPException(
            status_code=400,
            detail="You are the only admin. Promote another member before leaving",
        )

    await groups_collection.update_one({"_id": group["_id"]}, {"$pull": {"members": {"user": user_id}}})
    return {"deleted": False}


async def update_group(group_id: str, data: GroupUpdateRequest, current_user: dict) -> GroupOut:
    user_id = current_user["_id"]
    group = await _require_admin(group_id, user_id)

    changes = data.model_dump(exclude_none=True)
    if "max_members" in changes and changes["max_members"] < len(group.get("members") or []):
        raise HTTPException(status_code=400, detail="maxMembers cannot be lower than the current member count")
    if not changes:
        return await _group_out(group, user_id)

    updated = await groups_collection.find_one_and_update(
        {"_id": group["_id"]},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    return await _group_out(updated, user_id)


async def regenerate_invite_code(group_id: str, current_user: dict) -> InviteCodeOut:
    group = await _require_admin(group_id, current_user["_id"])

    for _ in range(_CODE_ATTEMPTS):
        candidate = generate_invite_code()
        if candidate == group.get("invite_code"):
            continue
        try:
            await groups_collection.update_one({"_id": group["_id"]}, {"$set": {"invite_code": candidate}})
            return InviteCodeOut(invite_code=candidate)
        except DuplicateKeyError:
            continue

    raise HTTPException(status_code=500, detail="Failed to generate invite code")


async def get_user_groups(current_user: dict) -> dict:
    """The caller's groups plus a handful of public groups they could join."""
    user_id = current_user["_id"]

    mine_cursor = groups_collection.find({"members.user": user_id}).sort("created_at", -1)
    mine: List[GroupOut] = [await _group_out(g, user_id) async for g in mine_cursor]

    discover_cursor = (
        groups_collection.find({"privacy": "public", "members.user": {"$ne": user_id}})
        .sort("created_at", -1)
        .limit(DISCOVERY_LIMIT)
    )
    discover: List[GroupOut] = [await _group_out(g, user_id) async for g in discover_cursor]

    return {"groups": mine, "publicGroups": discover}


async def get_group(group_id: str, current_user: dict) -> GroupOut:
    user_id = current_user["_id"]
    group = await _get_group_or_404(group_id)
    if group.get("privacy") == "private" and not _member(group, user_id):
        raise HTTPException(status_code=403, detail="This group is private")
    return await _group_out(group, user_id, with_goals=True)


async def get_group_stats(group_id: str, current_user: dict) -> GroupStats:
    group = await _get_group_or_404(group_id)
    if group.get("privacy") == "private" and not _member(group, current_user["_id"]):
        raise HTTPException(status_code=403, detail="This group is private")
    return await _live_stats(group["_id"])
