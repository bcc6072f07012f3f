# app/controllers/goal_controller.py
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument

from ..db.mongo import goals_collection, groups_collection, transaction, users_collection
from ..models.goal_model import DIFFICULTY_REWARDS, GoalModel, MemberCompletion
from ..schemas.achievement_schema import AchievementCheckResult
from ..schemas.goal_schema import (
    CompletionRewards,
    GoalCounts,
    GoalCreateRequest,
    GoalOut,
    UserGoalsResponse,
)
from ..services.progression import (
    ensure_user_defaults,
    percent,
    record_activity,
    update_streak,
)
from ..utils.datetime_utils import to_naive_utc, utcnow
from .achievement_controller import safe_evaluate_achievements, sync_level


# ---------------------------
# Helpers
# ---------------------------

def _ensure_oid(id_str) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    if not ObjectId.is_valid(str(id_str)):
        raise HTTPException(status_code=400, detail="❌ Invalid ObjectId")
    return ObjectId(str(id_str))


def _is_member(group: dict, user_id: ObjectId) -> bool:
    return any(m.get("user") == user_id for m in group.get("members") or [])


def _member_entry(goal: dict, user_id: ObjectId) -> Optional[dict]:
    return next((c for c in goal.get("member_completions") or [] if c.get("user") == user_id), None)


def completion_percentage(member_completions: List[dict]) -> int:
    total = len(member_completions)
    done = sum(1 for c in member_completions if c.get("status") == "completed")
    return percent(done, total)


def _goal_out(doc: dict, viewer_id: Optional[ObjectId] = None) -> GoalOut:
    out = GoalOut.model_validate(doc)
    if doc.get("is_group_goal") and viewer_id is not None:
        entry = _member_entry(doc, viewer_id)
        out.user_completed = bool(entry and entry.get("status") == "completed")
    return out


async def _get_goal_or_404(goal_id) -> dict:
    goal = await goals_collection.find_one({"_id": _ensure_oid(goal_id)})
    if not goal:
        raise HTTPException(status_code=404, detail="Goal not found")
    return goal


async def _get_user_or_404(user_id: ObjectId) -> dict:
    user = await users_collection.find_one({"_id": user_id})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return ensure_user_defaults(user)


async def _write_goal(goal: dict, changes: Dict[str, Any], session=None) -> None:
    """
    Optimistic write: only applies if nobody else wrote the goal since we read it.
    """
    result = await goals_collection.update_one(
        {"_id": goal["_id"], "version": goal.get("version")},
        {"$set": changes, "$inc": {"version": 1}},
        session=session,
    )
    if result.matched_count == 0:
        raise HTTPException(status_code=409, detail="Goal was modified by another request, please retry")


async def _grant_completion_rewards(user: dict, goal: dict, now: datetime, session=None) -> CompletionRewards:
    """Tokens, goalsCompleted, XP/level, streak and activity for one completion."""
    xp = int(goal.get("xp_reward") or 0)
    tokens = int(goal.get("token_reward") or 0)

    update_streak(user, now)
    record_activity(user, now)

    saved = await users_collection.find_one_and_update(
        {"_id": user["_id"]},
        {
            "$inc": {"tokens": tokens, "total_xp": xp, "stats.goals_completed": 1},
            "$set": {
                "current_streak": user["current_streak"],
                "longest_streak": user["longest_streak"],
                "last_active": user["last_active"],
                "activity": user["activity"],
                "updated_at": now,
            },
        },
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if saved is None:
        raise HTTPException(status_code=404, detail="User not found")

    # level follows the stored total, not our earlier read of it
    previous_level = int(saved.get("level") or 1)
    new_level = await sync_level(user["_id"], saved["total_xp"], session=session)
    return CompletionRewards(
        xp=xp,
        tokens=tokens,
        total_xp=int(saved["total_xp"]),
        level=new_level,
        leveled_up=new_level > previous_level,
        current_streak=user["current_streak"],
    )


async def _close_group_goal(goal: dict, session=None) -> None:
    """The whole goal reached completed: move it from active to completed on its group."""
    await groups_collection.update_one(
        {"_id": goal["group_id"]},
        {"$inc": {"active_goals": -1, "completed_goals": 1, "total_xp": int(goal.get("xp_reward") or 0)}},
        session=session,
    )


def _completion_payload(goal_doc: dict, viewer_id: ObjectId, rewards: CompletionRewards,
                        achievements: AchievementCheckResult) -> dict:
    return {"goal": _goal_out(goal_doc, viewer_id), "rewards": rewards, "achievements": achievements}


# ---------------------------
# Create
# ---------------------------

async def create_goal(data: GoalCreateRequest, current_user: dict) -> GoalOut:
    user_id = current_user["_id"]
    group = None
    member_completions: List[MemberCompletion] = []

    if data.is_group_goal:
        if not data.group_id:
            raise HTTPException(status_code=400, detail="groupId is required for a group goal")
        group = await groups_collection.find_one({"_id": _ensure_oid(data.group_id)})
        if not group:
            raise HTTPException(status_code=404, detail="Group not found")
        if not _is_member(group, user_id):
            raise HTTPException(status_code=403, detail="You are not a member of this group")
        # snapshot of the members at creation time
        member_completions = [MemberCompletion(user=m["user"]) for m in group.get("members") or []]

    xp_reward, token_reward = DIFFICULTY_REWARDS[data.difficulty]
    doc = GoalModel(
        user=user_id,
        goal_name=data.goal_name,
        description=data.description or "",
        category=data.category,
        difficulty=data.difficulty,
        deadline=to_naive_utc(data.deadline),
        is_group_goal=bool(group),
        group_id=group["_id"] if group else None,
        member_completions=member_completions,
        xp_reward=xp_reward,
        token_reward=token_reward,
        created_at=utcnow(),
    ).model_dump(by_alias=True, exclude={"id"})

    async with transaction() as session:
        result = await goals_collection.insert_one(doc, session=session)
        if group:
            await groups_collection.update_one({"_id": group["_id"]}, {"$inc": {"active_goals": 1}}, session=session)
        await users_collection.update_one({"_id": user_id}, {"$inc": {"stats.goals_created": 1}}, session=session)

    doc["_id"] = result.inserted_id
    return _goal_out(doc, user_id)


# ---------------------------
# Read
# ---------------------------

async def _user_group_ids(user_id: ObjectId) -> List[ObjectId]:
    return [g["_id"] async for g in groups_collection.find({"members.user": user_id}, {"_id": 1})]


async def get_user_goals(current_user: dict) -> UserGoalsResponse:
    user_id = current_user["_id"]

    personal = [
        doc async for doc in goals_collection.find({"user": user_id, "is_group_goal": False}).sort("created_at", -1)
    ]
    group_ids = await _user_group_ids(user_id)
    group_goals: List[dict] = []
    if group_ids:
        group_goals = [
            doc async for doc in goals_collection.find(
                {"is_group_goal": True, "group_id": {"$in": group_ids}}
            ).sort("created_at", -1)
        ]

    all_goals = [_goal_out(d, user_id) for d in personal + group_goals]

    def _state(g: GoalOut) -> str:
        # group goals are bucketed by the caller's own completion
        if g.is_group_goal:
            return "completed" if g.user_completed else "active"
        return g.status

    active = [g for g in all_goals if _state(g) == "active"]
    completed = [g for g in all_goals if _state(g) == "completed"]
    failed = [g for g in all_goals if not g.is_group_goal and g.status == "failed"]

    return UserGoalsResponse(
        all=all_goals,
        active=active,
        completed=completed,
        failed=failed,
        counts=GoalCounts(total=len(all_goals), active=len(active), completed=len(completed), failed=len(failed)),
    )


async def get_group_goals(group_id: str, current_user: dict) -> List[GoalOut]:
    gid = _ensure_oid(group_id)
    group = await groups_collection.find_one({"_id": gid})
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    if not _is_member(group, current_user["_id"]):
        raise HTTPException(status_code=403, detail="Not authorized to view this group's goals")

    cursor = goals_collection.find({"group_id": gid, "is_group_goal": True}).sort("created_at", -1)
    return [_goal_out(doc, current_user["_id"]) async for doc in cursor]


# ---------------------------
# Complete
# ---------------------------

async def _complete_personal_goal(goal: dict, user_id: ObjectId) -> Tuple[dict, CompletionRewards]:
    if goal.get("user") != user_id:
        raise HTTPException(status_code=403, detail="Not authorized to complete this goal")
    if goal.get("status") == "completed":
        raise HTTPException(status_code=400, detail="Goal is already completed")
    if goal.get("status") != "active":
        raise HTTPException(status_code=400, detail="Only active goals can be completed")

    user = await _get_user_or_404(user_id)
    now = utcnow()

    async with transaction() as session:
        await _write_goal(goal, {"status": "completed", "completed_date": now, "progress": 100}, session)
        rewards = await _grant_completion_rewards(user, goal, now, session)
        if goal.get("group_id"):
            await _close_group_goal(goal, session)

    logging.info("Goal %s completed by %s", goal["_id"], user_id)
    fresh = await goals_collection.find_one({"_id": goal["_id"]})
    return fresh, rewards


async def _complete_group_goal(goal: dict, user_id: ObjectId) -> Tuple[dict, CompletionRewards]:
    group = await groups_collection.find_one({"_id": goal.get("group_id")})
    if not group:
        raise HTTPException(status_code=404, detail="Group not found")
    if not _is_member(group, user_id):
        raise HTTPException(status_code=403, detail="Not authorized to complete this goal")

    completions = [dict(c) for c in goal.get("member_completions") or []]
    entry = next((c for c in completions if c.get("user") == user_id), None)
    if entry is not None and entry.get("status") == "completed":
        raise HTTPException(status_code=400, detail="You have already completed this goal")
    if goal.get("status") == "completed":
        raise HTTPException(status_code=400, detail="Goal is already completed")
    if goal.get("status") != "active":
        raise HTTPException(status_code=400, detail="Only active goals can be completed")
    if entry is None:
        # joined the group after the goal was created
        entry = MemberCompletion(user=user_id).model_dump()
        completions.append(entry)

    user = await _get_user_or_404(user_id)
    now = utcnow()
    entry["status"] = "completed"
    entry["completed_date"] = now

    changes: Dict[str, Any] = {
        "member_completions": completions,
        "completion_percentage": completion_percentage(completions),
    }
    finished = all(c.get("status") == "completed" for c in completions)
    if finished:
        changes.update({"status": "completed", "completed_date": now, "progress": 100})

    async with transaction() as session:
        await _write_goal(goal, changes, session)
        rewards = await _grant_completion_rewards(user, goal, now, session)
        if finished:
            await _close_group_goal(goal, session)

    fresh = await goals_collection.find_one({"_id": goal["_id"]})
    # the stored percentage is re-derived from what actually landed
    fresh["completion_percentage"] = completion_percentage(fresh.get("member_completions") or [])
    if finished:
        logging.info("Group goal %s completed by all %d members", goal["_id"], len(completions))
    return fresh, rewards


async def complete_goal(goal_id: str, current_user: dict) -> dict:
    user_id = current_user["_id"]
    goal = await _get_goal_or_404(goal_id)

    if goal.get("is_group_goal"):
        fresh, rewards = await _complete_group_goal(goal, user_id)
    else:
        fresh, rewards = await _complete_personal_goal(goal, user_id)

    achievements = await safe_evaluate_achievements(user_id)
    return _completion_payload(fresh, user_id, rewards, achievements)


# ---------------------------
# Progress / Delete
# ---------------------------

async def update_goal_progress(goal_id: str, progress: float, current_user: dict) -> dict:
    user_id = current_user["_id"]
    goal = await _get_goal_or_404(goal_id)
    if goal.get("user") != user_id:
        raise HTTPException(status_code=403, detail="Not authorized to update this goal")

    clamped = min(100.0, max(0.0, float(progress)))

    if clamped >= 100 and goal.get("status") == "active" and not goal.get("is_group_goal"):
        fresh, rewards = await _complete_personal_goal(goal, user_id)
        achievements = await safe_evaluate_achievements(user_id)
        return _completion_payload(fresh, user_id, rewards, achievements)

    await _write_goal(goal, {"progress": clamped})
    fresh = await goals_collection.find_one({"_id": goal["_id"]})
    return {"goal": _goal_out(fresh, user_id)}


async def delete_goal(goal_id: str, current_user: dict) -> None:
    goal = await _get_goal_or_404(goal_id)
    if goal.get("user") != current_user["_id"]:
        raise HTTPException(status_code=403, detail="Not authorized to delete this goal")

    async with transaction() as session:
        if goal.get("group_id"):
            counter = {"active": "active_goals", "completed": "completed_goals"}.get(goal.get("status"))
            if counter:
                # floored at zero on the server
                await groups_collection.update_one(
                    {"_id": goal["group_id"], counter: {"$gt": 0}},
                    {"$inc": {counter: -1}},
                    session=session,
                )

        await goals_collection.delete_one({"_id": goal["_id"]}, session=session)
