# app/controllers/achievement_controller.py
from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

from bson import ObjectId
from fastapi import HTTPException
from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from ..db.mongo import achievements_collection, goals_collection, groups_collection, users_collection
from ..models.achievement_model import AchievementModel
from ..schemas.achievement_schema import (
    AchievementCheckResult,
    AchievementOut,
    AchievementProgressOut,
    AchievementStats,
    LeaderboardEntry,
    SeedResult,
    UserAchievementOut,
    UserAchievementsResponse,
)
from ..services.progression import apply_xp, ensure_user_defaults, level_for_xp, percent, progress_percent, time_of_day
from ..utils.datetime_utils import utcnow

# ──────────────────────────────────────────────────────────────────────────────
# Config
# ──────────────────────────────────────────────────────────────────────────────
# Evaluation seeds the minimal catalog when it finds none (before admin seeding ran).
ACHIEVEMENTS_LAZY_SEED = os.getenv("ACHIEVEMENTS_LAZY_SEED", "true").strip().lower() in ("1", "true", "yes")

LEADERBOARD_SIZE = 10

# Canonical catalog, upserted by title
_DEFAULT_ACHIEVEMENTS: List[Dict[str, Any]] = [
    {
        "title": "First Steps",
        "description": "Complete your first goal",
        "icon": "👣",
        "category": "productivity",
        "rarity": "common",
        "xp_reward": 50,
        "criteria": {"type": "goal_count", "threshold": 1},
    },
    {
        "title": "Early Bird",
        "description": "Complete 5 goals in the morning",
        "icon": "🌅",
        "category": "consistency",
        "rarity": "common",
        "xp_reward": 100,
        "criteria": {"type": "goal_count", "threshold": 5, "time_of_day": "morning"},
    },
    {
        "title": "Goal Getter",
        "description": "Complete 10 goals of any type",
        "icon": "🎯",
        "category": "productivity",
        "rarity": "common",
        "xp_reward": 150,
        "criteria": {"type": "goal_count", "threshold": 10},
    },
    {
        "title": "Fitness Fanatic",
        "description": "Complete 15 fitness goals",
        "icon": "💪",
        "category": "health",
        "rarity": "uncommon",
        "xp_reward": 200,
        "criteria": {"type": "goal_count", "threshold": 15, "category": "fitness"},
    },
    {
        "title": "Bookworm",
        "description": "Complete 10 reading goals",
        "icon": "📚",
        "category": "learning",
        "rarity": "uncommon",
        "xp_reward": 200,
        "criteria": {"type": "goal_count", "threshold": 10, "category": "reading"},
    },
    {
        "title": "Streak Master",
        "description": "Maintain a 7-day streak",
        "icon": "🔥",
        "category": "consistency",
        "rarity": "uncommon",
        "xp_reward": 250,
        "criteria": {"type": "streak_days", "threshold": 7},
    },
    {
        "title": "Social Butterfly",
        "description": "Join 3 different groups",
        "icon": "🦋",
        "category": "social",
        "rarity": "uncommon",
        "xp_reward": 200,
        "criteria": {"type": "join_groups", "threshold": 3},
    },
    {
        "title": "Team Player",
        "description": "Finish 3 group goals with your groups",
        "icon": "🤝",
        "category": "social",
        "rarity": "uncommon",
        "xp_reward": 200,
        "criteria": {"type": "group_goals", "threshold": 3, "scope": "group"},
    },
    {
        "title": "Achievement Hunter",
        "description": "Unlock 5 other achievements",
        "icon": "🏆",
        "category": "meta",
        "rarity": "rare",
        "xp_reward": 300,
        "criteria": {"type": "complete_achievements", "threshold": 5},
    },
    {
        "title": "Iron Will",
        "description": "Maintain a 30-day streak",
        "icon": "⚙️",
        "category": "consistency",
        "rarity": "rare",
        "xp_reward": 500,
        "criteria": {"type": "streak_days", "threshold": 30},
    },
    {
        "title": "Centurion",
        "description": "Complete 100 goals of any type",
        "icon": "🏅",
        "category": "productivity",
        "rarity": "legendary",
        "xp_reward": 1000,
        "criteria": {"type": "goal_count", "threshold": 100},
    },
]

# Lazy seed: a strict subset of the catalog so a later full seed never contradicts it
_MINIMAL_TITLES = ("First Steps", "Goal Getter")


# ------------- helpers -------------
def _oid(v) -> ObjectId:
    if isinstance(v, ObjectId):
        return v
    if not ObjectId.is_valid(str(v)):
        raise HTTPException(status_code=400, detail="Invalid ObjectId format.")
    return ObjectId(str(v))


def _achievement_out(doc: dict) -> AchievementOut:
    return AchievementOut.model_validate(doc)


async def _load_catalog() -> List[dict]:
    # xp ascending so meta achievements see the unlocks granted earlier in the same pass
    cursor = achievements_collection.find().sort([("xp_reward", 1), ("title", 1)])
    return [doc async for doc in cursor]


async def _completed_goals_for(user_id: ObjectId) -> List[dict]:
    """
    Goals the user has completed, as {category, completed_date} rows:
    personal goals they own plus group goals where their own member entry is complete.
    """
    rows: List[dict] = []
    async for goal in goals_collection.find({"user": user_id, "is_group_goal": False, "status": "completed"}):
        rows.append({"category": goal.get("category"), "completed_date": goal.get("completed_date")})

    async for goal in goals_collection.find({
        "is_group_goal": True,
        "member_completions": {"$elemMatch": {"user": user_id, "status": "completed"}},
    }):
        entry = next(
            (c for c in goal.get("member_completions") or [] if c.get("user") == user_id),
            {},
        )
        rows.append({"category": goal.get("category"), "completed_date": entry.get("completed_date")})
    return rows


async def _group_goal_count(user_id: ObjectId, scope: str) -> int:
    groups = [g async for g in groups_collection.find({"members.user": user_id})]
    if not groups:
        return 0

    if scope == "members":
        member_ids = {m.get("user") for g in groups for m in (g.get("members") or []) if m.get("user")}
        return await goals_collection.count_documents({
            "user": {"$in": list(member_ids)},
            "status": "completed",
        })

    return await goals_collection.count_documents({
        "group_id": {"$in": [g["_id"] for g in groups]},
        "is_group_goal": True,
        "status": "completed",
    })


async def _raw_progress(
    criteria: dict,
    user: dict,
    completed_goals: List[dict],
    group_cache: Dict[str, int],
) -> int:
    ctype = criteria.get("type")

    if ctype == "goal_count":
        rows = completed_goals
        if criteria.get("category"):
            rows = [g for g in rows if g.get("category") == criteria["category"]]
        elif criteria.get("time_of_day"):
            rows = [
                g for g in rows
                if g.get("completed_date") and time_of_day(g["completed_date"]) == criteria["time_of_day"]
            ]
        return len(rows)

    if ctype == "streak_days":
        return int(user.get("current_streak") or 0)

    if ctype == "join_groups":
        return int(user["stats"].get("groups_joined") or 0)

    if ctype == "complete_achievements":
        return int(user["stats"].get("achievements_unlocked") or 0)

    if ctype == "group_goals":
        scope = criteria.get("scope") or "group"
        if scope not in group_cache:
            group_cache[scope] = await _group_goal_count(user["_id"], scope)
        return group_cache[scope]

    logging.warning("Unknown achievement criteria type: %s", ctype)
    return 0


# ------------- seeding -------------
async def seed_default_achievements(minimal: bool = False) -> SeedResult:
    """
    Idempotent upsert of the default catalog by 'title'.
    - Sets/updates every catalog field.
    - Sets created_at on first insert.
    """
    try:
        await achievements_collection.create_index("title", unique=True)
    except PyMongoError as e:
        logging.warning("Achievement title index not created: %s", e)

    seed = [a for a in _DEFAULT_ACHIEVEMENTS if not minimal or a["title"] in _MINIMAL_TITLES]
    now = utcnow()
    matched = modified = upserted = 0

    for item in seed:
        fields = AchievementModel(**item).model_dump(exclude={"id", "created_at"})
        result = await achievements_collection.update_one(
            {"title": item["title"]},
            {"$set": fields, "$setOnInsert": {"created_at": now}},
            upsert=True,
        )
        matched += result.matched_count
        modified += result.modified_count
        upserted += 1 if result.upserted_id is not None else 0

    logging.info("Seeded achievements: %d upserted, %d updated of %d", upserted, modified, len(seed))

    titles = [a["title"] for a in seed]
    docs = [doc async for doc in achievements_collection.find({"title": {"$in": titles}})]
    return SeedResult(
        matched=matched,
        modified=modified,
        upserted=upserted,
        total=len(seed),
        achievements=[_achievement_out(d) for d in docs],
    )


# ------------- evaluation -------------
async def sync_level(user_id: ObjectId, total_xp: int, session=None) -> int:
    """Raise the stored level to match a stored XP total; returns the level after the write."""
    saved = await users_collection.find_one_and_update(
        {"_id": user_id},
        {"$max": {"level": level_for_xp(int(total_xp or 0))}},
        return_document=ReturnDocument.AFTER,
        session=session,
    )
    if saved is None:
        raise HTTPException(status_code=404, detail="User not found")
    return int(saved["level"])


async def evaluate_achievements(user_id) -> AchievementCheckResult:
    """
    Recompute progress toward every achievement the user has not unlocked yet and
    unlock those whose threshold is met. Each unlock grants its XP exactly once.
    """
    uid = _oid(user_id)
    user = await users_collection.find_one({"_id": uid})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    ensure_user_defaults(user)

    catalog = await _load_catalog()
    if not catalog and ACHIEVEMENTS_LAZY_SEED:
        logging.info("No achievements found, seeding minimal defaults")
        await seed_default_achievements(minimal=True)
        catalog = await _load_catalog()

    completed_goals = await _completed_goals_for(uid)
    state: Dict[str, dict] = user["achievements"]
    group_cache: Dict[str, int] = {}
    now = utcnow()

    updates: Dict[str, dict] = {}
    newly_unlocked: List[dict] = []
    xp_gained = 0

    # complete_achievements counts unlocks from earlier passes; stop on a pass that unlocks nothing
    pending = list(catalog)
    while pending:
        still_locked: List[dict] = []
        unlocked_this_pass = 0

        for achievement in pending:
            key = str(achievement["_id"])
            entry = dict(state.get(key) or {"progress": 0, "unlocked": False, "unlocked_at": None})
            if entry.get("unlocked"):
                continue

            criteria = achievement.get("criteria") or {}
            progress = await _raw_progress(criteria, user, completed_goals, group_cache)
            entry["progress"] = progress

            if progress >= int(criteria.get("threshold") or 0):
                entry["unlocked"] = True
                entry["unlocked_at"] = now
                reward = int(achievement.get("xp_reward") or 0)
                apply_xp(user, reward)
                xp_gained += reward
                user["stats"]["achievements_unlocked"] += 1
                newly_unlocked.append(achievement)
                unlocked_this_pass += 1
            else:
                still_locked.append(achievement)

            state[key] = entry
            updates[key] = entry

        pending = still_locked if unlocked_this_pass else []

    if updates:
        query: Dict[str, Any] = {"_id": uid}
        # exactly-once: a concurrent evaluation that already unlocked one of these wins
        for a in newly_unlocked:
            query[f"achievements.{a['_id']}.unlocked"] = {"$ne": True}

        update: Dict[str, Any] = {
            "$set": {**{f"achievements.{k}": v for k, v in updates.items()}, "updated_at": now},
        }
        if newly_unlocked:
            update["$inc"] = {"total_xp": xp_gained, "stats.achievements_unlocked": len(newly_unlocked)}

        saved = await users_collection.find_one_and_update(query, update, return_document=ReturnDocument.AFTER)
        if saved is None:
            logging.info("Achievement evaluation for %s lost a race; no unlocks applied", uid)
            return AchievementCheckResult(unlocked=False, new_achievements=[])
        if newly_unlocked:
            await sync_level(uid, saved["total_xp"])

    if newly_unlocked:
        logging.info("User %s unlocked: %s", uid, ", ".join(a["title"] for a in newly_unlocked))

    return AchievementCheckResult(
        unlocked=bool(newly_unlocked),
        new_achievements=[_achievement_out(a) for a in newly_unlocked],
    )


async def safe_evaluate_achievements(user_id) -> AchievementCheckResult:
    """Evaluation as a side effect of another request: failures degrade to 'no unlock'."""
    try:
        return await evaluate_achievements(user_id)
    except (HTTPException, PyMongoError):
        logging.exception("Achievement evaluation failed for user %s", user_id)
        return AchievementCheckResult(unlocked=False, new_achievements=[])


# ------------- read-only views -------------
async def list_user_achievements(current_user: dict) -> UserAchievementsResponse:
    user = ensure_user_defaults(dict(current_user))
    catalog = await _load_catalog()
    state = user["achievements"]

    unlocked: List[UserAchievementOut] = []
    in_progress: List[UserAchievementOut] = []
    locked: List[UserAchievementOut] = []

    for achievement in catalog:
        entry = state.get(str(achievement["_id"])) or {}
        threshold = int((achievement.get("criteria") or {}).get("threshold") or 0)
        raw = int(entry.get("progress") or 0)
        item = UserAchievementOut.model_validate({
            **achievement,
            "raw_progress": raw,
            "progress": 100 if entry.get("unlocked") else progress_percent(raw, threshold),
            "unlocked": bool(entry.get("unlocked")),
            "unlocked_at": entry.get("unlocked_at"),
        })
        if item.unlocked:
            unlocked.append(item)
        elif raw > 0:
            in_progress.append(item)
        else:
            locked.append(item)

    return UserAchievementsResponse(
        unlocked=unlocked,
        in_progress=in_progress,
        locked=locked,
        stats=AchievementStats(
            total=len(catalog),
            unlocked=len(unlocked),
            in_progress=len(in_progress),
            locked=len(locked),
            completion_rate=percent(len(unlocked), len(catalog)),
        ),
    )


async def get_achievement_progress(current_user: dict, achievement_id: str) -> AchievementProgressOut:
    achievement = await achievements_collection.find_one({"_id": _oid(achievement_id)})
    if not achievement:
        raise HTTPException(status_code=404, detail="Achievement not found")

    user = ensure_user_defaults(dict(current_user))
    completed_goals = await _completed_goals_for(user["_id"])
    criteria = achievement.get("criteria") or {}
    raw = await _raw_progress(criteria, user, completed_goals, {})
    threshold = int(criteria.get("threshold") or 0)
    entry = user["achievements"].get(str(achievement["_id"])) or {}

    return AchievementProgressOut(
        achievement=_achievement_out(achievement),
        raw_progress=raw,
        threshold=threshold,
        progress=progress_percent(raw, threshold),
        unlocked=bool(entry.get("unlocked")),
        unlocked_at=entry.get("unlocked_at"),
    )


async def get_leaderboard(limit: int = LEADERBOARD_SIZE) -> List[LeaderboardEntry]:
    limit = max(1, min(limit, 50))
    cursor = (
        users_collection.find(
            {"stats.achievements_unlocked": {"$gt": 0}},
            {"username": 1, "email": 1, "stats": 1, "total_xp": 1, "level": 1},
        )
        .sort([("stats.achievements_unlocked", -1), ("total_xp", -1), ("_id", 1)])
        .limit(limit)
    )
    out: List[LeaderboardEntry] = []
    async for u in cursor:
        out.append(LeaderboardEntry(
            id=u["_id"],
            username=u.get("username") or (u.get("email") or "").split("@")[0] or None,
            achievement_count=int((u.get("stats") or {}).get("achievements_unlocked") or 0),
            total_xp=int(u.get("total_xp") or 0),
            level=int(u.get("level") or 1),
        ))
    return out


async def derive_badges(user: dict) -> List[dict]:
    """Display-only projection of the user's unlocked achievements."""
    state = user.get("achievements") or {}
    unlocked_ids = [ObjectId(k) for k, v in state.items() if (v or {}).get("unlocked") and ObjectId.is_valid(k)]
    if not unlocked_ids:
        return []
    badges = []
    async for a in achievements_collection.find({"_id": {"$in": unlocked_ids}}):
        badges.append({
            "name": a.get("title"),
            "icon": a.get("icon"),
            "description": a.get("description"),
            "earned_at": (state.get(str(a["_id"])) or {}).get("unlocked_at"),
        })
    badges.sort(key=lambda b: b["earned_at"] or utcnow())
    return badges
