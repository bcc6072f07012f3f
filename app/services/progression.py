# app/services/progression.py
"""
Progression rules shared by goal completion, login and achievement unlocks.

All functions take a Mongo user document (a plain dict) and mutate it in place;
callers decide how the changed fields are written back.
"""
from __future__ import annotations

import math
from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

from ..utils.datetime_utils import local_date, to_local

XP_PER_LEVEL = 1000
ACTIVITY_HISTORY_DAYS = 30

# Local hour bands, [start, end)
TIME_OF_DAY_BANDS = {
    "morning": (5, 12),
    "afternoon": (12, 17),
    "evening": (17, 22),
}

_STAT_KEYS = ("goals_created", "goals_completed", "achievements_unlocked", "groups_joined")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def percent(part: float, whole: float) -> int:
    """round(100 * part / whole), 0 when whole is 0."""
    if not whole:
        return 0
    return round_half_up(100.0 * part / whole)


def progress_percent(raw: float, threshold: float) -> int:
    if threshold <= 0:
        return 100
    return min(100, percent(raw, threshold))


def level_for_xp(total_xp: int) -> int:
    return int(total_xp) // XP_PER_LEVEL + 1


def ensure_user_defaults(user: Dict[str, Any]) -> Dict[str, Any]:
    """Fill every gamification field so the rules below never see a partial record."""
    user["total_xp"] = int(user.get("total_xp") or 0)
    user["level"] = max(int(user.get("level") or 1), level_for_xp(user["total_xp"]))
    user["tokens"] = int(user.get("tokens") or 0)
    user["current_streak"] = int(user.get("current_streak") or 0)
    user["longest_streak"] = int(user.get("longest_streak") or 0)
    user.setdefault("last_active", None)

    stats = user.get("stats") or {}
    user["stats"] = {k: int(stats.get(k) or 0) for k in _STAT_KEYS}
    user["activity"] = list(user.get("activity") or [])
    user["achievements"] = dict(user.get("achievements") or {})
    return user


def apply_xp(user: Dict[str, Any], amount: int) -> Dict[str, Any]:
    """Add XP; the level follows floor(total/1000)+1 and never goes down."""
    previous_level = int(user.get("level") or 1)
    user["total_xp"] = int(user.get("total_xp") or 0) + int(amount)
    new_level = level_for_xp(user["total_xp"])
    user["level"] = max(previous_level, new_level)
    return {
        "newTotalXP": user["total_xp"],
        "newLevel": user["level"],
        "leveledUp": user["level"] > previous_level,
    }


def update_streak(user: Dict[str, Any], now: datetime) -> int:
    today = local_date(now)
    last_active: Optional[datetime] = user.get("last_active")
    streak = int(user.get("current_streak") or 0)

    if last_active is None:
        streak = 1
    else:
        last_day = local_date(last_active)
        if last_day == today:
            streak = max(streak, 1)
        elif last_day == today - timedelta(days=1):
            streak += 1
        else:
            # missed a day
            streak = 1

    user["current_streak"] = streak
    user["longest_streak"] = max(int(user.get("longest_streak") or 0), streak)
    user["last_active"] = now
    return streak


def record_activity(user: Dict[str, Any], now: datetime) -> List[Dict[str, Any]]:
    today = local_date(now)
    day_key = datetime.combine(today, time())
    activity = list(user.get("activity") or [])

    for entry in activity:
        entry_date = entry.get("date")
        if isinstance(entry_date, datetime) and entry_date.date() == today:
            entry["count"] = int(entry.get("count") or 0) + 1
            break
    else:
        activity.append({"date": day_key, "count": 1})

    activity.sort(key=lambda e: e.get("date") or datetime.min, reverse=True)
    user["activity"] = activity[:ACTIVITY_HISTORY_DAYS]
    return user["activity"]


def time_of_day(moment: datetime) -> str:
    hour = to_local(moment).hour
    for name, (start, end) in TIME_OF_DAY_BANDS.items():
        if start <= hour < end:
            return name
    return "night"
