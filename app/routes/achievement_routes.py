# app/routes/achievement_routes.py
from fastapi import APIRouter, Depends, Query

from ..controllers.achievement_controller import (
    evaluate_achievements,
    get_achievement_progress,
    get_leaderboard,
    list_user_achievements,
    seed_default_achievements,
)
from ..utils.auth_utils import get_current_admin_user, get_current_user
from ..utils.responses import success_response

router = APIRouter(prefix="/achievements", tags=["Achievements"])


@router.get("", summary="My achievements: unlocked, in progress, locked")
async def list_route(current_user: dict = Depends(get_current_user)):
    result = await list_user_achievements(current_user)
    return success_response("Achievements fetched successfully", result)


@router.get("/check", summary="Evaluate my progress and unlock what I've earned")
async def check_route(current_user: dict = Depends(get_current_user)):
    result = await evaluate_achievements(current_user["_id"])
    message = "New achievements unlocked!" if result.unlocked else "No new achievements"
    return success_response(message, result)


@router.get("/leaderboard", summary="Top users by unlocked achievements")
async def leaderboard_route(
    limit: int = Query(10, ge=1, le=50),
    current_user: dict = Depends(get_current_user),
):
    board = await get_leaderboard(limit)
    return success_response("Leaderboard fetched successfully", board)


@router.post("/defaults", summary="Upsert the default achievement catalog (admin)")
async def seed_route(current_user: dict = Depends(get_current_admin_user)):
    result = await seed_default_achievements()
    return success_response("Default achievements seeded", result)


@router.get("/{achievement_id}/progress", summary="Live progress toward one achievement")
async def progress_route(achievement_id: str, current_user: dict = Depends(get_current_user)):
    result = await get_achievement_progress(current_user, achievement_id)
    return success_response("Achievement progress fetched", result)
