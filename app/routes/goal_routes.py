# app/routes/goal_routes.py
from fastapi import APIRouter, Depends

from ..controllers.goal_controller import (
    complete_goal,
    create_goal,
    delete_goal,
    get_group_goals,
    get_user_goals,
    update_goal_progress,
)
from ..schemas.goal_schema import GoalCreateRequest, GoalProgressRequest
from ..utils.auth_utils import get_current_user
from ..utils.responses import success_response

router = APIRouter(prefix="/goals", tags=["Goals"])


# ✅ Create a personal or group goal
@router.post("", status_code=201, summary="Create a goal")
async def create_goal_route(payload: GoalCreateRequest, current_user: dict = Depends(get_current_user)):
    goal = await create_goal(payload, current_user)
    return success_response("Goal created successfully", goal, status_code=201)


# ✅ My goals (personal + my groups' goals)
@router.get("/user-goals", summary="Get the caller's goals grouped by status")
async def user_goals_route(current_user: dict = Depends(get_current_user)):
    goals = await get_user_goals(current_user)
    return success_response("Goals fetched successfully", goals)


# ✅ Goals of one group (members only)
@router.get("/group/{group_id}", summary="Get a group's goals")
async def group_goals_route(group_id: str, current_user: dict = Depends(get_current_user)):
    goals = await get_group_goals(group_id, current_user)
    return success_response("Group goals fetched successfully", goals)


# ✅ Complete (personal) or mark my part done (group)
@router.put("/{goal_id}/complete", summary="Complete a goal")
async def complete_goal_route(goal_id: str, current_user: dict = Depends(get_current_user)):
    result = await complete_goal(goal_id, current_user)
    return success_response("Goal completed successfully", result)


@router.put("/{goal_id}/progress", summary="Update a goal's progress (0-100)")
async def progress_route(goal_id: str, payload: GoalProgressRequest, current_user: dict = Depends(get_current_user)):
    result = await update_goal_progress(goal_id, payload.progress, current_user)
    return success_response("Goal progress updated", result)


@router.delete("/{goal_id}", summary="Delete a goal")
async def delete_goal_route(goal_id: str, current_user: dict = Depends(get_current_user)):
    await delete_goal(goal_id, current_user)
    return success_response("Goal deleted successfully")
