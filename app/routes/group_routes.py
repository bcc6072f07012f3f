# app/routes/group_routes.py
from fastapi import APIRouter, Depends

from ..controllers.group_controller import (
    create_group,
    get_group,
    get_group_stats,
    get_user_groups,
    join_group,
    join_group_by_code,
    leave_group,
    regenerate_invite_code,
    update_group,
)
from ..schemas.group_schema import (
    GroupCreateRequest,
    GroupJoinRequest,
    GroupUpdateRequest,
    JoinByCodeRequest,
)
from ..utils.auth_utils import get_current_user
from ..utils.responses import success_response

router = APIRouter(prefix="/groups", tags=["Groups"])


# ✅ Create (both paths are used by clients)
@router.post("", status_code=201, summary="Create a group")
@router.post("/create", status_code=201, summary="Create a group")
async def create_group_route(payload: GroupCreateRequest, current_user: dict = Depends(get_current_user)):
    group = await create_group(payload, current_user)
    return success_response("Group created successfully", group, status_code=201)


@router.get("/user-groups", summary="My groups plus public groups to discover")
async def user_groups_route(current_user: dict = Depends(get_current_user)):
    groups = await get_user_groups(current_user)
    return success_response("Groups fetched successfully", groups)


@router.post("/join", summary="Join a group by id (private groups need the invite code)")
async def join_route(payload: GroupJoinRequest, current_user: dict = Depends(get_current_user)):
    group = await join_group(payload.group_id, payload.invite_code, current_user)
    return success_response("Joined group successfully", group)


@router.post("/join-by-code", summary="Join a group with its invite code")
async def join_by_code_route(payload: JoinByCodeRequest, current_user: dict = Depends(get_current_user)):
    group = await join_group_by_code(payload.invite_code, current_user)
    return success_response("Joined group successfully", group)


@router.get("/{group_id}", summary="Get a group with its goals and stats")
async def get_group_route(group_id: str, current_user: dict = Depends(get_current_user)):
    group = await get_group(group_id, current_user)
    return success_response("Group fetched successfully", group)


@router.get("/{group_id}/stats", summary="Live goal counts for a group")
async def group_stats_route(group_id: str, current_user: dict = Depends(get_current_user)):
    stats = await get_group_stats(group_id, current_user)
    return success_response("Group stats fetched successfully", stats)


@router.put("/{group_id}", summary="Update group settings (admin)")
async def update_group_route(group_id: str, payload: GroupUpdateRequest, current_user: dict = Depends(get_current_user)):
    group = await update_group(group_id, payload, current_user)
    return success_response("Group updated successfully", group)


@router.delete("/{group_id}/leave", summary="Leave a group")
async def leave_route(group_id: str, current_user: dict = Depends(get_current_user)):
    result = await leave_group(group_id, current_user)
    message = "Left group; the group was deleted" if result["deleted"] else "Left group successfully"
    return success_response(message, result)


@router.post("/{group_id}/invite-code", summary="Regenerate the invite code (admin)")
async def invite_code_route(group_id: str, current_user: dict = Depends(get_current_user)):
    code = await regenerate_invite_code(group_id, current_user)
    return success_response("Invite code regenerated", code)
