from fastapi import APIRouter, Depends

from ..controllers.auth_controller import (
    get_authenticated_user,
    login_with_email_password,
    register_user,
)
from ..schemas.auth_schema import LoginRequest, RegisterRequest
from ..utils.auth_utils import TOKEN_COOKIE, get_current_user
from ..utils.responses import success_response

router = APIRouter(prefix="/auth", tags=["Auth"])

# ---------------------------
# Signup / login
# ---------------------------

@router.post("/register", status_code=201, summary="Register with email and password")
async def register(payload: RegisterRequest):
    result = await register_user(payload)
    return success_response("User registered successfully", result, status_code=201)

@router.post("/login", summary="Login with email and password")
async def login(payload: LoginRequest):
    result = await login_with_email_password(payload)
    return success_response("Login successful", result)

# ---------------------------
# Profile
# ---------------------------

@router.get("/me", summary="Get the authenticated user's profile")
async def me(current_user: dict = Depends(get_current_user)):
    user = await get_authenticated_user(current_user)
    return success_response("User profile fetched", user)

@router.post("/logout", summary="Clear the token cookie")
async def logout():
    resp = success_response("Logged out successfully")
    resp.delete_cookie(TOKEN_COOKIE)
    return resp
