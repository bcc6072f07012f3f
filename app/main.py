# app/main.py
import logging
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.db.mongo import init_db_indexes
from app.controllers.achievement_controller import seed_default_achievements
from app.utils.responses import error_response

# Routers
from app.routes.auth import router as auth_router
from app.routes.goal_routes import router as goal_router
from app.routes.group_routes import router as group_router
from app.routes.achievement_routes import router as achievement_router

# ---------------------------
# Config
# ---------------------------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
SEED_ACHIEVEMENTS_ON_STARTUP = os.getenv("SEED_ACHIEVEMENTS_ON_STARTUP", "true").strip().lower() in ("1", "true", "yes")

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# ---------------------------
# Build FastAPI app
# ---------------------------
fastapi_app = FastAPI(title="Goal Quest Backend", version="1.0.0")

fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------
# Error envelope
# ---------------------------
@fastapi_app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return error_response(exc.status_code, str(exc.detail))


@fastapi_app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request")
    detail = f"{field}: {message}" if field else message
    return error_response(400, "Validation failed", detail)


@fastapi_app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logging.exception("Unhandled error on %s %s", request.method, request.url.path)
    return error_response(500, "Internal server error", str(exc))


@fastapi_app.get("/health")
async def health_check():
    return {"status": "✅ OK", "message": "FastAPI backend is running."}

@fastapi_app.get("/")
async def root():
    return {"message": "👋 Welcome to the Goal Quest Backend!"}

# ---------------------------
# Routers
# ---------------------------
fastapi_app.include_router(auth_router)
fastapi_app.include_router(goal_router)
fastapi_app.include_router(group_router)
fastapi_app.include_router(achievement_router)


# ---------------------------
# Startup tasks
# ---------------------------
@fastapi_app.on_event("startup")
async def on_startup():
    try:
        await init_db_indexes()
    except PyMongoError:
        # Don't crash the app if indexes fail; just log it
        logging.exception("Index init error")

    if SEED_ACHIEVEMENTS_ON_STARTUP:
        try:
            await seed_default_achievements()
        except PyMongoError:
            logging.exception("Achievement seeding failed")

# ---------------------------
# Final ASGI app export
# ---------------------------
app = fastapi_app
