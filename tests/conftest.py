"""Shared fixtures for the test suite."""

from __future__ import annotations

import os
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

# Config is read at import time, so it has to be in place before the app loads.
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "goal_quest_test")
os.environ["MONGO_TRANSACTIONS"] = "false"
os.environ["SEED_ACHIEVEMENTS_ON_STARTUP"] = "false"
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")
os.environ["ACTIVITY_TIMEZONE"] = "UTC"

# ---------------------------------------------------------------------------
# In-memory Mongo (no real server needed)
# ---------------------------------------------------------------------------
import motor.motor_asyncio  # noqa: E402
from mongomock_motor import AsyncMongoMockClient  # noqa: E402

motor.motor_asyncio.AsyncIOMotorClient = AsyncMongoMockClient

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.db.mongo import (  # noqa: E402
    achievements_collection,
    goals_collection,
    groups_collection,
    init_db_indexes,
    users_collection,
)
from app.main import app  # noqa: E402
from app.models.user_model import UserModel  # noqa: E402
from app.utils.hashing import hash_password  # noqa: E402
from app.utils.jwt_utils import create_jwt_token  # noqa: E402


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
async def db():
    """Empty collections with the production indexes."""
    for coll in (users_collection, goals_collection, groups_collection, achievements_collection):
        await coll.delete_many({})
    await init_db_indexes()
    yield


@pytest.fixture()
async def client(db):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def make_user(
    username: str = "alice",
    email: Optional[str] = None,
    password: str = "secret123",
    **fields: Any,
) -> Dict[str, Any]:
    """Insert a user and return the stored document."""
    doc = UserModel(
        email=email or f"{username}@example.com",
        username=username,
        password=hash_password(password),
    ).model_dump(by_alias=True, exclude={"id"})
    doc.update(fields)
    result = await users_collection.insert_one(doc)
    return await users_collection.find_one({"_id": result.inserted_id})


async def reload_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return await users_collection.find_one({"_id": user["_id"]})


def auth_headers(user: Dict[str, Any]) -> Dict[str, str]:
    token = create_jwt_token({"user_id": str(user["_id"])})
    return {"Authorization": f"Bearer {token}"}


def future(days: int = 7) -> datetime:
    return datetime.utcnow() + timedelta(days=days)
