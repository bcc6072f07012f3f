# app/db/mongo.py
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorClientSession
from dotenv import load_dotenv
import os

load_dotenv()

MONGO_URL = os.getenv("MONGODB_URL")
if not MONGO_URL:
    raise RuntimeError("MONGODB_URL env var is not set")

MONGO_DB_NAME = os.getenv("MONGODB_DB_NAME", "goal_quest")

# Multi-document transactions need a replica set; standalone servers must leave this off.
MONGO_TRANSACTIONS = os.getenv("MONGO_TRANSACTIONS", "false").strip().lower() in ("1", "true", "yes")

client = AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]

# Collections
users_collection = db["users"]
goals_collection = db["goals"]
groups_collection = db["groups"]
achievements_collection = db["achievements"]


@asynccontextmanager
async def transaction() -> AsyncIterator[Optional[AsyncIOMotorClientSession]]:
    """
    Yields a session bound to an open transaction, or None when transactions are disabled.
    Callers pass the yielded value as `session=` to every write of one completion event.
    """
    if not MONGO_TRANSACTIONS:
        yield None
        return

    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


# Call this once at startup to ensure indexes exist.
async def init_db_indexes() -> None:
    # Users: unique email, leaderboard ordering
    await users_collection.create_index("email", unique=True)
    await users_collection.create_index(
        [("stats.achievements_unlocked", -1), ("total_xp", -1)],
        name="leaderboard_desc",
    )

    # Goals: owner listings and group aggregation
    await goals_collection.create_index([("user", 1), ("created_at", -1)])
    await goals_collection.create_index([("group_id", 1), ("is_group_goal", 1), ("status", 1)])
    await goals_collection.create_index("member_completions.user")

    # Groups: one invite code per group, member lookups
    await groups_collection.create_index("invite_code", unique=True)
    await groups_collection.create_index("members.user")
    await groups_collection.create_index([("privacy", 1), ("created_at", -1)])

    # Achievement catalog: upsert key
    await achievements_collection.create_index("title", unique=True)
