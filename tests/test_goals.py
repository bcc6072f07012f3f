"""Tests for goal creation, completion, progress and deletion."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from bson import ObjectId
from fastapi import HTTPException

from app.controllers import goal_controller
from app.controllers.goal_controller import (
    complete_goal,
    create_goal,
    delete_goal,
    get_group_goals,
    get_user_goals,
    update_goal_progress,
)
from app.controllers.group_controller import create_group, join_group
from app.db.mongo import goals_collection, groups_collection, users_collection
from app.schemas.goal_schema import GoalCreateRequest
from app.schemas.group_schema import GroupCreateRequest
from app.services.progression import ensure_user_defaults
from app.utils.datetime_utils import utcnow
from tests.conftest import future, make_user, reload_user


def goal_request(**overrides) -> GoalCreateRequest:
    data = {"goalName": "Run 5k", "category": "fitness", "difficulty": "medium", "deadline": future().isoformat()}
    data.update(overrides)
    return GoalCreateRequest.model_validate(data)


async def group_of(*users) -> dict:
    """Group created by the first user, joined by the rest."""
    out = await create_group(GroupCreateRequest(name="Crew"), users[0])
    for u in users[1:]:
        await join_group(out.id, None, u)
    return await groups_collection.find_one({"_id": ObjectId(out.id)})


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

class TestCreate:
    @pytest.mark.asyncio
    async def test_rewards_follow_difficulty(self, db):
        user = await make_user()
        easy = await create_goal(goal_request(difficulty="easy"), user)
        hard = await create_goal(goal_request(difficulty="hard"), user)
        assert (easy.xp_reward, easy.token_reward) == (50, 5)
        assert (hard.xp_reward, hard.token_reward) == (200, 20)
        assert easy.status == "active"
        assert (await reload_user(user))["stats"]["goals_created"] == 2

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            goal_request(goalName="   ")

    def test_bad_difficulty_rejected(self):
        with pytest.raises(ValueError):
            goal_request(difficulty="insane")

    @pytest.mark.asyncio
    async def test_group_goal_snapshots_members(self, db):
        alice = await make_user("alice")
        bob = await make_user("bob")
        group = await group_of(alice, bob)

        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), alice)
        assert goal.is_group_goal is True
        assert {c.user for c in goal.member_completions} == {str(alice["_id"]), str(bob["_id"])}
        assert all(c.status == "active" for c in goal.member_completions)
        assert (await groups_collection.find_one({"_id": group["_id"]}))["active_goals"] == 1

    @pytest.mark.asyncio
    async def test_group_goal_requires_membership(self, db):
        alice = await make_user("alice")
        mallory = await make_user("mallory")
        group = await group_of(alice)

        with pytest.raises(HTTPException) as exc:
            await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), mallory)
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_group_goal_requires_group_id(self, db):
        alice = await make_user("alice")
        with pytest.raises(HTTPException) as exc:
            await create_goal(goal_request(isGroupGoal=True), alice)
        assert exc.value.status_code == 400


# ---------------------------------------------------------------------------
# Personal completion
# ---------------------------------------------------------------------------

class TestPersonalCompletion:
    @pytest.mark.asyncio
    async def test_completion_grants_rewards(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(difficulty="hard"), user)

        result = await complete_goal(goal.id, user)
        assert result["goal"].status == "completed"
        assert result["goal"].progress == 100
        assert result["goal"].completed_date is not None
        assert result["rewards"].xp == 200
        assert result["rewards"].tokens == 20

        stored = await reload_user(user)
        assert stored["tokens"] == 20
        assert stored["stats"]["goals_completed"] == 1
        assert stored["current_streak"] == 1
        assert stored["activity"][0]["count"] == 1
        # 200 for the goal plus First Steps from the lazily seeded catalog
        assert stored["total_xp"] == 250
        assert [a.title for a in result["achievements"].new_achievements] == ["First Steps"]

    @pytest.mark.asyncio
    async def test_second_completion_rejected(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(), user)
        await complete_goal(goal.id, user)

        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, user)
        assert exc.value.status_code == 400
        assert (await reload_user(user))["tokens"] == 10

    @pytest.mark.asyncio
    async def test_level_comes_from_stored_total(self, db):
        user = await make_user(total_xp=850)
        stale = ensure_user_defaults(await reload_user(user))
        # XP credited elsewhere after our copy was read
        await users_collection.update_one({"_id": user["_id"]}, {"$inc": {"total_xp": 50}})

        rewards = await goal_controller._grant_completion_rewards(
            stale, {"xp_reward": 100, "token_reward": 10}, utcnow()
        )
        assert rewards.total_xp == 1000
        assert rewards.level == 2
        assert rewards.leveled_up is True

        stored = await reload_user(user)
        assert stored["total_xp"] == 1000
        assert stored["level"] == 2

    @pytest.mark.asyncio
    async def test_only_owner_completes(self, db):
        owner = await make_user("owner")
        other = await make_user("other")
        goal = await create_goal(goal_request(), owner)
        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, other)
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_failed_goal_cannot_complete(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(), user)
        await goals_collection.update_one({"_id": ObjectId(goal.id)}, {"$set": {"status": "failed"}})
        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, user)
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_goal(self, db):
        user = await make_user()
        with pytest.raises(HTTPException) as exc:
            await complete_goal(str(ObjectId()), user)
        assert exc.value.status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_id(self, db):
        user = await make_user()
        with pytest.raises(HTTPException) as exc:
            await complete_goal("not-an-id", user)
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_reward_failure_does_not_fail_completion(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(), user)

        with patch(
            "app.controllers.achievement_controller.evaluate_achievements",
            side_effect=HTTPException(status_code=404, detail="User not found"),
        ):
            result = await complete_goal(goal.id, user)
        assert result["goal"].status == "completed"
        assert result["achievements"].unlocked is False


# ---------------------------------------------------------------------------
# Group completion
# ---------------------------------------------------------------------------

class TestGroupCompletion:
    @pytest.mark.asyncio
    async def test_three_members_aggregate_to_completed(self, db):
        a = await make_user("a")
        b = await make_user("b")
        c = await make_user("c")
        group = await group_of(a, b, c)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"]), difficulty="easy"), a)

        first = await complete_goal(goal.id, a)
        assert first["goal"].completion_percentage == 33
        assert first["goal"].status == "active"
        assert first["goal"].user_completed is True

        second = await complete_goal(goal.id, b)
        assert second["goal"].completion_percentage == 67
        assert second["goal"].status == "active"

        third = await complete_goal(goal.id, c)
        assert third["goal"].completion_percentage == 100
        assert third["goal"].status == "completed"
        assert third["goal"].progress == 100
        assert third["goal"].completed_date is not None

        stored_group = await groups_collection.find_one({"_id": group["_id"]})
        assert stored_group["active_goals"] == 0
        assert stored_group["completed_goals"] == 1
        assert stored_group["total_xp"] == 50

        for u in (a, b, c):
            stored = await reload_user(u)
            assert stored["tokens"] == 5
            assert stored["stats"]["goals_completed"] == 1

    @pytest.mark.asyncio
    async def test_member_cannot_complete_twice(self, db):
        a = await make_user("a")
        b = await make_user("b")
        group = await group_of(a, b)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await complete_goal(goal.id, a)

        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, a)
        assert exc.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_member_forbidden(self, db):
        a = await make_user("a")
        outsider = await make_user("outsider")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)

        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, outsider)
        assert exc.value.status_code == 403

    @pytest.mark.asyncio
    async def test_late_joiner_is_appended(self, db):
        a = await make_user("a")
        late = await make_user("late")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await join_group(str(group["_id"]), None, late)

        result = await complete_goal(goal.id, late)
        assert len(result["goal"].member_completions) == 2
        assert result["goal"].completion_percentage == 50
        assert result["goal"].status == "active"

    @pytest.mark.asyncio
    async def test_late_joiner_cannot_complete_finished_goal(self, db):
        a = await make_user("a")
        late = await make_user("late")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await complete_goal(goal.id, a)
        await join_group(str(group["_id"]), None, late)

        with pytest.raises(HTTPException) as exc:
            await complete_goal(goal.id, late)
        assert exc.value.status_code == 400

        stored = await goals_collection.find_one({"_id": ObjectId(goal.id)})
        assert stored["status"] == "completed"
        assert stored["completion_percentage"] == 100
        assert len(stored["member_completions"]) == 1
        assert (await reload_user(late))["tokens"] == 0

    @pytest.mark.asyncio
    async def test_user_goals_bucket_group_goals_by_own_status(self, db):
        a = await make_user("a")
        b = await make_user("b")
        group = await group_of(a, b)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await create_goal(goal_request(goalName="Read"), a)
        await complete_goal(goal.id, a)

        mine = await get_user_goals(a)
        assert mine.counts.total == 2
        assert [g.goal_name for g in mine.completed] == ["Run 5k"]
        assert [g.goal_name for g in mine.active] == ["Read"]

        theirs = await get_user_goals(b)
        assert [g.goal_name for g in theirs.active] == ["Run 5k"]
        assert theirs.active[0].user_completed is False

    @pytest.mark.asyncio
    async def test_group_goals_members_only(self, db):
        a = await make_user("a")
        outsider = await make_user("outsider")
        group = await group_of(a)
        await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)

        assert len(await get_group_goals(str(group["_id"]), a)) == 1
        with pytest.raises(HTTPException) as exc:
            await get_group_goals(str(group["_id"]), outsider)
        assert exc.value.status_code == 403


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------

class TestVersionConflict:
    @pytest.mark.asyncio
    async def test_stale_write_is_rejected(self, db):
        a = await make_user("a")
        b = await make_user("b")
        group = await group_of(a, b)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        stale = await goals_collection.find_one({"_id": ObjectId(goal.id)})

        await complete_goal(goal.id, a)

        with pytest.raises(HTTPException) as exc:
            await goal_controller._write_goal(stale, {"completion_percentage": 0})
        assert exc.value.status_code == 409

        stored = await goals_collection.find_one({"_id": stale["_id"]})
        assert stored["completion_percentage"] == 50
        assert stored["version"] == 1

    @pytest.mark.asyncio
    async def test_lost_race_grants_no_rewards(self, db):
        a = await make_user("a")
        goal = await create_goal(goal_request(), a)
        stale = await goals_collection.find_one({"_id": ObjectId(goal.id)})
        await goals_collection.update_one({"_id": stale["_id"]}, {"$inc": {"version": 1}})

        async def stale_read(goal_id):
            return stale

        with patch.object(goal_controller, "_get_goal_or_404", side_effect=stale_read):
            with pytest.raises(HTTPException) as exc:
                await complete_goal(goal.id, a)
        assert exc.value.status_code == 409
        stored = await reload_user(a)
        assert stored["tokens"] == 0
        assert stored["stats"]["goals_completed"] == 0


# ---------------------------------------------------------------------------
# Progress / delete
# ---------------------------------------------------------------------------

class TestProgressAndDelete:
    @pytest.mark.asyncio
    async def test_progress_is_clamped(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(), user)

        result = await update_goal_progress(goal.id, -20, user)
        assert result["goal"].progress == 0
        result = await update_goal_progress(goal.id, 40.5, user)
        assert result["goal"].progress == 40.5
        assert result["goal"].status == "active"

    @pytest.mark.asyncio
    async def test_progress_100_completes(self, db):
        user = await make_user()
        goal = await create_goal(goal_request(), user)

        result = await update_goal_progress(goal.id, 150, user)
        assert result["goal"].status == "completed"
        assert result["rewards"].tokens == 10

    @pytest.mark.asyncio
    async def test_delete_floors_group_counters(self, db):
        a = await make_user("a")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await groups_collection.update_one({"_id": group["_id"]}, {"$set": {"active_goals": 0}})

        await delete_goal(goal.id, a)
        stored_group = await groups_collection.find_one({"_id": group["_id"]})
        assert stored_group["active_goals"] == 0
        assert await goals_collection.count_documents({}) == 0

    @pytest.mark.asyncio
    async def test_delete_decrements_current_counter(self, db):
        a = await make_user("a")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        # other goals were added after this request's view of the group
        await groups_collection.update_one({"_id": group["_id"]}, {"$inc": {"active_goals": 2}})

        await delete_goal(goal.id, a)
        stored_group = await groups_collection.find_one({"_id": group["_id"]})
        assert stored_group["active_goals"] == 2

    @pytest.mark.asyncio
    async def test_delete_completed_group_goal_decrements_completed(self, db):
        a = await make_user("a")
        group = await group_of(a)
        goal = await create_goal(goal_request(isGroupGoal=True, groupId=str(group["_id"])), a)
        await complete_goal(goal.id, a)

        await delete_goal(goal.id, a)
        stored_group = await groups_collection.find_one({"_id": group["_id"]})
        assert stored_group["completed_goals"] == 0
        assert stored_group["active_goals"] == 0

    @pytest.mark.asyncio
    async def test_only_owner_deletes(self, db):
        owner = await make_user("owner")
        other = await make_user("other")
        goal = await create_goal(goal_request(), owner)
        with pytest.raises(HTTPException) as exc:
            await delete_goal(goal.id, other)
        assert exc.value.status_code == 403
