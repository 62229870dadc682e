"""Unit tests for the batch membership and user lookups."""

import pytest

from mission_hub.services.directory_service import directory_service


@pytest.mark.asyncio
async def test_only_approved_memberships_count(db, seed):
    approved = await seed.students(2)
    pending = await seed.students(1, status="pending")
    elsewhere = await seed.students(1, batch_id="batch-other")

    result = await directory_service.approved_student_ids("batch-2025-spring")

    assert result == set(approved)
    assert not await directory_service.is_approved_member(pending[0], "batch-2025-spring")
    assert not await directory_service.is_approved_member(elsewhere[0], "batch-2025-spring")
    assert await directory_service.is_approved_member(approved[0], "batch-2025-spring")


@pytest.mark.asyncio
async def test_approved_lookup_restricted_to_given_ids(db, seed):
    s1, s2 = await seed.students(2)

    assert await directory_service.approved_student_ids("batch-2025-spring", [s2, "ghost"]) == {s2}


@pytest.mark.asyncio
async def test_get_users_skips_unknown_and_malformed_ids(db, seed):
    mentor_id = await seed.user("Ada Lovelace", role="mentor")

    users = await directory_service.get_users([mentor_id, "not-an-id", "66b0c3f1a2b4c5d6e7f80001"])

    assert list(users) == [mentor_id]
    assert users[mentor_id]["email"] == "ada.lovelace@example.com"
    assert users[mentor_id]["role"] == "mentor"


@pytest.mark.asyncio
async def test_list_users_by_role(db, seed):
    await seed.user("Zed", role="mentor")
    await seed.user("Amy", role="mentor")
    await seed.students(1)

    mentors = await directory_service.list_users("mentor")

    assert [m["name"] for m in mentors] == ["Amy", "Zed"]
