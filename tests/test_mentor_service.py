"""Unit tests for mission mentor assignment and workload tracking."""

import pytest

from mission_hub.models.mission_mentor import MissionMentorCreate, MentorStatus
from mission_hub.services.enrollment_service import enrollment_service
from mission_hub.services.group_service import group_service
from mission_hub.services.mentor_service import mentor_service, capacity_used
from mission_hub.utils.errors import CascadeDeleteError, ConflictError, NotFoundError


async def enrolled_mission(seed, count):
    mission_id = await seed.mission()
    students = await seed.students(count)
    await enrollment_service.enroll(mission_id, students)
    return mission_id, students


def test_capacity_used():
    assert capacity_used({"max_students": 0, "current_students": 12}) is None
    assert capacity_used({"max_students": 3, "current_students": 1}) == 33.33
    assert capacity_used({"max_students": 4, "current_students": 6}) == 150.0


# =============================================================================
# Mission assignment
# =============================================================================


@pytest.mark.asyncio
async def test_assign_mentor_twice_conflicts(db, seed):
    mission_id = await seed.mission()
    mentor_id = await seed.mentor(mission_id)

    with pytest.raises(ConflictError):
        await mentor_service.assign_mentor_to_mission(
            MissionMentorCreate(mission_id=mission_id, mentor_id=mentor_id)
        )


@pytest.mark.asyncio
async def test_list_mission_mentors_includes_usage(db, seed):
    mission_id, students = await enrolled_mission(seed, 1)
    mentor_id = await seed.mentor(mission_id, max_students=4)
    await mentor_service.assign_student_mentor(mission_id, students[0], mentor_id)

    (mentor,) = await mentor_service.list_mission_mentors(mission_id)

    assert mentor["mentor_id"] == mentor_id
    assert mentor["current_students"] == 1
    assert mentor["capacity_used"] == 25.0
    assert mentor["mentor"]["id"] == mentor_id


@pytest.mark.asyncio
async def test_unassign_mentor_clears_references(db, seed):
    mission_id, (s1, s2) = await enrolled_mission(seed, 2)
    mentor_id = await seed.mentor(mission_id)
    group_id = await seed.group(mission_id, mentor_ids=[mentor_id], primary_mentor_id=mentor_id)
    await group_service.add_to_group(group_id, student_ids=[s2])
    await mentor_service.assign_student_mentor(mission_id, s1, mentor_id)
    record = await seed.mentor_record(mission_id, mentor_id)

    cleared = await mentor_service.unassign_mentor(str(record["_id"]))

    assert cleared == {"students": 1, "groups": 1}
    assert await db.mission_mentors.count_documents({}) == 0
    assert (await db.student_missions.find_one({"student_id": s1}))["mentor_id"] is None
    group = await group_service.get_group(group_id)
    assert group["mentors"] == []
    assert group["primary_mentor_id"] is None


# =============================================================================
# Workload
# =============================================================================


@pytest.mark.asyncio
async def test_workload_is_distinct_union_of_direct_and_group_students(db, seed):
    mission_id, (s1, s2, s3) = await enrolled_mission(seed, 3)
    mentor_id = await seed.mentor(mission_id)
    group_id = await seed.group(mission_id, mentor_ids=[mentor_id])
    await group_service.add_to_group(group_id, student_ids=[s1, s2])

    await mentor_service.assign_student_mentor(mission_id, s1, mentor_id)
    await mentor_service.assign_student_mentor(mission_id, s3, mentor_id)

    assert (await seed.mentor_record(mission_id, mentor_id))["current_students"] == 3


@pytest.mark.asyncio
async def test_primary_mentor_counts_group_students(db, seed):
    mission_id, students = await enrolled_mission(seed, 2)
    mentor_id = await seed.mentor(mission_id)
    group_id = await seed.group(mission_id, primary_mentor_id=mentor_id)

    await group_service.add_to_group(group_id, student_ids=students)

    assert (await seed.mentor_record(mission_id, mentor_id))["current_students"] == 2


@pytest.mark.asyncio
async def test_dropped_direct_students_are_not_counted(db, seed):
    mission_id, (s1, s2) = await enrolled_mission(seed, 2)
    mentor_id = await seed.mentor(mission_id)
    await mentor_service.assign_student_mentor(mission_id, s1, mentor_id)
    await mentor_service.assign_student_mentor(mission_id, s2, mentor_id)

    await enrollment_service.remove(mission_id, [s2])

    assert await mentor_service.recompute_workload(mission_id, mentor_id) == 1


@pytest.mark.asyncio
async def test_unlimited_mentor_is_never_flagged_overloaded(db, seed):
    mission_id, students = await enrolled_mission(seed, 6)
    mentor_id = await seed.mentor(mission_id, max_students=0)
    group_id = await seed.group(mission_id, mentor_ids=[mentor_id])

    await group_service.add_to_group(group_id, student_ids=students)
    await mentor_service.recompute_mission_workloads(mission_id)

    record = await seed.mentor_record(mission_id, mentor_id)
    assert record["current_students"] == 6
    assert record["status"] == "active"
    assert capacity_used(record) is None


@pytest.mark.asyncio
async def test_recompute_never_changes_status(db, seed):
    mission_id, students = await enrolled_mission(seed, 3)
    mentor_id = await seed.mentor(mission_id, max_students=1)
    group_id = await seed.group(mission_id, mentor_ids=[mentor_id])

    await group_service.add_to_group(group_id, student_ids=students)

    record = await seed.mentor_record(mission_id, mentor_id)
    assert record["current_students"] == 3
    assert record["status"] == "active"


@pytest.mark.asyncio
async def test_recompute_mission_workloads_is_idempotent(db, seed):
    mission_id, students = await enrolled_mission(seed, 2)
    mentor_id = await seed.mentor(mission_id)
    await mentor_service.assign_student_mentor(mission_id, students[0], mentor_id)
    await db.mission_mentors.update_one({"mentor_id": mentor_id}, {"$set": {"current_students": 40}})

    first = await mentor_service.recompute_mission_workloads(mission_id)
    second = await mentor_service.recompute_mission_workloads(mission_id)

    assert first == {"changed_count": 1, "total_mentors": 1}
    assert second == {"changed_count": 0, "total_mentors": 1}
    assert (await seed.mentor_record(mission_id, mentor_id))["current_students"] == 1


# =============================================================================
# Student assignment
# =============================================================================


@pytest.mark.asyncio
async def test_reassign_student_moves_workload(db, seed):
    mission_id, (s1,) = await enrolled_mission(seed, 1)
    first_mentor = await seed.mentor(mission_id)
    second_mentor = await seed.mentor(mission_id)
    await mentor_service.assign_student_mentor(mission_id, s1, first_mentor)

    result = await mentor_service.assign_student_mentor(mission_id, s1, second_mentor)

    assert result["previous_mentor_id"] == first_mentor
    assert (await seed.mentor_record(mission_id, first_mentor))["current_students"] == 0
    assert (await seed.mentor_record(mission_id, second_mentor))["current_students"] == 1


@pytest.mark.asyncio
async def test_remove_student_mentor(db, seed):
    mission_id, (s1,) = await enrolled_mission(seed, 1)
    mentor_id = await seed.mentor(mission_id)
    await mentor_service.assign_student_mentor(mission_id, s1, mentor_id)

    result = await mentor_service.remove_student_mentor(mission_id, s1)

    assert result["previous_mentor_id"] == mentor_id
    assert (await seed.mentor_record(mission_id, mentor_id))["current_students"] == 0


@pytest.mark.asyncio
async def test_assign_to_mentor_outside_mission(db, seed):
    mission_id, (s1,) = await enrolled_mission(seed, 1)
    stranger = await seed.user("Stranger", role="mentor")

    with pytest.raises(NotFoundError):
        await mentor_service.assign_student_mentor(mission_id, s1, stranger)


@pytest.mark.asyncio
async def test_assign_unenrolled_student(db, seed):
    mission_id = await seed.mission()
    mentor_id = await seed.mentor(mission_id)

    with pytest.raises(NotFoundError):
        await mentor_service.assign_student_mentor(mission_id, "ghost", mentor_id)


@pytest.mark.asyncio
async def test_bulk_assign_distributes_in_contiguous_chunks(db, seed):
    mission_id, students = await enrolled_mission(seed, 5)
    m1 = await seed.mentor(mission_id)
    m2 = await seed.mentor(mission_id)

    results = await mentor_service.bulk_assign_students(mission_id, [m1, m2], students)

    assert results["failed"] == []
    assigned = {a["student_id"]: a["mentor_id"] for a in results["assigned"]}
    assert [assigned[s] for s in students] == [m1, m1, m1, m2, m2]
    assert (await seed.mentor_record(mission_id, m1))["current_students"] == 3
    assert (await seed.mentor_record(mission_id, m2))["current_students"] == 2


@pytest.mark.asyncio
async def test_bulk_assign_without_distribution_last_mentor_wins(db, seed):
    mission_id, students = await enrolled_mission(seed, 2)
    m1 = await seed.mentor(mission_id)
    m2 = await seed.mentor(mission_id)

    results = await mentor_service.bulk_assign_students(mission_id, [m1, m2], students, distribute_evenly=False)

    assert len(results["assigned"]) == 4
    records = await db.student_missions.find({"mission_id": mission_id}).to_list(length=None)
    assert {r["mentor_id"] for r in records} == {m2}
    assert (await seed.mentor_record(mission_id, m1))["current_students"] == 0


@pytest.mark.asyncio
async def test_bulk_assign_collects_failures(db, seed):
    mission_id, (s1,) = await enrolled_mission(seed, 1)
    mentor_id = await seed.mentor(mission_id)

    results = await mentor_service.bulk_assign_students(mission_id, [mentor_id], [s1, "ghost"])

    assert [a["student_id"] for a in results["assigned"]] == [s1]
    assert results["failed"][0]["student_id"] == "ghost"
    assert results["failed"][0]["code"] == "NOT_FOUND"


# =============================================================================
# Status and capacity
# =============================================================================


@pytest.mark.asyncio
async def test_manual_status_flag(db, seed):
    mission_id = await seed.mission()
    mentor_id = await seed.mentor(mission_id)
    record = await seed.mentor_record(mission_id, mentor_id)

    updated = await mentor_service.update_mentor_status(
        str(record["_id"]), MentorStatus.OVERLOADED, "Exam season"
    )

    assert updated["status"] == "overloaded"
    assert updated["status_reason"] == "Exam season"


@pytest.mark.asyncio
async def test_bulk_capacity_skips_records_of_other_missions(db, seed):
    mission_id = await seed.mission()
    other_mission = await seed.mission()
    mentor_id = await seed.mentor(mission_id)
    foreign_id = await seed.mentor(other_mission)
    record = await seed.mentor_record(mission_id, mentor_id)
    foreign = await seed.mentor_record(other_mission, foreign_id)

    results = await mentor_service.bulk_update_capacity(
        mission_id, [str(record["_id"]), str(foreign["_id"])], 8
    )

    assert results["updated"] == [str(record["_id"])]
    assert results["failed"][0]["id"] == str(foreign["_id"])
    assert (await seed.mentor_record(mission_id, mentor_id))["max_students"] == 8
    assert (await seed.mentor_record(other_mission, foreign_id))["max_students"] == 0


@pytest.mark.asyncio
async def test_unassign_mentor_failure_keeps_record_and_reports_progress(db, seed, fail_writes):
    mission_id, (s1, s2) = await enrolled_mission(seed, 2)
    mentor_id = await seed.mentor(mission_id)
    group_id = await seed.group(mission_id, mentor_ids=[mentor_id])
    await group_service.add_to_group(group_id, student_ids=[s2])
    await mentor_service.assign_student_mentor(mission_id, s1, mentor_id)
    record = await seed.mentor_record(mission_id, mentor_id)
    fail_writes("mentorship_groups", "update_many")

    with pytest.raises(CascadeDeleteError) as exc_info:
        await mentor_service.unassign_mentor(str(record["_id"]))

    assert exc_info.value.code == "CASCADE_DELETE_FAILED"
    assert exc_info.value.details["cleared"] == {"students": 1, "groups": 0}
    assert await db.mission_mentors.count_documents({"_id": record["_id"]}) == 1
    assert (await group_service.get_group(group_id))["mentors"] == [mentor_id]
