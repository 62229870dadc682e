"""Pytest configuration and shared fixtures.

Every test gets its own in-memory motor-compatible database installed into
mission_hub.config.database, plus a Seeder for the collaborator collections
(users and batch memberships) this service only reads.
"""

from datetime import datetime
from typing import List, Optional

import pytest
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import PyMongoError

from mission_hub.config import database
from mission_hub.models.mentorship_group import GroupCreate
from mission_hub.models.mission import MissionCreate
from mission_hub.models.mission_mentor import MissionMentorCreate
from mission_hub.services.group_service import group_service
from mission_hub.services.mentor_service import mentor_service
from mission_hub.services.mission_service import mission_service

BATCH_ID = "batch-2025-spring"


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db():
    """Fresh mock database for a single test."""
    mock_db = AsyncMongoMockClient()[f"mission_hub_test_{ObjectId()}"]
    database.set_database(mock_db)
    yield mock_db
    database.set_database(None)


class FailingCollection:
    """Wraps a collection so one method raises PyMongoError for matching calls."""

    def __init__(self, collection, method: str, fail_when):
        self._collection = collection
        self._method = method
        self._fail_when = fail_when

    def __getattr__(self, name):
        attr = getattr(self._collection, name)
        if name != self._method:
            return attr

        async def failing(*args, **kwargs):
            if self._fail_when(*args, **kwargs):
                raise PyMongoError("simulated write failure")
            return await attr(*args, **kwargs)

        return failing


class FailingDatabase:
    """Database handle whose named collection is a FailingCollection."""

    def __init__(self, db, collection: str, method: str, fail_when):
        self._db = db
        self._failing = FailingCollection(db[collection], method, fail_when)
        self._name = collection

    def __getattr__(self, name):
        if name == self._name:
            return self._failing
        return getattr(self._db, name)

    def __getitem__(self, name):
        return self.__getattr__(name)


@pytest.fixture
def fail_writes(db, monkeypatch):
    """Make collection.method raise PyMongoError whenever fail_when(*args) holds."""

    def install(collection: str, method: str, fail_when=lambda *args, **kwargs: True):
        monkeypatch.setattr(database, "_database", FailingDatabase(db, collection, method, fail_when))

    return install


class Seeder:
    """Builds users, batch memberships, missions, mentors and groups."""

    def __init__(self, db):
        self.db = db
        self._codes = 0

    async def user(self, name: str, role: str = "student") -> str:
        user_id = ObjectId()
        await self.db.users.insert_one({
            "_id": user_id,
            "name": name,
            "email": f"{name.lower().replace(' ', '.')}@example.com",
            "role": role,
        })
        return str(user_id)

    async def membership(self, student_id: str, batch_id: str = BATCH_ID, status: str = "approved"):
        await self.db.batch_memberships.insert_one({
            "_id": ObjectId(),
            "student_id": student_id,
            "batch_id": batch_id,
            "status": status,
            "created_at": datetime.utcnow(),
        })

    async def students(self, count: int, batch_id: str = BATCH_ID, status: str = "approved") -> List[str]:
        """Create students with a batch membership in the given status."""
        ids = []
        for _ in range(count):
            student_id = await self.user(f"Student {len(ids) + 1} {ObjectId()}")
            await self.membership(student_id, batch_id, status)
            ids.append(student_id)
        return ids

    async def mission(self, batch_id: str = BATCH_ID, embedded: Optional[list] = None) -> str:
        self._codes += 1
        mission = await mission_service.create_mission(MissionCreate(
            code=f"MSN-{self._codes:03d}",
            title=f"Mission {self._codes}",
            batch_id=batch_id,
        ))
        if embedded is not None:
            await self.db.missions.update_one({"_id": mission["_id"]}, {"$set": {"students": embedded}})
        return str(mission["_id"])

    async def mentor(self, mission_id: str, max_students: int = 0) -> str:
        """Create a mentor user assigned to the mission; returns the user id."""
        mentor_id = await self.user(f"Mentor {ObjectId()}", role="mentor")
        await mentor_service.assign_mentor_to_mission(MissionMentorCreate(
            mission_id=mission_id,
            mentor_id=mentor_id,
            max_students=max_students,
        ))
        return mentor_id

    async def group(
        self,
        mission_id: str,
        name: str = "Alpha",
        max_students: int = 0,
        mentor_ids: Optional[List[str]] = None,
        primary_mentor_id: Optional[str] = None
    ) -> str:
        group = await group_service.create_group(GroupCreate(
            name=name,
            mission_id=mission_id,
            max_students=max_students,
            mentor_ids=mentor_ids or [],
            primary_mentor_id=primary_mentor_id,
        ))
        return str(group["_id"])

    async def mentor_record(self, mission_id: str, mentor_id: str) -> dict:
        return await self.db.mission_mentors.find_one({"mission_id": mission_id, "mentor_id": mentor_id})


@pytest.fixture
def seed(db):
    return Seeder(db)
