"""
Mission Service
Core business logic for the mission catalogue
"""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..config.database import get_database
from ..models.mission import MissionCreate, MissionUpdate, MissionStatus
from ..utils.errors import ConflictError, NotFoundError, CascadeDeleteError
from ..utils.helpers import parse_object_id

logger = logging.getLogger(__name__)


class MissionService:
    """Service for mission management operations"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    # ============================================================================
    # MISSION CRUD OPERATIONS
    # ============================================================================

    async def create_mission(self, mission_data: MissionCreate, created_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a new mission

        Args:
            mission_data: Validated mission payload (course weights already checked)
            created_by: User ID creating the mission

        Returns:
            Created mission document
        """
        db = self.get_db()

        existing = await db.missions.find_one({"code": mission_data.code})
        if existing:
            raise ConflictError(f"Mission with code '{mission_data.code}' already exists")

        now = datetime.utcnow()
        mission_doc = {
            "_id": ObjectId(),
            "code": mission_data.code,
            "title": mission_data.title,
            "description": mission_data.description,
            "batch_id": mission_data.batch_id,
            "status": mission_data.status.value,
            "courses": [course.model_dump() for course in mission_data.courses],
            "max_students": mission_data.max_students,
            "start_date": mission_data.start_date,
            "end_date": mission_data.end_date,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now
        }

        await db.missions.insert_one(mission_doc)
        logger.info(f"✅ Created mission {mission_data.code}")

        return mission_doc

    async def get_mission(self, mission_id: str) -> Dict[str, Any]:
        """Get a mission or raise NotFoundError"""
        db = self.get_db()
        mission = await db.missions.find_one({"_id": parse_object_id(mission_id, "Mission")})
        if not mission:
            raise NotFoundError(f"Mission {mission_id} not found")
        return mission

    async def list_missions(
        self,
        status: Optional[MissionStatus] = None,
        batch_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        db = self.get_db()

        query: Dict[str, Any] = {}
        if status:
            query["status"] = status.value
        if batch_id:
            query["batch_id"] = batch_id

        return await db.missions.find(query).sort("created_at", -1).to_list(length=None)

    async def update_mission(self, mission_id: str, update_data: MissionUpdate) -> Dict[str, Any]:
        """Apply a partial update; status moves freely between all values"""
        db = self.get_db()
        mission = await self.get_mission(mission_id)

        changes = update_data.model_dump(exclude_unset=True, mode="json")
        # keep datetimes as datetimes for Mongo
        for field in ("start_date", "end_date"):
            if field in changes:
                changes[field] = getattr(update_data, field)

        if not changes:
            return mission

        changes["updated_at"] = datetime.utcnow()
        await db.missions.update_one({"_id": mission["_id"]}, {"$set": changes})

        logger.info(f"✅ Updated mission {mission['code']}: {', '.join(k for k in changes if k != 'updated_at')}")
        return await db.missions.find_one({"_id": mission["_id"]})

    async def delete_mission(self, mission_id: str) -> Dict[str, int]:
        """
        Hard delete a mission with its enrollments, groups, transfer history
        and mentor assignments.

        The steps are not transactional; a failure part way raises
        CascadeDeleteError listing what was already removed.
        """
        db = self.get_db()
        mission = await self.get_mission(mission_id)
        key = str(mission["_id"])

        removed = {
            "student_missions": 0,
            "mentorship_groups": 0,
            "group_transfer_logs": 0,
            "mission_mentors": 0
        }
        try:
            result = await db.student_missions.delete_many({"mission_id": key})
            removed["student_missions"] = result.deleted_count

            result = await db.mentorship_groups.delete_many({"mission_id": key})
            removed["mentorship_groups"] = result.deleted_count

            result = await db.group_transfer_logs.delete_many({"mission_id": key})
            removed["group_transfer_logs"] = result.deleted_count

            result = await db.mission_mentors.delete_many({"mission_id": key})
            removed["mission_mentors"] = result.deleted_count

            await db.missions.delete_one({"_id": mission["_id"]})
        except PyMongoError as e:
            logger.error(f"❌ Cascade delete of mission {key} stopped: {e}")
            raise CascadeDeleteError(
                f"Mission {key} was only partially deleted",
                details={"removed": removed, "error": str(e)}
            )

        logger.info(f"✅ Deleted mission {mission['code']} ({removed})")
        return removed


# Singleton instance
mission_service = MissionService()
