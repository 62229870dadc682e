"""
Mentor Service
Mission mentor assignments and the workload tracker

current_students on a MissionMentor is derived data. It is recomputed when a
group's membership changes or when a student's mentor_id changes, and can be
rebuilt for a whole mission by the workload reconciliation job.
"""

import logging
import math
from datetime import datetime
from typing import Dict, Any, List, Optional, Set
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..config.database import get_database
from ..models.mission_mentor import MissionMentorCreate, MentorStatus
from ..utils.errors import ConflictError, NotFoundError, CascadeDeleteError, ServiceError
from ..utils.helpers import parse_object_id, unique_ids
from .directory_service import directory_service
from .mission_service import mission_service

logger = logging.getLogger(__name__)

NOT_DROPPED = {"$ne": "dropped"}


def capacity_used(mentor_doc: Dict[str, Any]) -> Optional[float]:
    """Percentage of capacity in use; None when capacity is unlimited"""
    max_students = mentor_doc.get("max_students", 0) or 0
    if max_students <= 0:
        return None
    return round(mentor_doc.get("current_students", 0) / max_students * 100, 2)


class MentorService:
    """Service for mission mentor operations"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    # ============================================================================
    # WORKLOAD TRACKING
    # ============================================================================

    async def mentored_student_ids(self, mission_id: str, mentor_id: str) -> Set[str]:
        """
        Distinct students a mentor is responsible for in a mission: direct
        assignments on enrollments plus members of any group the mentor is in.
        """
        db = self.get_db()

        direct = await db.student_missions.find(
            {"mission_id": mission_id, "mentor_id": mentor_id, "status": NOT_DROPPED},
            {"student_id": 1}
        ).to_list(length=None)

        groups = await db.mentorship_groups.find(
            {
                "mission_id": mission_id,
                "$or": [{"mentors": mentor_id}, {"primary_mentor_id": mentor_id}]
            },
            {"students": 1}
        ).to_list(length=None)

        students = {record["student_id"] for record in direct}
        for group in groups:
            students.update(group.get("students", []))
        return students

    async def recompute_workload(self, mission_id: str, mentor_id: str) -> int:
        """Recompute and store current_students for one mentor. Status is left alone."""
        db = self.get_db()

        count = len(await self.mentored_student_ids(mission_id, mentor_id))
        await db.mission_mentors.update_one(
            {"mission_id": mission_id, "mentor_id": mentor_id},
            {"$set": {"current_students": count, "updated_at": datetime.utcnow()}}
        )
        logger.debug(f"Mentor {mentor_id} in mission {mission_id} now has {count} students")
        return count

    async def recompute_many(self, mission_id: str, mentor_ids: List[Optional[str]]):
        for mentor_id in unique_ids(m for m in mentor_ids if m):
            await self.recompute_workload(mission_id, mentor_id)

    async def recompute_mission_workloads(self, mission_id: str) -> Dict[str, int]:
        """Rebuild every mentor counter of a mission; idempotent"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        mentors = await db.mission_mentors.find({"mission_id": key}).to_list(length=None)
        changed = 0
        for mentor in mentors:
            count = await self.recompute_workload(key, mentor["mentor_id"])
            if count != mentor.get("current_students", 0):
                changed += 1

        logger.info(f"✅ Recomputed {len(mentors)} mentor workloads for mission {key} ({changed} changed)")
        return {"changed_count": changed, "total_mentors": len(mentors)}

    # ============================================================================
    # MISSION MENTOR ASSIGNMENT
    # ============================================================================

    async def assign_mentor_to_mission(self, mentor_data: MissionMentorCreate) -> Dict[str, Any]:
        """Create the MissionMentor record for a mentor joining a mission"""
        db = self.get_db()

        mission = await mission_service.get_mission(mentor_data.mission_id)
        key = str(mission["_id"])

        existing = await db.mission_mentors.find_one({"mission_id": key, "mentor_id": mentor_data.mentor_id})
        if existing:
            raise ConflictError(f"Mentor {mentor_data.mentor_id} is already assigned to this mission")

        now = datetime.utcnow()
        mentor_doc = {
            "_id": ObjectId(),
            "mission_id": key,
            "mentor_id": mentor_data.mentor_id,
            "batch_id": mission.get("batch_id"),
            "role": mentor_data.role.value,
            "status": MentorStatus.ACTIVE.value,
            "max_students": mentor_data.max_students,
            "current_students": 0,
            "specialization": mentor_data.specialization,
            "responsibilities": mentor_data.responsibilities,
            "availability_rate": mentor_data.availability_rate,
            "status_reason": None,
            "created_at": now,
            "updated_at": now
        }
        await db.mission_mentors.insert_one(mentor_doc)

        # The mentor may already be listed on groups or enrollments
        mentor_doc["current_students"] = await self.recompute_workload(key, mentor_data.mentor_id)

        logger.info(f"✅ Assigned mentor {mentor_data.mentor_id} to mission {mission['code']}")
        return mentor_doc

    async def get_mission_mentor(self, record_id: str) -> Dict[str, Any]:
        db = self.get_db()
        mentor = await db.mission_mentors.find_one({"_id": parse_object_id(record_id, "Mission mentor")})
        if not mentor:
            raise NotFoundError(f"Mission mentor {record_id} not found")
        return mentor

    async def list_mission_mentors(self, mission_id: str) -> List[Dict[str, Any]]:
        """Mentors of a mission with capacity usage and display info"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)

        mentors = await db.mission_mentors.find({"mission_id": str(mission["_id"])}).to_list(length=None)
        users = await directory_service.get_users([m["mentor_id"] for m in mentors])

        for mentor in mentors:
            mentor["capacity_used"] = capacity_used(mentor)
            mentor["mentor"] = users.get(mentor["mentor_id"])
        return mentors

    async def update_mentor_status(
        self,
        record_id: str,
        status: MentorStatus,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Manually flag a mentor (active, overloaded, unavailable, ...)"""
        db = self.get_db()
        mentor = await self.get_mission_mentor(record_id)

        await db.mission_mentors.update_one(
            {"_id": mentor["_id"]},
            {"$set": {
                "status": MentorStatus(status).value,
                "status_reason": reason,
                "updated_at": datetime.utcnow()
            }}
        )
        logger.info(f"✅ Mentor {mentor['mentor_id']} status set to {MentorStatus(status).value}")
        return await db.mission_mentors.find_one({"_id": mentor["_id"]})

    async def bulk_update_capacity(
        self,
        mission_id: str,
        record_ids: List[str],
        max_students: int
    ) -> Dict[str, Any]:
        """Set max_students on several mentor records of one mission, best effort"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        results = {"updated": [], "failed": []}
        for record_id in record_ids:
            try:
                mentor = await self.get_mission_mentor(record_id)
                if mentor["mission_id"] != key:
                    raise NotFoundError(f"Mission mentor {record_id} is not part of this mission")
                await db.mission_mentors.update_one(
                    {"_id": mentor["_id"]},
                    {"$set": {"max_students": max_students, "updated_at": datetime.utcnow()}}
                )
                results["updated"].append(record_id)
            except ServiceError as e:
                results["failed"].append({"id": record_id, "code": e.code, "error": e.message})
            except PyMongoError as e:
                results["failed"].append({"id": record_id, "code": "INTERNAL_ERROR", "error": str(e)})

        return results

    async def unassign_mentor(self, record_id: str) -> Dict[str, int]:
        """
        Remove a mentor from a mission: clear direct student assignments,
        drop the mentor from the mission's groups, then delete the record.
        """
        db = self.get_db()
        mentor = await self.get_mission_mentor(record_id)
        mission_id, mentor_id = mentor["mission_id"], mentor["mentor_id"]

        cleared = {"students": 0, "groups": 0}
        try:
            result = await db.student_missions.update_many(
                {"mission_id": mission_id, "mentor_id": mentor_id},
                {"$set": {"mentor_id": None, "updated_at": datetime.utcnow()}}
            )
            cleared["students"] = result.modified_count

            result = await db.mentorship_groups.update_many(
                {"mission_id": mission_id, "mentors": mentor_id},
                {"$pull": {"mentors": mentor_id}}
            )
            cleared["groups"] = result.modified_count

            await db.mentorship_groups.update_many(
                {"mission_id": mission_id, "primary_mentor_id": mentor_id},
                {"$set": {"primary_mentor_id": None}}
            )

            await db.mission_mentors.delete_one({"_id": mentor["_id"]})
        except PyMongoError as e:
            logger.error(f"❌ Unassigning mentor {mentor_id} stopped part way: {e}")
            raise CascadeDeleteError(
                f"Mentor {mentor_id} was only partially removed from the mission",
                details={"cleared": cleared, "error": str(e)}
            )

        logger.info(f"✅ Unassigned mentor {mentor_id} from mission {mission_id}")
        return cleared

    # ============================================================================
    # STUDENT TO MENTOR ASSIGNMENT (direct path)
    # ============================================================================

    async def _require_assignment(self, mission_id: str, mentor_id: str) -> Dict[str, Any]:
        db = self.get_db()
        assignment = await db.mission_mentors.find_one({"mission_id": mission_id, "mentor_id": mentor_id})
        if not assignment:
            raise NotFoundError(f"Mentor {mentor_id} is not assigned to mission {mission_id}")
        return assignment

    async def _set_student_mentor(self, mission_id: str, student_id: str, mentor_id: Optional[str]) -> Optional[str]:
        """Point the active enrollment at mentor_id; returns the previous mentor"""
        db = self.get_db()

        record = await db.student_missions.find_one(
            {"mission_id": mission_id, "student_id": student_id, "status": NOT_DROPPED}
        )
        if not record:
            raise NotFoundError(f"Student {student_id} is not enrolled in mission {mission_id}")

        await db.student_missions.update_one(
            {"_id": record["_id"]},
            {"$set": {"mentor_id": mentor_id, "updated_at": datetime.utcnow()}}
        )
        return record.get("mentor_id")

    async def assign_student_mentor(self, mission_id: str, student_id: str, mentor_id: str) -> Dict[str, Any]:
        """Set a student's mentor and recompute both the old and the new mentor"""
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        await self._require_assignment(key, mentor_id)
        previous = await self._set_student_mentor(key, student_id, mentor_id)
        await self.recompute_many(key, [previous, mentor_id])

        logger.info(f"✅ Student {student_id} assigned to mentor {mentor_id}")
        return {"student_id": student_id, "mentor_id": mentor_id, "previous_mentor_id": previous}

    async def remove_student_mentor(self, mission_id: str, student_id: str) -> Dict[str, Any]:
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        previous = await self._set_student_mentor(key, student_id, None)
        await self.recompute_many(key, [previous])

        logger.info(f"✅ Student {student_id} no longer has a direct mentor")
        return {"student_id": student_id, "mentor_id": None, "previous_mentor_id": previous}

    async def bulk_assign_students(
        self,
        mission_id: str,
        mentor_ids: List[str],
        student_ids: List[str],
        distribute_evenly: bool = True
    ) -> Dict[str, Any]:
        """
        Assign students to mentors

        distribute_evenly splits the students into contiguous chunks of
        ceil(n / m); otherwise every student is offered to every mentor in
        turn and the last mentor wins the single mentor_id field.
        Each student is handled on its own; failures are collected.
        """
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        mentor_ids = unique_ids(mentor_ids)
        student_ids = unique_ids(student_ids)

        plan = []
        if distribute_evenly:
            per_mentor = math.ceil(len(student_ids) / len(mentor_ids)) if mentor_ids else 0
            for index, mentor_id in enumerate(mentor_ids):
                chunk = student_ids[index * per_mentor:(index + 1) * per_mentor]
                plan.extend((mentor_id, student_id) for student_id in chunk)
        else:
            plan = [(mentor_id, student_id) for mentor_id in mentor_ids for student_id in student_ids]

        results = {
            "assigned": [],
            "failed": [],
            "total_students": len(student_ids),
            "total_mentors": len(mentor_ids)
        }
        touched: List[Optional[str]] = []

        for mentor_id, student_id in plan:
            try:
                await self._require_assignment(key, mentor_id)
                previous = await self._set_student_mentor(key, student_id, mentor_id)
                touched.extend([previous, mentor_id])
                results["assigned"].append({"student_id": student_id, "mentor_id": mentor_id})
            except ServiceError as e:
                results["failed"].append({
                    "student_id": student_id, "mentor_id": mentor_id, "code": e.code, "error": e.message
                })
            except PyMongoError as e:
                results["failed"].append({
                    "student_id": student_id, "mentor_id": mentor_id, "code": "INTERNAL_ERROR", "error": str(e)
                })
                logger.warning(f"Failed to assign student {student_id} to mentor {mentor_id}: {e}")

        await self.recompute_many(key, touched)
        logger.info(f"✅ Bulk assignment complete: {len(results['assigned'])}/{len(plan)} successful")
        return results


# Singleton instance
mentor_service = MentorService()
