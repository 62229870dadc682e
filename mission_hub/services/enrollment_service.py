"""
Enrollment Service
Handles student enrollment in missions (StudentMission records)
"""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..config.database import get_database
from ..models.student_mission import StudentMissionStatus
from ..utils.errors import InvalidRequestError, NotFoundError, ServiceError
from ..utils.helpers import clamp_progress
from .directory_service import directory_service
from .mentor_service import mentor_service
from .mission_service import mission_service

logger = logging.getLogger(__name__)

DROPPED = StudentMissionStatus.DROPPED.value
NOT_DROPPED = {"$ne": DROPPED}


def build_enrollment_doc(
    mission: Dict[str, Any],
    student_id: str,
    status: str = StudentMissionStatus.ACTIVE.value,
    progress: float = 0,
    mentor_id: Optional[str] = None,
    started_at: Optional[datetime] = None,
    course_progress: Optional[List[Dict[str, Any]]] = None,
    mentorship_group_id: Optional[str] = None
) -> Dict[str, Any]:
    """New StudentMission document for a student in a mission"""
    now = datetime.utcnow()
    return {
        "_id": ObjectId(),
        "student_id": student_id,
        "mission_id": str(mission["_id"]),
        "batch_id": mission.get("batch_id"),
        "mentor_id": mentor_id,
        "mentorship_group_id": mentorship_group_id,
        "status": status,
        "progress": progress,
        "started_at": started_at or now,
        "completed_at": None,
        "dropped_at": None,
        "last_activity": now,
        "course_progress": course_progress or [],
        "created_at": now,
        "updated_at": now
    }


class EnrollmentService:
    """Service for mission enrollment operations"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    # ============================================================================
    # ENROLLMENT QUERIES
    # ============================================================================

    async def find_enrollment(self, mission_id: str, student_id: str) -> Optional[Dict[str, Any]]:
        """
        The record a status change applies to: the non-dropped enrollment if
        there is one, otherwise the most recent historical record.
        """
        db = self.get_db()

        current = await db.student_missions.find_one({
            "mission_id": mission_id,
            "student_id": student_id,
            "status": NOT_DROPPED
        })
        if current:
            return current

        return await db.student_missions.find_one(
            {"mission_id": mission_id, "student_id": student_id},
            sort=[("created_at", -1)]
        )

    async def get_roster(self, mission_id: str, include_dropped: bool = False) -> List[Dict[str, Any]]:
        """Enrollment records of a mission with student display info"""
        db = self.get_db()

        query: Dict[str, Any] = {"mission_id": mission_id}
        if not include_dropped:
            query["status"] = NOT_DROPPED

        records = await db.student_missions.find(query).sort("started_at", 1).to_list(length=None)
        users = await directory_service.get_users([r["student_id"] for r in records])

        for record in records:
            record["student"] = users.get(record["student_id"])
        return records

    async def group_pointers(self, mission_id: str, student_ids: List[str]) -> Dict[str, str]:
        """
        Group each student is listed in, for new records. A student listed in
        several groups points at the oldest one.
        """
        db = self.get_db()

        groups = await db.mentorship_groups.find(
            {"mission_id": mission_id, "students": {"$in": student_ids}},
            {"students": 1, "created_at": 1}
        ).sort("created_at", 1).to_list(length=None)

        pointers: Dict[str, str] = {}
        for group in groups:
            for student_id in group.get("students", []):
                if student_id in student_ids:
                    pointers.setdefault(student_id, str(group["_id"]))
        return pointers

    # ============================================================================
    # ENROLLMENT OPERATIONS
    # ============================================================================

    async def enroll(self, mission_id: str, student_ids: List[str]) -> Dict[str, Any]:
        """
        Enroll students into a mission

        Students already enrolled (non-dropped) are skipped and reported back.
        Each new record is inserted independently; store failures are
        collected instead of aborting the rest.

        Returns:
            Summary with added count, skipped ids, failures and the roster
        """
        db = self.get_db()

        if not student_ids:
            raise InvalidRequestError("Student IDs array is required")

        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        if len(set(student_ids)) != len(student_ids):
            duplicates = sorted({sid for sid in student_ids if student_ids.count(sid) > 1})
            raise InvalidRequestError(
                "Duplicate student IDs are not allowed",
                details={"duplicate_student_ids": duplicates}
            )

        approved = await directory_service.approved_student_ids(mission["batch_id"], student_ids)
        invalid_ids = [sid for sid in student_ids if sid not in approved]
        if invalid_ids:
            raise InvalidRequestError(
                f"Students {', '.join(invalid_ids)} do not belong to this mission's batch",
                details={"invalid_student_ids": invalid_ids}
            )

        existing = await db.student_missions.find(
            {"mission_id": key, "student_id": {"$in": student_ids}, "status": NOT_DROPPED},
            {"student_id": 1}
        ).to_list(length=None)
        enrolled_ids = {record["student_id"] for record in existing}

        already_enrolled = [sid for sid in student_ids if sid in enrolled_ids]
        new_ids = [sid for sid in student_ids if sid not in enrolled_ids]

        if not new_ids:
            raise InvalidRequestError(
                f"Students {', '.join(already_enrolled)} are already enrolled in this mission",
                details={"already_enrolled": already_enrolled}
            )

        pointers = await self.group_pointers(key, new_ids)

        added = 0
        failed = []
        for student_id in new_ids:
            try:
                await db.student_missions.insert_one(build_enrollment_doc(
                    mission, student_id, mentorship_group_id=pointers.get(student_id)
                ))
                added += 1
            except PyMongoError as e:
                failed.append({"student_id": student_id, "error": str(e)})
                logger.warning(f"Failed to enroll student {student_id} in mission {key}: {e}")

        roster = await self.get_roster(key)
        logger.info(f"✅ Enrolled {added}/{len(new_ids)} students in mission {mission['code']}")

        return {
            "added_count": added,
            "already_enrolled": already_enrolled,
            "failed": failed,
            "students": roster,
            "total_students": len(roster)
        }

    async def remove(self, mission_id: str, student_ids: List[str]) -> Dict[str, Any]:
        """
        Remove students from a mission (mark as dropped)

        Records are kept as history. Ids that are not enrolled come back as
        warnings as long as at least one id was valid.
        """
        db = self.get_db()

        if not student_ids:
            raise InvalidRequestError("Student IDs array is required")

        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        existing = await db.student_missions.find(
            {"mission_id": key, "student_id": {"$in": student_ids}, "status": NOT_DROPPED},
            {"student_id": 1, "mentor_id": 1}
        ).to_list(length=None)
        valid_ids = sorted({record["student_id"] for record in existing}, key=student_ids.index)
        warnings = [sid for sid in student_ids if sid not in valid_ids]

        if not valid_ids:
            raise InvalidRequestError(
                "None of the selected students are enrolled in this mission",
                details={"student_ids": student_ids}
            )

        if warnings:
            logger.warning(f"Some student IDs were not found in mission {key}: {', '.join(warnings)}")

        now = datetime.utcnow()
        await db.student_missions.update_many(
            {"mission_id": key, "student_id": {"$in": valid_ids}, "status": NOT_DROPPED},
            {"$set": {"status": DROPPED, "last_activity": now, "updated_at": now}}
        )
        await mentor_service.recompute_many(key, [record.get("mentor_id") for record in existing])

        roster = await self.get_roster(key)
        logger.info(f"✅ Removed {len(valid_ids)} students from mission {mission['code']}")

        return {
            "removed_count": len(valid_ids),
            "warnings": warnings,
            "students": roster,
            "total_students": len(roster)
        }

    async def _apply_update(
        self,
        record: Dict[str, Any],
        status: Optional[StudentMissionStatus],
        progress: Optional[float]
    ) -> Dict[str, Any]:
        db = self.get_db()
        now = datetime.utcnow()

        changes: Dict[str, Any] = {"last_activity": now, "updated_at": now}
        if status is not None:
            changes["status"] = status.value
            # Timestamps are stamped on entry and never cleared afterwards
            if status == StudentMissionStatus.COMPLETED:
                changes["completed_at"] = now
            elif status == StudentMissionStatus.DROPPED:
                changes["dropped_at"] = now
        if progress is not None:
            changes["progress"] = clamp_progress(progress)

        await db.student_missions.update_one({"_id": record["_id"]}, {"$set": changes})
        if status is not None and status.value != record.get("status"):
            await mentor_service.recompute_many(record["mission_id"], [record.get("mentor_id")])
        return await db.student_missions.find_one({"_id": record["_id"]})

    async def set_student_status(
        self,
        mission_id: str,
        student_id: str,
        status: StudentMissionStatus,
        progress: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Update a single student's mission status/progress

        Any status may follow any other; this reuses the existing record
        rather than creating a new one.
        """
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        record = await self.find_enrollment(key, student_id)
        if not record:
            raise NotFoundError(f"Student {student_id} is not enrolled in mission {key}")

        updated = await self._apply_update(record, StudentMissionStatus(status), progress)
        logger.info(f"✅ Student {student_id} in mission {mission['code']} set to {updated['status']}")
        return updated

    async def bulk_update_students(
        self,
        mission_id: str,
        student_ids: List[str],
        status: Optional[StudentMissionStatus] = None,
        progress: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Apply the same status/progress to several students

        Returns:
            Summary with updated records and per-student failures
        """
        if status is None and progress is None:
            raise InvalidRequestError("Provide a status and/or progress to apply")

        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        results = {
            "updated": [],
            "failed": [],
            "total": len(student_ids),
            "success_count": 0,
            "failed_count": 0
        }

        for student_id in student_ids:
            try:
                record = await self.find_enrollment(key, student_id)
                if not record:
                    raise NotFoundError(f"Student {student_id} is not enrolled in this mission")

                updated = await self._apply_update(
                    record,
                    StudentMissionStatus(status) if status is not None else None,
                    progress
                )
                results["updated"].append(updated)
                results["success_count"] += 1

            except ServiceError as e:
                results["failed"].append({"student_id": student_id, "code": e.code, "error": e.message})
                results["failed_count"] += 1
            except PyMongoError as e:
                results["failed"].append({"student_id": student_id, "code": "INTERNAL_ERROR", "error": str(e)})
                results["failed_count"] += 1
                logger.warning(f"Failed to update student {student_id}: {e}")

        logger.info(f"✅ Bulk update complete: {results['success_count']}/{results['total']} successful")
        return results


# Singleton instance
enrollment_service = EnrollmentService()
