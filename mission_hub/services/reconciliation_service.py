"""
Reconciliation Service
Idempotent repair jobs for drift between redundant representations

- fix: drop enrollments of students who left the mission's batch
- sync: one-way migration of the legacy Mission.students[] array
- clear: drop every enrollment of a mission before a re-import
- workload: rebuild mentor current_students counters
- groups: one group per student per mission, cached pointers realigned
"""

import logging
from datetime import datetime
from typing import Dict, Any, List
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from ..config.database import get_database
from ..models.mission import LegacyMissionStudent
from ..models.student_mission import StudentMissionStatus
from ..utils.helpers import clamp_progress
from .directory_service import directory_service
from .enrollment_service import build_enrollment_doc, enrollment_service
from .mentor_service import mentor_service
from .mission_service import mission_service

logger = logging.getLogger(__name__)

DROPPED = StudentMissionStatus.DROPPED.value
NOT_DROPPED = {"$ne": DROPPED}
ENROLLMENT_STATUSES = {status.value for status in StudentMissionStatus}


class ReconciliationService:
    """Service for on-demand consistency repairs"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    async def fix(self, mission_id: str) -> Dict[str, int]:
        """
        Drop every active enrollment whose student is no longer an approved
        member of the mission's batch. Already-dropped records are untouched.
        """
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        approved = await directory_service.approved_student_ids(mission["batch_id"])
        now = datetime.utcnow()

        query = {"mission_id": key, "status": NOT_DROPPED, "student_id": {"$nin": list(approved)}}
        invalid = await db.student_missions.find(query, {"mentor_id": 1}).to_list(length=None)

        result = await db.student_missions.update_many(
            query,
            {"$set": {"status": DROPPED, "last_activity": now, "updated_at": now}}
        )
        await mentor_service.recompute_many(key, [record.get("mentor_id") for record in invalid])

        if result.modified_count:
            logger.info(f"✅ Fixed mission {mission['code']}: {result.modified_count} invalid students dropped")
        else:
            logger.info(f"Mission {mission['code']} is already consistent with its batch")
        return {"changed_count": result.modified_count}

    async def sync(self, mission_id: str) -> Dict[str, Any]:
        """
        Create StudentMission records for legacy embedded entries that have none.

        Existing records are never overwritten and the embedded array is never
        written back. A bad entry is recorded in errors and the loop carries on.
        """
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        embedded = mission.get("students") or []
        legacy_ids = [entry.get("student_id") for entry in embedded if isinstance(entry, dict)]
        pointers = await enrollment_service.group_pointers(key, [str(sid) for sid in legacy_ids if sid])
        mentor_ids = []
        synced = 0
        errors: List[str] = []

        for entry in embedded:
            label = entry.get("student_id") if isinstance(entry, dict) else entry
            try:
                legacy = LegacyMissionStudent.model_validate(entry)

                existing = await db.student_missions.find_one({"mission_id": key, "student_id": legacy.student_id})
                if existing:
                    continue

                status = legacy.status if legacy.status in ENROLLMENT_STATUSES else StudentMissionStatus.ACTIVE.value
                await db.student_missions.insert_one(build_enrollment_doc(
                    mission,
                    legacy.student_id,
                    status=status,
                    progress=clamp_progress(legacy.progress or 0),
                    mentor_id=legacy.primary_mentor_id,
                    started_at=legacy.started_at,
                    course_progress=legacy.course_progress,
                    mentorship_group_id=pointers.get(legacy.student_id)
                ))
                synced += 1
                mentor_ids.append(legacy.primary_mentor_id)

            except (ValidationError, PyMongoError) as e:
                logger.error(f"Error syncing student {label}: {e}")
                errors.append(f"Failed to sync student {label}: {e}")

        await mentor_service.recompute_many(key, mentor_ids)

        logger.info(f"✅ Synced {synced} students from the embedded roster of mission {mission['code']}")
        return {"synced_count": synced, "total_embedded": len(embedded), "errors": errors}

    async def clear(self, mission_id: str) -> Dict[str, int]:
        """Mark every non-dropped enrollment of the mission as dropped"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])
        now = datetime.utcnow()

        query = {"mission_id": key, "status": NOT_DROPPED}
        cleared = await db.student_missions.find(query, {"mentor_id": 1}).to_list(length=None)

        result = await db.student_missions.update_many(
            query,
            {"$set": {"status": DROPPED, "last_activity": now, "updated_at": now}}
        )
        await mentor_service.recompute_many(key, [record.get("mentor_id") for record in cleared])

        logger.info(f"✅ All students cleared from mission {mission['code']} ({result.modified_count} dropped)")
        return {"updated_count": result.modified_count}

    async def workload(self, mission_id: str) -> Dict[str, int]:
        return await mentor_service.recompute_mission_workloads(mission_id)

    async def groups(self, mission_id: str) -> Dict[str, int]:
        """
        Enforce one group per student per mission and realign cached pointers.

        A student found in several groups stays in the group their enrollment
        points at, or the oldest group when the pointer names none of them.
        """
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])
        now = datetime.utcnow()

        groups = await db.mentorship_groups.find({"mission_id": key}).sort("created_at", 1).to_list(length=None)
        enrollments = await db.student_missions.find(
            {"mission_id": key, "status": NOT_DROPPED}
        ).to_list(length=None)
        pointers = {record["student_id"]: record.get("mentorship_group_id") for record in enrollments}

        memberships: Dict[str, List[Dict[str, Any]]] = {}
        for group in groups:
            for student_id in group.get("students", []):
                memberships.setdefault(student_id, []).append(group)

        changed = 0
        home: Dict[str, str] = {}
        for student_id, student_groups in memberships.items():
            keep = next(
                (g for g in student_groups if str(g["_id"]) == pointers.get(student_id)),
                student_groups[0]
            )
            home[student_id] = str(keep["_id"])

            for group in student_groups:
                if group["_id"] != keep["_id"]:
                    await db.mentorship_groups.update_one(
                        {"_id": group["_id"]},
                        {"$pull": {"students": student_id}}
                    )
                    group["students"] = [sid for sid in group["students"] if sid != student_id]
                    changed += 1

        for group in groups:
            count = len(group.get("students", []))
            if group.get("current_students") != count:
                await db.mentorship_groups.update_one(
                    {"_id": group["_id"]},
                    {"$set": {"current_students": count, "updated_at": now}}
                )
                changed += 1

        for record in enrollments:
            expected = home.get(record["student_id"])
            if record.get("mentorship_group_id") != expected:
                await db.student_missions.update_one(
                    {"_id": record["_id"]},
                    {"$set": {"mentorship_group_id": expected, "updated_at": now}}
                )
                changed += 1

        if changed:
            await mentor_service.recompute_mission_workloads(key)

        logger.info(f"✅ Group membership of mission {mission['code']} reconciled ({changed} changes)")
        return {"changed_count": changed}

    async def run(self, mission_id: str, action: str) -> Dict[str, Any]:
        """Dispatch a reconciliation action by name"""
        jobs = {
            "fix": self.fix,
            "sync": self.sync,
            "clear": self.clear,
            "workload": self.workload,
            "groups": self.groups,
        }
        return await jobs[action](mission_id)


# Singleton instance
reconciliation_service = ReconciliationService()
