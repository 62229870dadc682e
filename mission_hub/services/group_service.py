"""
Mentorship Group Service
Group membership, capacity limits and the cached StudentMission group pointer

The group's students[] list is the source of truth for membership.
StudentMission.mentorship_group_id is a cached pointer written alongside
every membership change and rebuilt by the groups reconciliation job.
"""

import logging
from datetime import datetime
from typing import Dict, Any, List, Optional
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from ..config.database import get_database
from ..config.settings import settings
from ..models.mentorship_group import GroupCreate, GroupUpdate, GroupStatus, GroupType, SkillLevel, MeetingSchedule
from ..utils.errors import InvalidRequestError, CapacityExceededError, NotFoundError, CascadeDeleteError
from ..utils.helpers import parse_object_id, unique_ids
from .directory_service import directory_service
from .mentor_service import mentor_service
from .mission_service import mission_service

logger = logging.getLogger(__name__)

NOT_DROPPED = {"$ne": "dropped"}


def group_mentor_ids(group: Dict[str, Any]) -> List[Optional[str]]:
    """Every mentor whose workload depends on this group"""
    return list(group.get("mentors", [])) + [group.get("primary_mentor_id")]


class GroupService:
    """Service for mentorship group operations"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    # ============================================================================
    # INTERNAL HELPERS
    # ============================================================================

    def _check_capacity(self, group: Dict[str, Any], incoming: List[str]):
        """Reject the whole request if incoming students would overflow the group"""
        max_students = group.get("max_students", 0) or 0
        current = len(group.get("students", []))
        if max_students > 0 and current + len(incoming) > max_students:
            raise CapacityExceededError(
                f"Group '{group['name']}' can take {max(max_students - current, 0)} more "
                f"student(s), {len(incoming)} requested",
                details={"max_students": max_students, "current_students": current, "requested": len(incoming)}
            )

    async def _refresh_count(self, group_id: ObjectId) -> Dict[str, Any]:
        """Recompute current_students from the students list"""
        db = self.get_db()
        group = await db.mentorship_groups.find_one({"_id": group_id})
        await db.mentorship_groups.update_one(
            {"_id": group_id},
            {"$set": {"current_students": len(group.get("students", [])), "updated_at": datetime.utcnow()}}
        )
        return await db.mentorship_groups.find_one({"_id": group_id})

    async def _point_students_at(self, group: Dict[str, Any], student_ids: List[str]):
        """Set the cached group pointer on the students' active enrollments"""
        if not student_ids:
            return
        db = self.get_db()
        await db.student_missions.update_many(
            {"mission_id": group["mission_id"], "student_id": {"$in": student_ids}, "status": NOT_DROPPED},
            {"$set": {"mentorship_group_id": str(group["_id"]), "updated_at": datetime.utcnow()}}
        )

    async def _clear_pointers(self, group: Dict[str, Any], student_ids: Optional[List[str]] = None):
        """Clear cached pointers that still reference this group"""
        db = self.get_db()
        query: Dict[str, Any] = {"mission_id": group["mission_id"], "mentorship_group_id": str(group["_id"])}
        if student_ids is not None:
            query["student_id"] = {"$in": student_ids}
        result = await db.student_missions.update_many(
            query,
            {"$set": {"mentorship_group_id": None, "updated_at": datetime.utcnow()}}
        )
        return result.modified_count

    async def _warn_if_grouped_elsewhere(self, group: Dict[str, Any], student_ids: List[str]):
        db = self.get_db()
        others = await db.mentorship_groups.find({
            "mission_id": group["mission_id"],
            "_id": {"$ne": group["_id"]},
            "students": {"$in": student_ids}
        }, {"name": 1, "students": 1}).to_list(length=None)

        for other in others:
            overlap = [sid for sid in student_ids if sid in other.get("students", [])]
            logger.warning(
                f"⚠️ Students {', '.join(overlap)} are also in group '{other['name']}' "
                f"of mission {group['mission_id']}"
            )

    # ============================================================================
    # GROUP CRUD OPERATIONS
    # ============================================================================

    async def create_group(
        self,
        group_data: GroupCreate,
        created_by: Optional[str] = None,
        is_recovery: bool = False
    ) -> Dict[str, Any]:
        """
        Create a mentorship group in a mission

        Args:
            group_data: Group payload
            created_by: User ID creating the group
            is_recovery: Marks the mission's recovery group

        Returns:
            Created group document
        """
        db = self.get_db()

        mission = await mission_service.get_mission(group_data.mission_id)
        mentors = unique_ids(group_data.mentor_ids)

        if group_data.primary_mentor_id and group_data.primary_mentor_id not in mentors:
            logger.warning(f"⚠️ Primary mentor {group_data.primary_mentor_id} is not in the group's mentor list")

        now = datetime.utcnow()
        group_doc = {
            "_id": ObjectId(),
            "name": group_data.name,
            "description": group_data.description or "",
            "mission_id": str(mission["_id"]),
            "batch_id": mission.get("batch_id"),
            "students": [],
            "mentors": mentors,
            "primary_mentor_id": group_data.primary_mentor_id,
            "max_students": group_data.max_students,
            "current_students": 0,
            "status": group_data.status.value,
            "group_type": group_data.group_type.value,
            "skill_level": group_data.skill_level.value,
            "meeting_schedule": group_data.meeting_schedule.model_dump(mode="json"),
            "communication_channel": (
                group_data.communication_channel.model_dump(mode="json")
                if group_data.communication_channel else None
            ),
            "is_recovery": is_recovery,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now
        }

        await db.mentorship_groups.insert_one(group_doc)
        logger.info(f"✅ Group created: '{group_doc['name']}' in mission {mission['code']}")

        return group_doc

    async def get_group(self, group_id: str) -> Dict[str, Any]:
        db = self.get_db()
        group = await db.mentorship_groups.find_one({"_id": parse_object_id(group_id, "Group")})
        if not group:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    async def list_groups(self, mission_id: str, status: Optional[GroupStatus] = None) -> List[Dict[str, Any]]:
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)

        query: Dict[str, Any] = {"mission_id": str(mission["_id"])}
        if status:
            query["status"] = status.value
        return await db.mentorship_groups.find(query).sort("created_at", 1).to_list(length=None)

    async def update_group(self, group_id: str, update_data: GroupUpdate) -> Dict[str, Any]:
        """Free-form metadata update"""
        db = self.get_db()
        group = await self.get_group(group_id)

        changes = update_data.model_dump(exclude_unset=True, mode="json")
        if not changes:
            return group

        primary = changes.get("primary_mentor_id")
        if primary and primary not in group.get("mentors", []):
            logger.warning(f"⚠️ Primary mentor {primary} is not in the mentor list of group '{group['name']}'")

        max_students = changes.get("max_students")
        if max_students and len(group.get("students", [])) > max_students:
            logger.warning(f"⚠️ Group '{group['name']}' now holds more students than max_students={max_students}")

        changes["updated_at"] = datetime.utcnow()
        await db.mentorship_groups.update_one({"_id": group["_id"]}, {"$set": changes})

        if "primary_mentor_id" in changes:
            await mentor_service.recompute_many(
                group["mission_id"], [group.get("primary_mentor_id"), changes["primary_mentor_id"]]
            )

        logger.info(f"✅ Group '{group['name']}' updated")
        return await db.mentorship_groups.find_one({"_id": group["_id"]})

    async def delete_group(self, group_id: str) -> Dict[str, Any]:
        """Delete a group, clearing cached pointers and recomputing its mentors"""
        db = self.get_db()
        group = await self.get_group(group_id)

        cleared = 0
        try:
            cleared = await self._clear_pointers(group)
            await db.mentorship_groups.delete_one({"_id": group["_id"]})
            await mentor_service.recompute_many(group["mission_id"], group_mentor_ids(group))
        except PyMongoError as e:
            logger.error(f"❌ Deleting group {group_id} stopped part way: {e}")
            raise CascadeDeleteError(
                f"Group '{group['name']}' was only partially deleted",
                details={"cleared_pointers": cleared, "error": str(e)}
            )

        logger.info(f"✅ Group '{group['name']}' deleted")
        return {"group_id": str(group["_id"]), "cleared_pointers": cleared}

    # ============================================================================
    # MEMBERSHIP OPERATIONS
    # ============================================================================

    async def add_to_group(
        self,
        group_id: str,
        mentor_ids: Optional[List[str]] = None,
        student_ids: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        """
        Add mentors and/or students to a group

        Students already in the group are ignored. If the new students would
        overflow max_students nothing at all is applied.
        """
        db = self.get_db()
        group = await self.get_group(group_id)

        new_students = [sid for sid in unique_ids(student_ids or []) if sid not in group.get("students", [])]
        new_mentors = [mid for mid in unique_ids(mentor_ids or []) if mid not in group.get("mentors", [])]

        self._check_capacity(group, new_students)

        if not new_students and not new_mentors:
            return group

        additions = {}
        if new_students:
            additions["students"] = {"$each": new_students}
        if new_mentors:
            additions["mentors"] = {"$each": new_mentors}

        await db.mentorship_groups.update_one({"_id": group["_id"]}, {"$addToSet": additions})
        updated = await self._refresh_count(group["_id"])

        if new_students:
            await self._warn_if_grouped_elsewhere(updated, new_students)
            await self._point_students_at(updated, new_students)

        await mentor_service.recompute_many(updated["mission_id"], group_mentor_ids(updated))

        logger.info(
            f"✅ Added {len(new_students)} students and {len(new_mentors)} mentors to group '{group['name']}'"
        )
        return updated

    async def remove_from_group(self, group_id: str, user_id: str) -> Dict[str, Any]:
        """Remove a student or mentor from a group; absent ids are a no-op"""
        db = self.get_db()
        group = await self.get_group(group_id)

        is_student = user_id in group.get("students", [])
        is_mentor = user_id in group.get("mentors", []) or group.get("primary_mentor_id") == user_id
        if not is_student and not is_mentor:
            return group

        update: Dict[str, Any] = {"$pull": {"students": user_id, "mentors": user_id}}
        if group.get("primary_mentor_id") == user_id:
            update["$set"] = {"primary_mentor_id": None}

        await db.mentorship_groups.update_one({"_id": group["_id"]}, update)
        updated = await self._refresh_count(group["_id"])

        if is_student:
            await self._clear_pointers(group, [user_id])

        # Mentor list from before the removal so a removed mentor is recounted too
        await mentor_service.recompute_many(group["mission_id"], group_mentor_ids(group))

        logger.info(f"✅ Removed {user_id} from group '{group['name']}'")
        return updated

    async def transfer_students(
        self,
        group_id: str,
        to_group_id: str,
        student_ids: List[str],
        reason: Optional[str] = None,
        transferred_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Move students from one group to another group of the same mission.
        Students not in the source group are reported as skipped. Every
        move is recorded in group_transfer_logs.
        """
        db = self.get_db()
        source = await self.get_group(group_id)
        destination = await self.get_group(to_group_id)

        if source["_id"] == destination["_id"]:
            raise InvalidRequestError("Source and destination groups must differ")
        if source["mission_id"] != destination["mission_id"]:
            raise InvalidRequestError("Groups must be in the same mission")

        requested = unique_ids(student_ids)
        moving = [sid for sid in requested if sid in source.get("students", [])]
        skipped = [sid for sid in requested if sid not in moving]
        incoming = [sid for sid in moving if sid not in destination.get("students", [])]

        self._check_capacity(destination, incoming)

        if moving:
            await db.mentorship_groups.update_one(
                {"_id": source["_id"]},
                {"$pullAll": {"students": moving}}
            )
            if incoming:
                await db.mentorship_groups.update_one(
                    {"_id": destination["_id"]},
                    {"$addToSet": {"students": {"$each": incoming}}}
                )
            await self._refresh_count(source["_id"])
            destination = await self._refresh_count(destination["_id"])
            await self._point_students_at(destination, moving)

            now = datetime.utcnow()
            await db.group_transfer_logs.insert_many([
                {
                    "_id": ObjectId(),
                    "mission_id": source["mission_id"],
                    "from_group_id": str(source["_id"]),
                    "to_group_id": str(destination["_id"]),
                    "student_id": student_id,
                    "transferred_by": transferred_by,
                    "reason": reason,
                    "created_at": now
                }
                for student_id in moving
            ])

            await mentor_service.recompute_many(
                source["mission_id"], group_mentor_ids(source) + group_mentor_ids(destination)
            )

        logger.info(f"✅ Transferred {len(moving)} students from '{source['name']}' to '{destination['name']}'")
        return {
            "from": str(source["_id"]),
            "to": str(destination["_id"]),
            "transferred": len(moving),
            "skipped": skipped
        }

    async def ensure_recovery_group(self, mission_id: str) -> Dict[str, Any]:
        """The mission's recovery group, created on first use"""
        db = self.get_db()

        existing = await db.mentorship_groups.find_one({"mission_id": mission_id, "is_recovery": True})
        if existing:
            return existing

        return await self.create_group(GroupCreate(
            name=settings.recovery_group_name,
            description="Temporary group for irregular students",
            mission_id=mission_id,
            max_students=0,
            group_type=GroupType.MENTORSHIP,
            skill_level=SkillLevel.MIXED,
            meeting_schedule=MeetingSchedule()
        ), is_recovery=True)

    async def move_to_recovery(
        self,
        group_id: str,
        student_ids: List[str],
        reason: Optional[str] = None,
        transferred_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """Move students out of a group into the mission's recovery group"""
        group = await self.get_group(group_id)
        if group.get("is_recovery"):
            raise InvalidRequestError("Students are already in the recovery group")

        recovery = await self.ensure_recovery_group(group["mission_id"])
        return await self.transfer_students(
            group_id,
            str(recovery["_id"]),
            student_ids,
            reason=reason or "Moved to recovery",
            transferred_by=transferred_by
        )

    # ============================================================================
    # MEMBERSHIP QUERIES
    # ============================================================================

    async def available_students(self, mission_id: str) -> List[Dict[str, Any]]:
        """Active enrollments of a mission whose student is in none of its groups"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)
        key = str(mission["_id"])

        groups = await db.mentorship_groups.find({"mission_id": key}, {"students": 1}).to_list(length=None)
        grouped = {sid for group in groups for sid in group.get("students", [])}

        records = await db.student_missions.find(
            {"mission_id": key, "status": NOT_DROPPED}
        ).sort("started_at", 1).to_list(length=None)
        available = [r for r in records if r["student_id"] not in grouped]

        users = await directory_service.get_users([r["student_id"] for r in available])
        for record in available:
            record["student"] = users.get(record["student_id"])
        return available

    async def list_transfer_logs(self, mission_id: str, student_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Transfer history of a mission, newest first"""
        db = self.get_db()
        mission = await mission_service.get_mission(mission_id)

        query: Dict[str, Any] = {"mission_id": str(mission["_id"])}
        if student_id:
            query["student_id"] = student_id
        return await db.group_transfer_logs.find(query).sort("created_at", -1).to_list(length=None)


# Singleton instance
group_service = GroupService()
