"""
Directory Service
Read-only access to batch memberships and users owned by other parts of the platform
"""

import logging
from typing import Dict, Any, List, Optional, Set
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..config.database import get_database

logger = logging.getLogger(__name__)

APPROVED = "approved"


class DirectoryService:
    """Batch membership and user lookups"""

    def get_db(self) -> AsyncIOMotorDatabase:
        """Get database instance"""
        return get_database()

    # ============================================================================
    # BATCH MEMBERSHIP
    # ============================================================================

    async def approved_student_ids(
        self,
        batch_id: str,
        student_ids: Optional[List[str]] = None
    ) -> Set[str]:
        """
        Students with an approved membership in the batch.

        Args:
            batch_id: Batch identifier
            student_ids: Restrict the lookup to these students

        Returns:
            Set of approved student IDs
        """
        db = self.get_db()

        query: Dict[str, Any] = {"batch_id": batch_id, "status": APPROVED}
        if student_ids is not None:
            query["student_id"] = {"$in": list(student_ids)}

        memberships = await db.batch_memberships.find(query, {"student_id": 1}).to_list(length=None)
        return {m["student_id"] for m in memberships}

    async def is_approved_member(self, student_id: str, batch_id: str) -> bool:
        return student_id in await self.approved_student_ids(batch_id, [student_id])

    # ============================================================================
    # USERS
    # ============================================================================

    async def get_users(self, user_ids: List[str]) -> Dict[str, Dict[str, Any]]:
        """Resolve user ids to {name, email, role}; unknown or malformed ids are skipped"""
        db = self.get_db()

        object_ids = [ObjectId(uid) for uid in set(user_ids) if ObjectId.is_valid(uid)]
        if not object_ids:
            return {}

        users = await db.users.find(
            {"_id": {"$in": object_ids}},
            {"name": 1, "email": 1, "role": 1}
        ).to_list(length=None)

        return {
            str(user["_id"]): {
                "id": str(user["_id"]),
                "name": user.get("name", ""),
                "email": user.get("email", ""),
                "role": user.get("role")
            }
            for user in users
        }

    async def list_users(self, role: str) -> List[Dict[str, Any]]:
        """All users with the given role (student, mentor, ...)"""
        db = self.get_db()
        users = await db.users.find({"role": role}).sort("name", 1).to_list(length=None)
        return [
            {"id": str(u["_id"]), "name": u.get("name", ""), "email": u.get("email", ""), "role": role}
            for u in users
        ]


# Singleton instance
directory_service = DirectoryService()
