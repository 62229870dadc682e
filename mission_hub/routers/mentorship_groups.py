"""
Mentorship Group API Routes
Group CRUD, membership changes, transfers and the recovery group
"""

from fastapi import APIRouter, Query, status
from typing import Optional
import logging

from ..models.mentorship_group import (
    GroupCreate,
    GroupUpdate,
    GroupMembersAdd,
    GroupTransfer,
    GroupRecoveryMove,
    GroupStatus
)
from ..services.group_service import group_service
from ..utils.errors import ServiceError, internal_error
from ..utils.helpers import serialize_document

router = APIRouter(prefix="/mentorship-groups", tags=["Mentorship Groups"])
logger = logging.getLogger(__name__)

# =====================================
# GROUP CRUD OPERATIONS
# =====================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_group(group_data: GroupCreate):
    """
    Create a mentorship group in a mission

    - **name**: Group name (required, not unique)
    - **mission_id**: Mission the group belongs to
    - **max_students**: 0 means unlimited
    """
    try:
        group = await group_service.create_group(group_data)
        return {
            "success": True,
            "message": f"Group '{group['name']}' created successfully",
            "data": serialize_document(group)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error creating group: {e}")
        raise internal_error("create group", e)


@router.get("/mission/{mission_id}")
async def list_mission_groups(
    mission_id: str,
    status_filter: Optional[GroupStatus] = Query(None, alias="status")
):
    try:
        groups = await group_service.list_groups(mission_id, status=status_filter)
        return {
            "success": True,
            "data": [serialize_document(g) for g in groups],
            "total": len(groups)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error listing groups of mission {mission_id}: {e}")
        raise internal_error("list groups", e)


@router.get("/mission/{mission_id}/available-students")
async def list_available_students(mission_id: str):
    """Enrolled students of the mission that are not in any of its groups"""
    try:
        students = await group_service.available_students(mission_id)
        return {
            "success": True,
            "data": [serialize_document(s) for s in students],
            "total": len(students)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error listing available students of mission {mission_id}: {e}")
        raise internal_error("list available students", e)


@router.get("/mission/{mission_id}/transfers")
async def list_group_transfers(mission_id: str, student_id: Optional[str] = None):
    try:
        logs = await group_service.list_transfer_logs(mission_id, student_id=student_id)
        return {
            "success": True,
            "data": [serialize_document(log) for log in logs],
            "total": len(logs)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error listing group transfers of mission {mission_id}: {e}")
        raise internal_error("list group transfers", e)


@router.get("/{group_id}")
async def get_group(group_id: str):
    try:
        group = await group_service.get_group(group_id)
        return {"success": True, "data": serialize_document(group)}
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error getting group {group_id}: {e}")
        raise internal_error("get group", e)


@router.patch("/{group_id}")
async def update_group(group_id: str, update_data: GroupUpdate):
    try:
        group = await group_service.update_group(group_id, update_data)
        return {
            "success": True,
            "message": "Group updated successfully",
            "data": serialize_document(group)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error updating group {group_id}: {e}")
        raise internal_error("update group", e)


@router.delete("/{group_id}")
async def delete_group(group_id: str):
    try:
        result = await group_service.delete_group(group_id)
        return {
            "success": True,
            "message": "Group deleted successfully",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error deleting group {group_id}: {e}")
        raise internal_error("delete group", e)

# =====================================
# MEMBERSHIP OPERATIONS
# =====================================

@router.post("/{group_id}/members")
async def add_group_members(group_id: str, members: GroupMembersAdd):
    """
    Add students and/or mentors to a group

    The request is rejected as a whole when the new students would exceed
    the group's max_students.
    """
    try:
        group = await group_service.add_to_group(
            group_id,
            mentor_ids=members.mentor_ids,
            student_ids=members.student_ids
        )
        return {
            "success": True,
            "message": "Members added successfully",
            "data": serialize_document(group)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error adding members to group {group_id}: {e}")
        raise internal_error("add group members", e)


@router.delete("/{group_id}/members/{user_id}")
async def remove_group_member(group_id: str, user_id: str):
    try:
        group = await group_service.remove_from_group(group_id, user_id)
        return {
            "success": True,
            "message": "Member removed successfully",
            "data": serialize_document(group)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error removing {user_id} from group {group_id}: {e}")
        raise internal_error("remove group member", e)


@router.post("/{group_id}/transfer")
async def transfer_group_students(group_id: str, transfer: GroupTransfer):
    try:
        result = await group_service.transfer_students(
            group_id,
            transfer.to_group_id,
            transfer.student_ids,
            reason=transfer.reason,
            transferred_by=transfer.transferred_by
        )
        return {
            "success": True,
            "message": f"{result['transferred']} students transferred successfully",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error transferring students from group {group_id}: {e}")
        raise internal_error("transfer students", e)


@router.post("/{group_id}/move-to-recovery")
async def move_students_to_recovery(group_id: str, move: GroupRecoveryMove):
    """Move irregular students into the mission's recovery group, creating it if needed"""
    try:
        result = await group_service.move_to_recovery(
            group_id,
            move.student_ids,
            reason=move.reason,
            transferred_by=move.transferred_by
        )
        return {
            "success": True,
            "message": f"{result['transferred']} students moved to recovery",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error moving students of group {group_id} to recovery: {e}")
        raise internal_error("move students to recovery", e)
