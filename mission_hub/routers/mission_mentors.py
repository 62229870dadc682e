"""
Mission Mentor API Routes
Mentor assignment to missions and direct student to mentor links
"""

from fastapi import APIRouter, status
import logging

from ..models.mission_mentor import (
    MissionMentorCreate,
    MentorStatusUpdate,
    StudentMentorAssign,
    StudentMentorRemove,
    BulkMentorAssign,
    BulkCapacityUpdate
)
from ..services.mentor_service import mentor_service, capacity_used
from ..utils.errors import ServiceError, internal_error
from ..utils.helpers import serialize_document

router = APIRouter(prefix="/mission-mentors", tags=["Mission Mentors"])
logger = logging.getLogger(__name__)


def format_mentor_response(mentor_doc):
    """Mentor record with its capacity usage percentage"""
    mentor_doc["capacity_used"] = capacity_used(mentor_doc)
    return serialize_document(mentor_doc)

# ============================================================================
# MISSION MENTOR ENDPOINTS
# ============================================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def assign_mentor(mentor_data: MissionMentorCreate):
    try:
        mentor = await mentor_service.assign_mentor_to_mission(mentor_data)
        return {
            "success": True,
            "message": "Mentor assigned to mission successfully",
            "data": format_mentor_response(mentor)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error assigning mentor to mission: {e}")
        raise internal_error("assign mentor", e)


@router.get("/mission/{mission_id}")
async def list_mission_mentors(mission_id: str):
    try:
        mentors = await mentor_service.list_mission_mentors(mission_id)
        return {
            "success": True,
            "data": [serialize_document(m) for m in mentors],
            "total": len(mentors)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error listing mentors of mission {mission_id}: {e}")
        raise internal_error("list mission mentors", e)


@router.post("/mission/{mission_id}/recompute")
async def recompute_mission_workloads(mission_id: str):
    """Rebuild current_students for every mentor of the mission"""
    try:
        result = await mentor_service.recompute_mission_workloads(mission_id)
        return {
            "success": True,
            "message": "Mentor workloads recomputed",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error recomputing workloads of mission {mission_id}: {e}")
        raise internal_error("recompute workloads", e)


@router.put("/bulk-capacity")
async def bulk_update_capacity(request: BulkCapacityUpdate):
    try:
        results = await mentor_service.bulk_update_capacity(
            request.mission_id, request.mentor_ids, request.max_students
        )
        return {
            "success": True,
            "message": f"Capacity updated for {len(results['updated'])} mentors",
            "data": results
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error updating mentor capacity: {e}")
        raise internal_error("update mentor capacity", e)


@router.patch("/{record_id}/status")
async def update_mentor_status(record_id: str, update: MentorStatusUpdate):
    """Set a mentor's status by hand; workload recomputation never changes it"""
    try:
        mentor = await mentor_service.update_mentor_status(record_id, update.status, update.reason)
        return {
            "success": True,
            "message": f"Mentor status updated to {mentor['status']}",
            "data": format_mentor_response(mentor)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error updating mentor status {record_id}: {e}")
        raise internal_error("update mentor status", e)


@router.delete("/{record_id}")
async def unassign_mentor(record_id: str):
    try:
        cleared = await mentor_service.unassign_mentor(record_id)
        return {
            "success": True,
            "message": "Mentor removed from mission successfully",
            "data": cleared
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error unassigning mentor {record_id}: {e}")
        raise internal_error("unassign mentor", e)

# ============================================================================
# STUDENT ASSIGNMENT ENDPOINTS
# ============================================================================

@router.post("/assign-student")
async def assign_student(request: StudentMentorAssign):
    try:
        result = await mentor_service.assign_student_mentor(
            request.mission_id, request.student_id, request.mentor_id
        )
        return {
            "success": True,
            "message": "Student assigned to mentor successfully",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error assigning student {request.student_id} to mentor: {e}")
        raise internal_error("assign student", e)


@router.post("/remove-student")
async def remove_student(request: StudentMentorRemove):
    try:
        result = await mentor_service.remove_student_mentor(request.mission_id, request.student_id)
        return {
            "success": True,
            "message": "Student removed from mentor successfully",
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error removing mentor of student {request.student_id}: {e}")
        raise internal_error("remove student", e)


@router.post("/bulk-assign")
async def bulk_assign_students(request: BulkMentorAssign):
    """
    Assign students to mentors

    With distribute_evenly the students are split into equal contiguous
    chunks, one per mentor.
    """
    try:
        results = await mentor_service.bulk_assign_students(
            request.mission_id,
            request.mentor_ids,
            request.student_ids,
            distribute_evenly=request.distribute_evenly
        )
        return {
            "success": True,
            "message": f"{len(results['assigned'])} assignments made",
            "data": results
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error bulk assigning students: {e}")
        raise internal_error("bulk assign students", e)
