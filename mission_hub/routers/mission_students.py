"""
Mission Student API Routes
Enrollment of batch students into missions and the reconciliation jobs
"""

from fastapi import APIRouter, Query, status
import logging

from ..models.student_mission import (
    MissionStudentsRequest,
    StudentStatusUpdate,
    BulkStudentUpdate,
    ReconcileRequest
)
from ..services.enrollment_service import enrollment_service
from ..services.mission_service import mission_service
from ..services.reconciliation_service import reconciliation_service
from ..utils.errors import ServiceError, internal_error
from ..utils.helpers import serialize_document

router = APIRouter(prefix="/missions/{mission_id}/students", tags=["Mission Students"])
logger = logging.getLogger(__name__)

RECONCILE_MESSAGES = {
    "fix": "Invalid students removed from mission",
    "sync": "Embedded students synced to enrollment records",
    "clear": "All students cleared from mission",
    "workload": "Mentor workloads recomputed",
    "groups": "Group memberships reconciled",
}


def _roster_payload(result):
    result["students"] = [serialize_document(s) for s in result["students"]]
    return result

# ============================================================================
# ROSTER ENDPOINTS
# ============================================================================

@router.get("")
async def get_mission_students(mission_id: str, include_dropped: bool = Query(False)):
    """Students of a mission; dropped records only when include_dropped is set"""
    try:
        mission = await mission_service.get_mission(mission_id)
        roster = await enrollment_service.get_roster(str(mission["_id"]), include_dropped=include_dropped)
        return {
            "success": True,
            "data": {
                "students": [serialize_document(s) for s in roster],
                "total_students": len(roster)
            }
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error getting students of mission {mission_id}: {e}")
        raise internal_error("get mission students", e)


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_mission_students(mission_id: str, request: MissionStudentsRequest):
    """
    Enroll approved batch students in a mission

    Already enrolled students are skipped and listed in already_enrolled.
    """
    try:
        logger.info(f"Enrolling {len(request.student_ids)} students in mission {mission_id}")
        result = await enrollment_service.enroll(mission_id, request.student_ids)
        return {
            "success": True,
            "message": f"{result['added_count']} students added successfully",
            "data": _roster_payload(result)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error adding students to mission: {e}")
        raise internal_error("add students to mission", e)


@router.delete("")
async def remove_mission_students(mission_id: str, request: MissionStudentsRequest):
    """Mark students as dropped; the records are kept as history"""
    try:
        result = await enrollment_service.remove(mission_id, request.student_ids)
        return {
            "success": True,
            "message": f"{result['removed_count']} students removed successfully",
            "data": _roster_payload(result)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error removing students from mission: {e}")
        raise internal_error("remove students from mission", e)

# ============================================================================
# STATUS ENDPOINTS
# ============================================================================

@router.put("/bulk")
async def bulk_update_mission_students(mission_id: str, request: BulkStudentUpdate):
    try:
        results = await enrollment_service.bulk_update_students(
            mission_id,
            request.student_ids,
            status=request.status,
            progress=request.progress
        )
        results["updated"] = [serialize_document(r) for r in results["updated"]]
        return {
            "success": True,
            "message": f"Updated {results['success_count']} of {results['total']} students",
            "data": results
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error bulk updating students of mission {mission_id}: {e}")
        raise internal_error("update students", e)


@router.put("/reconcile")
async def reconcile_mission_students(mission_id: str, request: ReconcileRequest):
    """
    Run a repair job against the mission

    - **fix**: drop students that are no longer approved batch members
    - **sync**: create enrollment records from the legacy embedded roster
    - **clear**: drop every enrollment
    - **workload**: recompute mentor student counts
    - **groups**: one group per student, cached group pointers realigned
    """
    try:
        logger.info(f"Running '{request.action}' reconciliation on mission {mission_id}")
        result = await reconciliation_service.run(mission_id, request.action)
        return {
            "success": True,
            "message": RECONCILE_MESSAGES[request.action],
            "data": result
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error running {request.action} on mission {mission_id}: {e}")
        raise internal_error(f"run {request.action}", e)


@router.patch("/{student_id}")
async def update_mission_student(mission_id: str, student_id: str, update: StudentStatusUpdate):
    """Set one student's status (any transition allowed) and optionally progress"""
    try:
        record = await enrollment_service.set_student_status(
            mission_id, student_id, update.status, progress=update.progress
        )
        return {
            "success": True,
            "message": f"Student status updated to {record['status']}",
            "data": serialize_document(record)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error updating student {student_id} in mission {mission_id}: {e}")
        raise internal_error("update student status", e)
