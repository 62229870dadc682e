"""
Mission API Routes
Mission catalogue CRUD
"""

from fastapi import APIRouter, Query, status
from typing import Optional
import logging

from ..models.mission import MissionCreate, MissionUpdate, MissionStatus
from ..services.mission_service import mission_service
from ..utils.errors import ServiceError, internal_error
from ..utils.helpers import serialize_document

router = APIRouter(prefix="/missions", tags=["Missions"])
logger = logging.getLogger(__name__)

# ============================================================================
# MISSION ENDPOINTS
# ============================================================================

@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_mission(mission_data: MissionCreate):
    """
    Create a new mission

    Course weights must add up to 100 when courses are given.
    """
    try:
        mission = await mission_service.create_mission(mission_data)
        return {
            "success": True,
            "message": f"Mission {mission['code']} created successfully",
            "data": serialize_document(mission)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error creating mission: {e}")
        raise internal_error("create mission", e)


@router.get("/")
async def list_missions(
    status_filter: Optional[MissionStatus] = Query(None, alias="status"),
    batch_id: Optional[str] = Query(None)
):
    try:
        missions = await mission_service.list_missions(status=status_filter, batch_id=batch_id)
        return {
            "success": True,
            "data": [serialize_document(m) for m in missions],
            "total": len(missions)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error listing missions: {e}")
        raise internal_error("list missions", e)


@router.get("/{mission_id}")
async def get_mission(mission_id: str):
    try:
        mission = await mission_service.get_mission(mission_id)
        return {"success": True, "data": serialize_document(mission)}
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error getting mission {mission_id}: {e}")
        raise internal_error("get mission", e)


@router.patch("/{mission_id}")
async def update_mission(mission_id: str, update_data: MissionUpdate):
    try:
        mission = await mission_service.update_mission(mission_id, update_data)
        return {
            "success": True,
            "message": "Mission updated successfully",
            "data": serialize_document(mission)
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error updating mission {mission_id}: {e}")
        raise internal_error("update mission", e)


@router.delete("/{mission_id}")
async def delete_mission(mission_id: str):
    """Hard delete a mission together with its enrollments, groups and mentors"""
    try:
        removed = await mission_service.delete_mission(mission_id)
        return {
            "success": True,
            "message": "Mission deleted successfully",
            "data": removed
        }
    except ServiceError as e:
        raise e.to_http()
    except Exception as e:
        logger.error(f"Error deleting mission {mission_id}: {e}")
        raise internal_error("delete mission", e)
