"""
Student Mission Models
Enrollment records linking a student to a mission
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from enum import Enum

# ============================================================================
# ENUMS
# ============================================================================

class StudentMissionStatus(str, Enum):
    """Enrollment status. Every status is reachable from every other."""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"
    DROPPED = "dropped"

# ============================================================================
# REQUEST MODELS
# ============================================================================

class MissionStudentsRequest(BaseModel):
    """Student ids to enroll in or remove from a mission"""
    student_ids: List[str] = Field(..., description="Student user IDs")

    class Config:
        json_schema_extra = {
            "example": {
                "student_ids": ["66b0c3f1a2b4c5d6e7f80001", "66b0c3f1a2b4c5d6e7f80002"]
            }
        }


class StudentStatusUpdate(BaseModel):
    """Set a single student's mission status; progress is clamped to 0-100"""
    status: StudentMissionStatus
    progress: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "completed",
                "progress": 100
            }
        }


class BulkStudentUpdate(BaseModel):
    """Apply the same status/progress to several students, best effort"""
    student_ids: List[str] = Field(..., min_length=1)
    status: Optional[StudentMissionStatus] = None
    progress: Optional[float] = None


class ReconcileRequest(BaseModel):
    """Repair job to run against one mission"""
    action: Literal["fix", "sync", "clear", "workload", "groups"]
