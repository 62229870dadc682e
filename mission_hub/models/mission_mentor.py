"""
Mission Mentor Models
A mentor's assignment to a mission, with role and capacity
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from enum import Enum

# ============================================================================
# ENUMS
# ============================================================================

class MentorRole(str, Enum):
    MISSION_LEAD = "mission-lead"
    COORDINATOR = "coordinator"
    ADVISOR = "advisor"
    SUPERVISOR = "supervisor"


class MentorStatus(str, Enum):
    """Manually managed; 'overloaded' is never derived from counters"""
    ACTIVE = "active"
    DEACTIVE = "deactive"
    IRREGULAR = "irregular"
    OVERLOADED = "overloaded"
    UNAVAILABLE = "unavailable"

# ============================================================================
# REQUEST MODELS
# ============================================================================

class MissionMentorCreate(BaseModel):
    """Model for assigning a mentor to a mission"""
    mission_id: str
    mentor_id: str
    role: MentorRole = MentorRole.ADVISOR
    max_students: int = Field(default=0, ge=0, description="0 = unlimited")
    specialization: List[str] = Field(default_factory=list)
    responsibilities: List[str] = Field(default_factory=list)
    availability_rate: float = Field(default=100, ge=0, le=100)

    class Config:
        json_schema_extra = {
            "example": {
                "mission_id": "66b0c3f1a2b4c5d6e7f80911",
                "mentor_id": "66b0c3f1a2b4c5d6e7f80a01",
                "role": "coordinator",
                "max_students": 15,
                "specialization": ["frontend", "react"]
            }
        }


class MentorStatusUpdate(BaseModel):
    status: MentorStatus
    reason: Optional[str] = Field(None, max_length=500)


class StudentMentorAssign(BaseModel):
    """Point one student's enrollment at a mentor"""
    mission_id: str
    student_id: str
    mentor_id: str


class StudentMentorRemove(BaseModel):
    mission_id: str
    student_id: str


class BulkMentorAssign(BaseModel):
    """Assign students to mentors, evenly split or all-to-all"""
    mission_id: str
    mentor_ids: List[str] = Field(..., min_length=1)
    student_ids: List[str] = Field(..., min_length=1)
    distribute_evenly: bool = True


class BulkCapacityUpdate(BaseModel):
    mission_id: str
    mentor_ids: List[str] = Field(..., min_length=1, description="MissionMentor record IDs")
    max_students: int = Field(..., ge=0)
