"""
Mission Models
Cohort learning programs, their course weighting and the legacy embedded roster
"""

from pydantic import BaseModel, Field, validator, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum
from bson import ObjectId

# ============================================================================
# ENUMS
# ============================================================================

class MissionStatus(str, Enum):
    """Mission lifecycle status (transitions are not restricted)"""
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"

# ============================================================================
# SUB-MODELS
# ============================================================================

class MissionCourse(BaseModel):
    """Course configuration embedded in a mission"""
    course_offering_id: str = Field(..., description="Course offering identifier")
    weight: float = Field(..., ge=0, le=100, description="Percentage weight of the course")
    min_progress: float = Field(default=70, ge=0, le=100, description="Minimum progress to pass")


class LegacyMissionStudent(BaseModel):
    """
    Entry of the deprecated Mission.students[] array.
    Only read by the sync reconciliation job.
    """
    student_id: str = Field(..., min_length=1)
    status: Optional[str] = None
    progress: Optional[float] = None
    primary_mentor_id: Optional[str] = None
    started_at: Optional[datetime] = None
    course_progress: List[dict] = Field(default_factory=list)

    @validator('student_id', 'primary_mentor_id', pre=True)
    def stringify_object_ids(cls, v):
        """Mongoose subdocuments store references as ObjectIds"""
        return str(v) if isinstance(v, ObjectId) else v


def _check_course_weights(courses: Optional[List[MissionCourse]]):
    if courses:
        total = sum(course.weight for course in courses)
        if abs(total - 100) > 0.01:
            raise ValueError(f"Course weights must sum to 100 (got {total:g})")

# ============================================================================
# CREATE / UPDATE MODELS
# ============================================================================

class MissionCreate(BaseModel):
    """Model for creating a mission"""
    code: str = Field(..., min_length=1, max_length=50, description="Unique mission code")
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    batch_id: str = Field(..., description="Batch the mission draws students from")
    status: MissionStatus = MissionStatus.DRAFT
    courses: List[MissionCourse] = Field(default_factory=list)
    max_students: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('code', 'title')
    def strip_text(cls, v):
        if not v.strip():
            raise ValueError("Value cannot be blank")
        return v.strip()

    @model_validator(mode="after")
    def validate_courses(self):
        _check_course_weights(self.courses)
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "code": "MISSION-001",
                "title": "Phitron Mission 1",
                "batch_id": "66b0c3f1a2b4c5d6e7f80911",
                "status": "active",
                "courses": [
                    {"course_offering_id": "CO-1", "weight": 60, "min_progress": 70},
                    {"course_offering_id": "CO-2", "weight": 40, "min_progress": 70}
                ]
            }
        }


class MissionUpdate(BaseModel):
    """Free-form mission update; any status may move to any other"""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=2000)
    status: Optional[MissionStatus] = None
    courses: Optional[List[MissionCourse]] = None
    max_students: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_courses(self):
        _check_course_weights(self.courses)
        return self
