# mission_hub/models/mentorship_group.py
from pydantic import BaseModel, Field, validator, model_validator
from typing import Optional, List
from enum import Enum


class GroupStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    FULL = "full"
    RECRUITING = "recruiting"


class GroupType(str, Enum):
    STUDY = "study"
    PROJECT = "project"
    MENTORSHIP = "mentorship"
    COLLABORATIVE = "collaborative"


class SkillLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    MIXED = "mixed"


class MeetingFrequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    ON_DEMAND = "on-demand"


class ChannelType(str, Enum):
    DISCORD = "discord"
    SLACK = "slack"
    TELEGRAM = "telegram"
    WHATSAPP = "whatsapp"


class MeetingSchedule(BaseModel):
    frequency: MeetingFrequency = MeetingFrequency.WEEKLY
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0-6 (Sunday-Saturday)")
    time: Optional[str] = Field(None, description="24h time, e.g. '14:00'")
    duration: int = Field(default=60, ge=15, le=480, description="Minutes")
    timezone: str = "Asia/Dhaka"


class CommunicationChannel(BaseModel):
    type: ChannelType
    channel_id: Optional[str] = None
    invite_link: Optional[str] = None


class GroupCreate(BaseModel):
    """Model for creating a mentorship group (names need not be unique)"""
    name: str = Field(..., min_length=1, max_length=100, description="Group name")
    description: Optional[str] = Field(None, max_length=500)
    mission_id: str = Field(..., description="Mission the group belongs to")
    max_students: int = Field(default=0, ge=0, description="0 = unlimited")
    group_type: GroupType = GroupType.MENTORSHIP
    skill_level: SkillLevel = SkillLevel.MIXED
    status: GroupStatus = GroupStatus.ACTIVE
    mentor_ids: List[str] = Field(default_factory=list)
    primary_mentor_id: Optional[str] = None
    meeting_schedule: MeetingSchedule = Field(default_factory=MeetingSchedule)
    communication_channel: Optional[CommunicationChannel] = None

    @validator('name')
    def validate_name(cls, v):
        """Validate and clean group name"""
        if not v.strip():
            raise ValueError("Group name cannot be empty")
        return v.strip()

    class Config:
        json_schema_extra = {
            "example": {
                "name": "React Masters",
                "mission_id": "66b0c3f1a2b4c5d6e7f80911",
                "max_students": 10,
                "group_type": "study",
                "skill_level": "intermediate",
                "meeting_schedule": {"frequency": "weekly", "day_of_week": 2, "time": "14:00", "duration": 60}
            }
        }


class GroupUpdate(BaseModel):
    """
    Free-form metadata update.
    Membership changes go through the /members endpoints instead.
    """
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    group_type: Optional[GroupType] = None
    skill_level: Optional[SkillLevel] = None
    status: Optional[GroupStatus] = None
    primary_mentor_id: Optional[str] = None
    max_students: Optional[int] = Field(None, ge=0)
    meeting_schedule: Optional[MeetingSchedule] = None
    communication_channel: Optional[CommunicationChannel] = None

    @validator('name')
    def validate_name(cls, v):
        if v is None:
            return v
        if not v.strip():
            raise ValueError("Group name cannot be empty")
        return v.strip()


class GroupMembersAdd(BaseModel):
    """Model for adding mentors and/or students to a group"""
    mentor_ids: List[str] = Field(default_factory=list)
    student_ids: List[str] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_members(self):
        if not self.mentor_ids and not self.student_ids:
            raise ValueError("Provide mentor_ids and/or student_ids")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "mentor_ids": ["66b0c3f1a2b4c5d6e7f80a01"],
                "student_ids": ["66b0c3f1a2b4c5d6e7f80001", "66b0c3f1a2b4c5d6e7f80002"]
            }
        }


class GroupTransfer(BaseModel):
    """Move students from one group to another in the same mission"""
    student_ids: List[str] = Field(..., min_length=1)
    to_group_id: str
    reason: Optional[str] = Field(None, max_length=500)
    transferred_by: Optional[str] = Field(None, description="User performing the move")


class GroupRecoveryMove(BaseModel):
    student_ids: List[str] = Field(..., min_length=1)
    reason: Optional[str] = Field(None, max_length=500)
    transferred_by: Optional[str] = None
