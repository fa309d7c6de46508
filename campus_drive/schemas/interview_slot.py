from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, conint, field_validator, model_validator

from campus_drive.core.datetime_utils import to_utc_naive

Rating = conint(ge=1, le=5)
SlotType = Literal["technical", "hr", "group_discussion", "coding_test"]
SlotStatus = Literal["scheduled", "in_progress", "completed", "cancelled"]


class SlotLocationIn(BaseModel):
    type: Literal["online", "offline"]
    details: Optional[str] = Field(default=None, max_length=500)
    meeting_link: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode="after")
    def _online_needs_link(self) -> "SlotLocationIn":
        if self.type == "online" and not (self.meeting_link or "").strip():
            raise ValueError("online slots need a meeting_link")
        return self


class InterviewSlotCreateIn(BaseModel):
    date_time: datetime
    duration: int = Field(ge=15, le=180)
    type: SlotType
    location: SlotLocationIn
    max_candidates: int = Field(ge=1)

    @field_validator("date_time")
    @classmethod
    def _strip_timezone(cls, value: datetime) -> datetime:
        return to_utc_naive(value)


class SlotStatusUpdateIn(BaseModel):
    status: SlotStatus


class ManualAssignIn(BaseModel):
    student_id: str = Field(min_length=1, max_length=64)


class NoShowIn(BaseModel):
    notes: Optional[str] = None


class FeedbackIn(BaseModel):
    rating: Rating
    comments: Optional[str] = None


class AssignmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    assignment_id: int
    slot_id: int
    job_id: str
    student_id: str
    status: str
    confirmed: bool
    confirmed_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    no_show_at: Optional[datetime] = None
    attendance_notes: Optional[str] = None
    feedback_rating: Optional[int] = None
    feedback_comments: Optional[str] = None
    feedback_submitted_at: Optional[datetime] = None
    assigned_at: datetime


class SlotLocationOut(BaseModel):
    type: str
    details: Optional[str] = None
    meeting_link: Optional[str] = None


class InterviewSlotOut(BaseModel):
    slot_id: int
    job_id: str
    recruiter_id: str
    date_time: datetime
    duration: int
    type: str
    location: SlotLocationOut
    max_candidates: int
    assigned_count: int = 0
    status: str
    assigned_students: list[AssignmentOut] = Field(default_factory=list)


class UnassignedStudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: str
    college_id: str
    cgpa: Optional[float] = None


class AutoAssignOut(BaseModel):
    assigned: list[AssignmentOut]
    unassigned: list[UnassignedStudentOut]


def slot_to_out(slot) -> InterviewSlotOut:
    return InterviewSlotOut(
        slot_id=slot.slot_id,
        job_id=slot.job_id,
        recruiter_id=slot.recruiter_id,
        date_time=slot.date_time,
        duration=slot.duration,
        type=slot.slot_type,
        location=SlotLocationOut(
            type=slot.location_type,
            details=slot.location_details,
            meeting_link=slot.meeting_link,
        ),
        max_candidates=slot.max_candidates,
        assigned_count=slot.assigned_count,
        status=slot.status,
        # Cancelled seats no longer belong to the slot.
        assigned_students=[
            AssignmentOut.model_validate(a) for a in slot.assignments if a.status != "cancelled"
        ],
    )
