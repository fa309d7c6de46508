from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.db.base import Base


class CdInterviewSlot(Base):
    __tablename__ = "cd_interview_slot"

    slot_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(64), index=True)
    recruiter_id: Mapped[str] = mapped_column(String(64), index=True)

    date_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    duration: Mapped[int] = mapped_column(Integer)
    slot_type: Mapped[str] = mapped_column(String(30))

    location_type: Mapped[str] = mapped_column(String(20))
    location_details: Mapped[str | None] = mapped_column(String(500), nullable=True)
    meeting_link: Mapped[str | None] = mapped_column(String(500), nullable=True)

    max_candidates: Mapped[int] = mapped_column(Integer)
    # Only ever changed through a conditional UPDATE; see services.slot_allocator.reserve_seat.
    assigned_count: Mapped[int] = mapped_column(Integer, default=0)

    status: Mapped[str] = mapped_column(String(20), default="scheduled", index=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    assignments: Mapped[list["CdSlotAssignment"]] = relationship(
        "CdSlotAssignment",
        back_populates="slot",
        order_by=lambda: CdSlotAssignment.assignment_id,
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class CdSlotAssignment(Base):
    __tablename__ = "cd_slot_assignment"

    assignment_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("cd_interview_slot.slot_id"), index=True)
    job_id: Mapped[str] = mapped_column(String(64), index=True)
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    invitation_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    status: Mapped[str] = mapped_column(String(30), default="pending_confirmation", index=True)
    confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    joined_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    no_show_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    attendance_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    feedback_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    feedback_comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    feedback_submitted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # "<job_id>:<student_id>" while live, NULL once cancelled; one live seat per student per job.
    active_key: Mapped[str | None] = mapped_column(String(140), unique=True, nullable=True)

    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    slot: Mapped[CdInterviewSlot] = relationship("CdInterviewSlot", back_populates="assignments")


def active_assignment_key(job_id: str, student_id: str) -> str:
    return f"{job_id}:{student_id}"
