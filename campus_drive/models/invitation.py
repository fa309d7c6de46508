from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.db.base import Base


class CdInvitation(Base):
    __tablename__ = "cd_invitation"
    __table_args__ = (UniqueConstraint("job_id", "college_id", name="uq_cd_invitation_job_college"),)

    invitation_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(64), index=True)
    recruiter_id: Mapped[str] = mapped_column(String(64), index=True)
    college_id: Mapped[str] = mapped_column(String(64), index=True)

    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    invitation_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # [{"start": iso, "end": iso, "is_flexible": bool}, ...]
    proposed_dates: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    # {"start": iso, "end": iso, "is_flexible": false} once accepted
    campus_visit_window: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    # {"allowed_courses": [...], "min_cgpa": float, "graduation_years": [...], "max_backlogs": int}
    eligibility_criteria: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    # {"min": int, "max": int}
    student_limits: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    # {"response_date": iso, "message": str, "counter_proposal": {"alternative_dates": [...]}}
    tpo_response: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    negotiation_rounds: Mapped[int] = mapped_column(Integer, default=0)
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    review_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sent_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, onupdate=utc_now_naive)

    history: Mapped[list["CdInvitationHistory"]] = relationship(
        "CdInvitationHistory",
        back_populates="invitation",
        order_by=lambda: [CdInvitationHistory.timestamp, CdInvitationHistory.history_id],
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}


class CdInvitationHistory(Base):
    """Append-only negotiation trail. Rows are inserted, never updated or deleted."""

    __tablename__ = "cd_invitation_history"

    history_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    invitation_id: Mapped[int] = mapped_column(ForeignKey("cd_invitation.invitation_id"), index=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive, index=True)
    actor: Mapped[str] = mapped_column(String(20))
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(30))
    details: Mapped[str] = mapped_column(Text)
    proposed_dates: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON, nullable=True)

    invitation: Mapped[CdInvitation] = relationship("CdInvitation", back_populates="history")
