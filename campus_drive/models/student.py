from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.db.base import Base


class CdStudentProfile(Base):
    """
    Read-only projection of the portal's student profiles, refreshed by the profile service.
    Only the fields the eligibility rules look at are kept.
    """

    __tablename__ = "cd_student"

    student_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    college_id: Mapped[str] = mapped_column(String(64), index=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    course: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cgpa: Mapped[float | None] = mapped_column(Float, nullable=True)
    graduation_year: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    backlogs: Mapped[int] = mapped_column(Integer, default=0)

    synced_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now_naive)
