from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.roles import ActorRole
from campus_drive.models.interview_slot import CdInterviewSlot
from campus_drive.models.invitation import CdInvitation
from campus_drive.models.student import CdStudentProfile
from campus_drive.schemas.interview_slot import InterviewSlotCreateIn
from campus_drive.schemas.invitation import DateRange, InvitationCreateIn
from campus_drive.schemas.user import ActorContext
from campus_drive.services.interview_slots import create_interview_slot
from campus_drive.services.invitations import accept_invitation, create_invitations

NOW = datetime(2025, 1, 1, 9, 0)
JOB_ID = "job-1"

RECRUITER = ActorContext(actor_id="u-rec-1", role=ActorRole.RECRUITER, party_id="rec-1")
OTHER_RECRUITER = ActorContext(actor_id="u-rec-2", role=ActorRole.RECRUITER, party_id="rec-2")
COLLEGE = ActorContext(actor_id="u-tpo-1", role=ActorRole.COLLEGE, party_id="col-1")
OTHER_COLLEGE = ActorContext(actor_id="u-tpo-2", role=ActorRole.COLLEGE, party_id="col-2")


def student_actor(student_id: str) -> ActorContext:
    return ActorContext(actor_id=f"u-{student_id}", role=ActorRole.STUDENT, party_id=student_id)


def date_range(start: str, end: str) -> DateRange:
    return DateRange.model_validate({"start_date": start, "end_date": end})


def invitation_payload(
    *,
    job_id: str = JOB_ID,
    college_ids: tuple[str, ...] = ("col-1",),
    min_students: int = 0,
    max_students: int = 10,
    min_cgpa: float = 7.0,
    courses: tuple[str, ...] = ("CS", "IT"),
    years: tuple[int, ...] = (2025,),
    max_backlogs: int = 0,
    expires_in_days: int | None = None,
) -> InvitationCreateIn:
    return InvitationCreateIn.model_validate(
        {
            "job_id": job_id,
            "college_ids": list(college_ids),
            "message": "Campus drive for SDE interns",
            "proposed_dates": [{"start_date": "2025-01-10", "end_date": "2025-01-12", "is_flexible": True}],
            "eligibility_criteria": {
                "allowed_courses": list(courses),
                "min_cgpa": min_cgpa,
                "graduation_years": list(years),
                "max_backlogs": max_backlogs,
            },
            "student_limits": {"min": min_students, "max": max_students},
            "expires_in_days": expires_in_days,
        }
    )


def add_student(
    session: AsyncSession,
    student_id: str,
    *,
    college_id: str = "col-1",
    course: str | None = "CS",
    cgpa: float | None = 8.0,
    graduation_year: int | None = 2025,
    backlogs: int | None = 0,
) -> CdStudentProfile:
    student = CdStudentProfile(
        student_id=student_id,
        college_id=college_id,
        full_name=f"Student {student_id}",
        course=course,
        cgpa=cgpa,
        graduation_year=graduation_year,
        backlogs=backlogs,
    )
    session.add(student)
    return student


async def send_invitation(session: AsyncSession, *, now: datetime = NOW, **kwargs) -> CdInvitation:
    created = await create_invitations(session, actor=RECRUITER, payload=invitation_payload(**kwargs), now=now)
    return created[0]


async def accepted_invitation(session: AsyncSession, *, college: ActorContext = COLLEGE, **kwargs) -> CdInvitation:
    invitation = await send_invitation(session, college_ids=(college.party_id,), **kwargs)
    return await accept_invitation(
        session,
        invitation_id=invitation.invitation_id,
        actor=college,
        confirmed_window=date_range("2025-01-10", "2025-01-12"),
        now=NOW + timedelta(hours=1),
    )


def slot_payload(
    *,
    date_time: datetime = datetime(2025, 1, 10, 10, 0),
    duration: int = 60,
    max_candidates: int = 2,
) -> InterviewSlotCreateIn:
    return InterviewSlotCreateIn.model_validate(
        {
            "date_time": date_time,
            "duration": duration,
            "type": "technical",
            "location": {"type": "offline", "details": "Seminar hall B"},
            "max_candidates": max_candidates,
        }
    )


async def create_slot(session: AsyncSession, *, job_id: str = JOB_ID, **kwargs) -> CdInterviewSlot:
    return await create_interview_slot(
        session,
        job_id=job_id,
        actor=RECRUITER,
        payload=slot_payload(**kwargs),
        now=NOW + timedelta(hours=2),
    )
