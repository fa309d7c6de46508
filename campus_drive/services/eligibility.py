from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Protocol, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.models.student import CdStudentProfile


class StudentLike(Protocol):
    student_id: str
    course: str | None
    cgpa: float | None
    graduation_year: int | None
    backlogs: int | None


S = TypeVar("S", bound=StudentLike)


@dataclass(frozen=True)
class EligibilityCriteria:
    allowed_courses: frozenset[str]
    min_cgpa: float
    graduation_years: frozenset[int]
    max_backlogs: int

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> "EligibilityCriteria":
        raw = raw or {}
        return cls(
            allowed_courses=frozenset(_normalize_course(c) for c in raw.get("allowed_courses") or [] if c),
            min_cgpa=float(raw.get("min_cgpa") or 0),
            graduation_years=frozenset(int(y) for y in raw.get("graduation_years") or []),
            max_backlogs=int(raw.get("max_backlogs") or 0),
        )


def _normalize_course(value: str | None) -> str:
    return (value or "").strip().casefold()


def is_eligible(student: StudentLike, criteria: EligibilityCriteria) -> bool:
    if _normalize_course(student.course) not in criteria.allowed_courses:
        return False
    if student.cgpa is None:
        if criteria.min_cgpa > 0:
            return False
    elif student.cgpa < criteria.min_cgpa:
        return False
    if student.graduation_year not in criteria.graduation_years:
        return False
    backlogs = student.backlogs or 0
    return backlogs <= criteria.max_backlogs


def eligibility_sort_key(student: StudentLike) -> tuple[int, float, str]:
    # CGPA descending, missing CGPA last, then student id ascending.
    if student.cgpa is None:
        return (1, 0.0, student.student_id)
    return (0, -student.cgpa, student.student_id)


def filter_eligible(pool: Iterable[S], criteria: EligibilityCriteria) -> list[S]:
    """Deterministic eligible subset of `pool`, best CGPA first."""
    eligible = [student for student in pool if is_eligible(student, criteria)]
    eligible.sort(key=eligibility_sort_key)
    return eligible


async def load_college_pool(session: AsyncSession, *, college_id: str) -> Sequence[CdStudentProfile]:
    return (
        await session.execute(
            select(CdStudentProfile)
            .where(CdStudentProfile.college_id == college_id)
            .order_by(CdStudentProfile.student_id.asc())
        )
    ).scalars().all()


async def load_eligible_pool(
    session: AsyncSession,
    *,
    college_id: str,
    criteria: EligibilityCriteria,
) -> list[CdStudentProfile]:
    pool = await load_college_pool(session, college_id=college_id)
    return filter_eligible(pool, criteria)
