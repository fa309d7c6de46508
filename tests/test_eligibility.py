from __future__ import annotations

from dataclasses import dataclass

import pydantic
import pytest

from campus_drive.schemas.invitation import EligibilityCriteriaIn
from campus_drive.services.eligibility import EligibilityCriteria, filter_eligible, is_eligible, load_eligible_pool
from factories import add_student


@dataclass
class Student:
    student_id: str
    course: str | None
    cgpa: float | None
    graduation_year: int | None
    backlogs: int | None = 0


CRITERIA = EligibilityCriteria.from_mapping(
    {"allowed_courses": ["CS", "IT"], "min_cgpa": 7.0, "graduation_years": [2025], "max_backlogs": 0}
)


def test_mixed_pool_returns_matching_subset_by_cgpa():
    pool = [
        Student("s1", "CS", 7.5, 2025),
        Student("s2", "ME", 9.5, 2025),
        Student("s3", "IT", 8.9, 2025),
        Student("s4", "CS", 6.9, 2025),
        Student("s5", "CS", 9.1, 2024),
        Student("s6", "IT", 7.0, 2025),
        Student("s7", "CS", 8.0, 2025, backlogs=1),
    ]

    eligible = filter_eligible(pool, CRITERIA)

    assert [s.student_id for s in eligible] == ["s3", "s1", "s6"]


def test_course_match_ignores_case_and_whitespace():
    assert is_eligible(Student("s1", " cs ", 8.0, 2025), CRITERIA)
    assert is_eligible(Student("s2", "It", 8.0, 2025), CRITERIA)
    assert not is_eligible(Student("s3", "CSE", 8.0, 2025), CRITERIA)
    assert not is_eligible(Student("s4", None, 8.0, 2025), CRITERIA)


def test_missing_cgpa_disqualifies_only_when_minimum_is_set():
    student = Student("s1", "CS", None, 2025)
    assert not is_eligible(student, CRITERIA)

    open_criteria = EligibilityCriteria.from_mapping(
        {"allowed_courses": ["CS"], "min_cgpa": 0, "graduation_years": [2025], "max_backlogs": 0}
    )
    assert is_eligible(student, open_criteria)


def test_missing_backlogs_count_as_zero():
    assert is_eligible(Student("s1", "CS", 8.0, 2025, backlogs=None), CRITERIA)


def test_ties_break_on_student_id_and_missing_cgpa_sorts_last():
    criteria = EligibilityCriteria.from_mapping(
        {"allowed_courses": ["CS"], "min_cgpa": 0, "graduation_years": [2025], "max_backlogs": 2}
    )
    pool = [
        Student("s9", "CS", 8.0, 2025),
        Student("s2", "CS", None, 2025),
        Student("s5", "CS", 8.0, 2025),
        Student("s1", "CS", 9.0, 2025),
    ]

    assert [s.student_id for s in filter_eligible(pool, criteria)] == ["s1", "s5", "s9", "s2"]


def test_filter_is_deterministic_for_shuffled_input():
    pool = [Student(f"s{i}", "CS", 7.0 + (i % 3) / 2, 2025) for i in range(9)]
    assert filter_eligible(pool, CRITERIA) == filter_eligible(list(reversed(pool)), CRITERIA)


async def test_load_eligible_pool_reads_only_the_college(db_session):
    add_student(db_session, "a1", college_id="col-1", cgpa=8.2)
    add_student(db_session, "a2", college_id="col-1", cgpa=6.0)
    add_student(db_session, "b1", college_id="col-2", cgpa=9.9)
    await db_session.flush()

    eligible = await load_eligible_pool(db_session, college_id="col-1", criteria=CRITERIA)

    assert [s.student_id for s in eligible] == ["a1"]


@pytest.mark.parametrize("field", ["allowed_courses", "graduation_years"])
def test_criteria_must_name_at_least_one_value(field):
    data = {"allowed_courses": ["CS"], "min_cgpa": 7, "graduation_years": [2025], "max_backlogs": 0}
    data[field] = []
    with pytest.raises(pydantic.ValidationError):
        EligibilityCriteriaIn.model_validate(data)
