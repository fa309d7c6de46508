from __future__ import annotations

import argparse
import asyncio
import csv
from typing import Any, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.db.session import SessionLocal, init_models
from campus_drive.models.student import CdStudentProfile

REQUIRED_COLUMNS = ("student_id", "college_id")


def _optional(value: str | None, cast) -> Any:
    raw = (value or "").strip()
    return cast(raw) if raw else None


def parse_student_rows(rows: Iterable[dict[str, str]]) -> list[dict[str, Any]]:
    """Normalize profile export rows. Blank CGPA stays None; blank backlogs become 0."""
    parsed: list[dict[str, Any]] = []
    for line_no, row in enumerate(rows, start=2):
        missing = [col for col in REQUIRED_COLUMNS if not (row.get(col) or "").strip()]
        if missing:
            raise ValueError(f"line {line_no}: missing {', '.join(missing)}")
        parsed.append(
            {
                "student_id": row["student_id"].strip(),
                "college_id": row["college_id"].strip(),
                "full_name": (row.get("full_name") or "").strip() or None,
                "course": (row.get("course") or "").strip() or None,
                "cgpa": _optional(row.get("cgpa"), float),
                "graduation_year": _optional(row.get("graduation_year"), int),
                "backlogs": _optional(row.get("backlogs"), int) or 0,
            }
        )
    return parsed


async def upsert_students(session: AsyncSession, rows: list[dict[str, Any]]) -> int:
    now = utc_now_naive()
    for data in rows:
        student = await session.get(CdStudentProfile, data["student_id"])
        if student is None:
            student = CdStudentProfile(student_id=data["student_id"])
            session.add(student)
        for key, value in data.items():
            setattr(student, key, value)
        student.synced_at = now
    await session.flush()
    return len(rows)


async def _run(path: str) -> None:
    with open(path, newline="", encoding="utf-8") as handle:
        rows = parse_student_rows(csv.DictReader(handle))

    await init_models()
    async with SessionLocal() as session:
        count = await upsert_students(session, rows)
        await session.commit()
    print(f"Synced {count} student profiles from {path}.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Load the student profile export into the eligibility projection.")
    parser.add_argument("csv_path")
    args = parser.parse_args()
    try:
        asyncio.run(_run(args.csv_path))
    except ValueError as exc:
        raise SystemExit(str(exc))


if __name__ == "__main__":
    main()
