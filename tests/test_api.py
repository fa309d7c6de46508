from __future__ import annotations

from datetime import timedelta

import httpx
import pytest

from campus_drive.api import deps
from campus_drive.api.routes import invitations as invitation_routes
from campus_drive.core.datetime_utils import utc_now_naive
from campus_drive.main import create_app
from campus_drive.services.storage_retry import TransactionRunner
from factories import add_student

RECRUITER_HEADERS = {"X-Actor-Id": "u-rec-1", "X-Actor-Role": "recruiter", "X-Party-Id": "rec-1"}
COLLEGE_HEADERS = {"X-Actor-Id": "u-tpo-1", "X-Actor-Role": "college", "X-Party-Id": "col-1"}


def _student_headers(student_id: str) -> dict[str, str]:
    return {"X-Actor-Id": f"u-{student_id}", "X-Actor-Role": "student", "X-Party-Id": student_id}


def _day(offset: int) -> str:
    return (utc_now_naive() + timedelta(days=offset)).date().isoformat()


@pytest.fixture()
async def client(session_factory):
    app = create_app()
    app.dependency_overrides[deps.get_runner] = lambda: TransactionRunner(session_factory)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def _invite(client) -> dict:
    response = await client.post(
        "/invitations",
        headers=RECRUITER_HEADERS,
        json={
            "job_id": "job-1",
            "college_ids": ["col-1"],
            "message": "Campus drive",
            "proposed_dates": [f"{_day(10)}/{_day(12)}"],
            "eligibility_criteria": {
                "allowed_courses": ["CS"],
                "min_cgpa": 7,
                "graduation_years": [2025],
                "max_backlogs": 0,
            },
            "student_limits": {"min": 1, "max": 5},
        },
    )
    assert response.status_code == 201, response.text
    return response.json()[0]


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_missing_identity_is_rejected(client):
    response = await client.get("/invitations")
    assert response.status_code == 401


async def test_students_cannot_send_invitations(client):
    response = await client.post("/invitations", headers=_student_headers("s1"), json={})
    assert response.status_code == 403


async def test_negotiate_accept_and_schedule(client, session_factory):
    invitation = await _invite(client)
    assert invitation["status"] == "pending"
    assert invitation["negotiation_history"][0]["action"] == "proposed"
    invitation_id = invitation["invitation_id"]

    countered = await client.post(
        f"/invitations/{invitation_id}/respond",
        headers=COLLEGE_HEADERS,
        json={
            "action": "counter",
            "alternative_dates": [{"startDate": _day(15), "endDate": _day(17)}],
            "message": "Exams on the first dates",
        },
    )
    assert countered.status_code == 200, countered.text
    assert countered.json()["status"] == "negotiating"

    accepted = await client.post(
        f"/invitations/{invitation_id}/respond",
        headers=RECRUITER_HEADERS,
        json={"action": "accept", "confirmed_window": {"start_date": _day(15), "end_date": _day(17)}},
    )
    assert accepted.status_code == 200, accepted.text
    assert accepted.json()["status"] == "accepted"

    history = await client.get(f"/invitations/{invitation_id}/history", headers=COLLEGE_HEADERS)
    assert [entry["action"] for entry in history.json()["timeline"]] == ["proposed", "counter_proposed", "accepted"]

    async with session_factory() as session:
        add_student(session, "s1", cgpa=8.5)
        await session.commit()

    slot_start = (utc_now_naive() + timedelta(days=15)).replace(microsecond=0)
    slot = await client.post(
        "/jobs/job-1/interview-slots",
        headers=RECRUITER_HEADERS,
        json={
            "date_time": slot_start.isoformat(),
            "duration": 45,
            "type": "hr",
            "location": {"type": "online", "meeting_link": "https://meet.example.com/drive"},
            "max_candidates": 3,
        },
    )
    assert slot.status_code == 201, slot.text

    assigned = await client.post("/jobs/job-1/auto-assign", headers=RECRUITER_HEADERS)
    assert assigned.status_code == 200, assigned.text
    assignment = assigned.json()["assigned"][0]
    assert assignment["student_id"] == "s1"

    confirmed = await client.post(f"/assignments/{assignment['assignment_id']}/confirm", headers=_student_headers("s1"))
    assert confirmed.status_code == 200, confirmed.text
    assert confirmed.json()["confirmed"] is True

    slots = await client.get("/jobs/job-1/interview-slots", headers=COLLEGE_HEADERS)
    assert slots.json()[0]["assigned_count"] == 1
    assert slots.json()[0]["assigned_students"][0]["status"] == "confirmed"


async def test_domain_errors_use_the_error_envelope(client):
    invitation = await _invite(client)

    response = await client.post(
        f"/invitations/{invitation['invitation_id']}/respond",
        headers=COLLEGE_HEADERS,
        json={"action": "decline", "reason": "   "},
    )
    assert response.status_code == 400
    assert response.json() == {
        "error": {"kind": "validation_error", "message": "A reason is required to decline.", "retryable": False}
    }

    own = await client.post(
        f"/invitations/{invitation['invitation_id']}/respond",
        headers=RECRUITER_HEADERS,
        json={"action": "accept", "confirmed_window": f"{_day(10)}/{_day(12)}"},
    )
    assert own.status_code == 403
    assert own.json()["error"]["kind"] == "unauthorized"


async def test_auto_assign_reports_insufficient_candidates(client):
    invitation = await _invite(client)
    await client.post(
        f"/invitations/{invitation['invitation_id']}/respond",
        headers=COLLEGE_HEADERS,
        json={"action": "accept", "confirmed_window": f"{_day(10)}/{_day(12)}"},
    )

    response = await client.post("/jobs/job-1/auto-assign", headers=RECRUITER_HEADERS)

    assert response.status_code == 422
    body = response.json()["error"]
    assert body["kind"] == "insufficient_candidates"
    assert body["details"]["shortfalls"][0]["min"] == 1


async def test_stats_route_is_not_shadowed_by_invitation_id(client):
    await _invite(client)
    response = await client.get("/invitations/stats", headers=RECRUITER_HEADERS)
    assert response.status_code == 200
    assert response.json()["total_invitations"] == 1


async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-Id": "req-42"})
    assert response.headers["x-request-id"] == "req-42"

    generated = await client.get("/health")
    assert len(generated.headers["x-request-id"]) == 32


async def test_repeated_accept_publishes_one_event(client, monkeypatch):
    published: list[str] = []

    async def record(event_type: str, **fields) -> None:
        published.append(event_type)

    monkeypatch.setattr(invitation_routes, "publish_event", record)
    invitation = await _invite(client)
    body = {"action": "accept", "confirmed_window": f"{_day(10)}/{_day(12)}"}

    for _ in range(2):
        response = await client.post(
            f"/invitations/{invitation['invitation_id']}/respond",
            headers=COLLEGE_HEADERS,
            json=body,
        )
        assert response.status_code == 200, response.text
        assert response.json()["status"] == "accepted"

    assert published == ["invitation_sent", "invitation_accepted"]


async def test_upcoming_slots_route(client):
    invitation = await _invite(client)
    await client.post(
        f"/invitations/{invitation['invitation_id']}/respond",
        headers=COLLEGE_HEADERS,
        json={"action": "accept", "confirmed_window": f"{_day(1)}/{_day(12)}"},
    )
    for offset in (2, 20):
        start = (utc_now_naive() + timedelta(days=offset)).replace(microsecond=0)
        created = await client.post(
            "/jobs/job-1/interview-slots",
            headers=RECRUITER_HEADERS,
            json={
                "date_time": start.isoformat(),
                "duration": 30,
                "type": "technical",
                "location": {"type": "offline", "details": "Block A"},
                "max_candidates": 2,
            },
        )
        assert created.status_code == 201, created.text

    response = await client.get("/interview-slots/upcoming", params={"days": 7}, headers=COLLEGE_HEADERS)

    assert response.status_code == 200, response.text
    assert len(response.json()) == 1
