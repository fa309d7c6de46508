from __future__ import annotations

from datetime import timedelta

import pytest

from campus_drive.core.config import settings
from campus_drive.core.errors import InvalidStateTransition, NegotiationLimitExceeded, Unauthorized, ValidationError
from campus_drive.core.invitation_machine import ACCEPTED, NEGOTIATING
from campus_drive.services.invitation_history import ordered_history
from campus_drive.services.invitations import accept_invitation, decline_invitation
from campus_drive.services.negotiation import counter_invitation
from factories import COLLEGE, NOW, RECRUITER, date_range, send_invitation


async def test_college_counter_moves_to_negotiating(db_session):
    invitation = await send_invitation(db_session)
    alternative = [date_range("2025-01-15", "2025-01-17")]

    countered = await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=COLLEGE,
        alternative_dates=alternative,
        message="Mid-semester exams on the 10th",
        now=NOW + timedelta(hours=1),
    )

    assert countered.status == NEGOTIATING
    assert countered.negotiation_rounds == 1
    assert [h.action for h in countered.history] == ["proposed", "counter_proposed"]
    assert countered.history[-1].actor == "college"
    assert countered.tpo_response["counter_proposal"]["alternative_dates"] == [alternative[0].to_storage()]
    assert countered.responded_at == NOW + timedelta(hours=1)
    assert countered.needs_review is False


async def test_recruiter_can_accept_college_counter_but_college_cannot(db_session):
    invitation = await send_invitation(db_session)
    await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=COLLEGE,
        alternative_dates=[date_range("2025-01-15", "2025-01-17")],
        now=NOW + timedelta(hours=1),
    )

    with pytest.raises(Unauthorized):
        await accept_invitation(
            db_session,
            invitation_id=invitation.invitation_id,
            actor=COLLEGE,
            confirmed_window=date_range("2025-01-15", "2025-01-17"),
            now=NOW + timedelta(hours=2),
        )

    accepted = await accept_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=RECRUITER,
        confirmed_window=date_range("2025-01-15", "2025-01-17"),
        now=NOW + timedelta(hours=2),
    )
    assert accepted.status == ACCEPTED
    assert accepted.history[-1].actor == "recruiter"


async def test_counter_rounds_are_capped(db_session, monkeypatch):
    monkeypatch.setattr(settings, "negotiation_max_rounds", 2)
    invitation = await send_invitation(db_session)
    parties = [COLLEGE, RECRUITER, COLLEGE]

    for index, actor in enumerate(parties[:2]):
        await counter_invitation(
            db_session,
            invitation_id=invitation.invitation_id,
            actor=actor,
            alternative_dates=[date_range("2025-01-15", "2025-01-17")],
            now=NOW + timedelta(hours=index + 1),
        )

    with pytest.raises(NegotiationLimitExceeded):
        await counter_invitation(
            db_session,
            invitation_id=invitation.invitation_id,
            actor=parties[2],
            alternative_dates=[date_range("2025-01-20", "2025-01-21")],
            now=NOW + timedelta(hours=5),
        )

    # Accept/decline stay available once the cap is hit.
    declined = await decline_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=COLLEGE,
        reason="Could not agree on dates",
        now=NOW + timedelta(hours=6),
    )
    assert declined.negotiation_rounds == 2


async def test_counter_dates_must_be_concrete_and_in_the_future(db_session):
    invitation = await send_invitation(db_session)
    for dates in ([], [date_range("2025-01-15", "2025-01-15")], [date_range("2024-12-20", "2024-12-22")]):
        with pytest.raises(ValidationError):
            await counter_invitation(
                db_session,
                invitation_id=invitation.invitation_id,
                actor=COLLEGE,
                alternative_dates=dates,
                now=NOW,
            )


async def test_counter_on_terminal_invitation_fails(db_session):
    invitation = await send_invitation(db_session)
    await decline_invitation(db_session, invitation_id=invitation.invitation_id, actor=COLLEGE, reason="No", now=NOW)

    with pytest.raises(InvalidStateTransition):
        await counter_invitation(
            db_session,
            invitation_id=invitation.invitation_id,
            actor=COLLEGE,
            alternative_dates=[date_range("2025-01-15", "2025-01-17")],
            now=NOW,
        )


async def test_near_simultaneous_counters_are_kept_and_flagged(db_session):
    invitation = await send_invitation(db_session)
    first_at = NOW + timedelta(hours=1)
    college_dates = [date_range("2025-01-15", "2025-01-17")]
    recruiter_dates = [date_range("2025-01-18", "2025-01-19")]

    await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=COLLEGE,
        alternative_dates=college_dates,
        now=first_at,
    )
    result = await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=RECRUITER,
        alternative_dates=recruiter_dates,
        now=first_at + timedelta(seconds=2),
    )

    assert result.needs_review is True
    assert "college" in result.review_reason and "recruiter" in result.review_reason
    assert [h.actor for h in ordered_history(result)] == ["recruiter", "college", "recruiter"]
    assert result.tpo_response["counter_proposal"]["alternative_dates"] == [recruiter_dates[0].to_storage()]


async def test_earlier_timestamped_counter_does_not_replace_visible_proposal(db_session):
    invitation = await send_invitation(db_session)
    first_at = NOW + timedelta(hours=1)
    college_dates = [date_range("2025-01-15", "2025-01-17")]

    await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=COLLEGE,
        alternative_dates=college_dates,
        now=first_at,
    )
    result = await counter_invitation(
        db_session,
        invitation_id=invitation.invitation_id,
        actor=RECRUITER,
        alternative_dates=[date_range("2025-01-18", "2025-01-19")],
        now=first_at - timedelta(seconds=1),
    )

    history = ordered_history(result)
    assert [h.action for h in history] == ["proposed", "counter_proposed", "counter_proposed"]
    assert history[1].actor == "recruiter"
    assert result.tpo_response["counter_proposal"]["alternative_dates"] == [college_dates[0].to_storage()]
    assert result.needs_review is True


async def test_spaced_counters_are_not_flagged(db_session):
    invitation = await send_invitation(db_session)
    for offset, actor in ((1, COLLEGE), (2, RECRUITER)):
        result = await counter_invitation(
            db_session,
            invitation_id=invitation.invitation_id,
            actor=actor,
            alternative_dates=[date_range("2025-01-15", "2025-01-17")],
            now=NOW + timedelta(minutes=offset),
        )
    assert result.needs_review is False
    assert result.negotiation_rounds == 2
