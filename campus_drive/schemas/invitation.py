from datetime import date, datetime
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from campus_drive.core.datetime_utils import parse_iso, to_utc_naive


def _coerce_datetime(value: Any) -> Any:
    if isinstance(value, str):
        return parse_iso(value)
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return value


class DateRange(BaseModel):
    """
    One proposed or confirmed date range.

    Accepts every shape the portal UI has sent over time and normalizes it:
    - "2025-01-10"                       -> single day
    - "2025-01-10/2025-01-12"            -> ISO interval
    - {"startDate": ..., "endDate": ...} -> legacy camelCase
    - {"start_date"/"start", "end_date"/"end", "is_flexible"/"isFlexible"}
    """

    start: datetime
    end: datetime
    is_flexible: bool = False

    @model_validator(mode="before")
    @classmethod
    def _normalize_shape(cls, value: Any) -> Any:
        if isinstance(value, str):
            raw = value.strip()
            if "/" in raw:
                start_raw, end_raw = raw.split("/", 1)
                return {"start": _coerce_datetime(start_raw), "end": _coerce_datetime(end_raw)}
            return {"start": _coerce_datetime(raw), "end": _coerce_datetime(raw)}
        if isinstance(value, dict):
            start = _first_present(value, "start", "start_date", "startDate", "confirmed_start_date")
            end = _first_present(value, "end", "end_date", "endDate", "confirmed_end_date")
            flexible = _first_present(value, "is_flexible", "isFlexible")
            return {
                "start": _coerce_datetime(start),
                "end": _coerce_datetime(end),
                "is_flexible": bool(flexible) if flexible is not None else False,
            }
        return value

    @field_validator("start", "end")
    @classmethod
    def _strip_timezone(cls, value: datetime) -> datetime:
        return to_utc_naive(value)

    def is_concrete(self) -> bool:
        return self.start < self.end

    def to_storage(self) -> dict[str, Any]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat(), "is_flexible": self.is_flexible}


def _first_present(data: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


class EligibilityCriteriaIn(BaseModel):
    allowed_courses: list[str] = Field(min_length=1)
    min_cgpa: float = Field(default=0, ge=0, le=10)
    graduation_years: list[int] = Field(min_length=1)
    max_backlogs: int = Field(default=0, ge=0)


class StudentLimitsIn(BaseModel):
    min: int = Field(default=0, ge=0)
    max: int = Field(ge=1)

    @model_validator(mode="after")
    def _check_order(self) -> "StudentLimitsIn":
        if self.min > self.max:
            raise ValueError("student_limits.min must not exceed student_limits.max")
        return self


class InvitationCreateIn(BaseModel):
    job_id: str = Field(min_length=1, max_length=64)
    college_ids: list[str] = Field(min_length=1)
    message: Optional[str] = None
    proposed_dates: list[DateRange] = Field(min_length=1)
    eligibility_criteria: EligibilityCriteriaIn
    student_limits: StudentLimitsIn
    expires_in_days: Optional[int] = None


class AcceptInvitationIn(BaseModel):
    action: Literal["accept"]
    confirmed_window: DateRange
    message: Optional[str] = None


class DeclineInvitationIn(BaseModel):
    action: Literal["decline"]
    reason: str


class CounterInvitationIn(BaseModel):
    action: Literal["counter"]
    alternative_dates: list[DateRange]
    message: Optional[str] = None


RespondInvitationIn = Union[AcceptInvitationIn, DeclineInvitationIn, CounterInvitationIn]


class HistoryEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    actor: str
    action: str
    details: str
    proposed_dates: Optional[list[DateRange]] = None


class CounterProposalOut(BaseModel):
    alternative_dates: list[DateRange] = Field(default_factory=list)


class TpoResponseOut(BaseModel):
    response_date: Optional[datetime] = None
    message: Optional[str] = None
    counter_proposal: Optional[CounterProposalOut] = None


class InvitationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    invitation_id: int
    job_id: str
    recruiter_id: str
    college_id: str
    status: str
    invitation_message: Optional[str] = None
    proposed_dates: list[DateRange]
    campus_visit_window: Optional[DateRange] = None
    eligibility_criteria: EligibilityCriteriaIn
    student_limits: StudentLimitsIn
    tpo_response: Optional[TpoResponseOut] = None
    negotiation_rounds: int
    needs_review: bool
    review_reason: Optional[str] = None
    sent_at: datetime
    expires_at: datetime
    responded_at: Optional[datetime] = None
    history: list[HistoryEntryOut] = Field(default_factory=list, serialization_alias="negotiation_history")


class InvitationTimelineOut(BaseModel):
    invitation_id: int
    current_status: str
    timeline: list[HistoryEntryOut]


class StatusBreakdownOut(BaseModel):
    status: str
    count: int
    avg_response_seconds: Optional[float] = None


class InvitationStatsOut(BaseModel):
    total_invitations: int
    status_breakdown: list[StatusBreakdownOut]
    response_rate: float
