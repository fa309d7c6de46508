from __future__ import annotations

from typing import Any

from fastapi import status


class CampusDriveError(Exception):
    """Base for every error the core raises on purpose.

    `kind` is the machine-readable code the UI switches on; `retryable` tells
    the caller whether to retry or refresh and show the current state.
    """

    kind = "campus_drive_error"
    status_code = status.HTTP_400_BAD_REQUEST
    retryable = False

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "kind": self.kind,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(CampusDriveError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class InvalidStateTransition(CampusDriveError):
    kind = "invalid_state_transition"
    status_code = status.HTTP_409_CONFLICT


class NegotiationLimitExceeded(CampusDriveError):
    kind = "negotiation_limit_exceeded"
    status_code = status.HTTP_409_CONFLICT


class InsufficientCandidates(CampusDriveError):
    kind = "insufficient_candidates"
    status_code = 422


class CapacityExhausted(CampusDriveError):
    kind = "capacity_exhausted"
    status_code = status.HTTP_409_CONFLICT


class SlotCancelled(CampusDriveError):
    kind = "slot_cancelled"
    status_code = status.HTTP_409_CONFLICT


class JoinWindowClosed(CampusDriveError):
    kind = "join_window_closed"
    status_code = status.HTTP_409_CONFLICT


class FeedbackAlreadySubmitted(CampusDriveError):
    kind = "feedback_already_submitted"
    status_code = status.HTTP_409_CONFLICT


class NotFound(CampusDriveError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Unauthorized(CampusDriveError):
    kind = "unauthorized"
    status_code = status.HTTP_403_FORBIDDEN


# Infrastructure errors: safe to retry the whole request.
class ConcurrentModification(CampusDriveError):
    kind = "concurrent_modification"
    status_code = status.HTTP_409_CONFLICT
    retryable = True


class StorageUnavailable(CampusDriveError):
    kind = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
