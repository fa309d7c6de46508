from campus_drive.db.base import Base
from campus_drive.models.interview_slot import CdInterviewSlot, CdSlotAssignment
from campus_drive.models.invitation import CdInvitation, CdInvitationHistory
from campus_drive.models.student import CdStudentProfile

__all__ = [
    "Base",
    "CdInvitation",
    "CdInvitationHistory",
    "CdInterviewSlot",
    "CdSlotAssignment",
    "CdStudentProfile",
]
