from fastapi import APIRouter

from campus_drive.api.routes import assignments
from campus_drive.api.routes import events
from campus_drive.api.routes import interview_slots
from campus_drive.api.routes import invitations

api_router = APIRouter()
api_router.include_router(invitations.router)
api_router.include_router(interview_slots.router)
api_router.include_router(interview_slots.slot_router)
api_router.include_router(assignments.router)
api_router.include_router(events.router)
