from typing import Optional

from pydantic import BaseModel

from campus_drive.core.roles import ActorRole


class ActorContext(BaseModel):
    """Authenticated caller. `party_id` is the recruiter, college or student id the actor speaks for."""

    actor_id: str
    role: ActorRole
    party_id: str
    full_name: Optional[str] = None
