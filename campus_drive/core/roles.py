from enum import Enum
from typing import Iterable


class ActorRole(str, Enum):
    RECRUITER = "recruiter"
    COLLEGE = "college"
    STUDENT = "student"
    SYSTEM = "system"


def has_required_role(actor_role: ActorRole | str, required: Iterable[ActorRole | str]) -> bool:
    required_set = {ActorRole(r) for r in required}
    return ActorRole(actor_role) in required_set
