from __future__ import annotations

from typing import Iterable

from fastapi import Depends, HTTPException, Request, status

from campus_drive.core.config import settings
from campus_drive.core.roles import ActorRole, has_required_role
from campus_drive.schemas.user import ActorContext


async def get_current_actor(request: Request) -> ActorContext:
    # Session handling lives in the portal gateway; it forwards the resolved identity as headers:
    # - X-Actor-Id: user id
    # - X-Actor-Role: recruiter | college | student
    # - X-Party-Id: recruiter/college/student id the user acts for (defaults to X-Actor-Id)
    if settings.auth_mode != "dev":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unsupported auth mode")

    actor_id = (request.headers.get("x-actor-id") or "").strip()
    if not actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing actor identity")

    raw_role = (request.headers.get("x-actor-role") or "").strip().lower()
    try:
        role = ActorRole(raw_role)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown actor role")
    if role == ActorRole.SYSTEM:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="System actor is internal only")

    party_id = (request.headers.get("x-party-id") or "").strip() or actor_id
    return ActorContext(
        actor_id=actor_id,
        role=role,
        party_id=party_id,
        full_name=request.headers.get("x-actor-name"),
    )


def require_roles(roles: Iterable[ActorRole]):
    allowed = list(roles)

    async def _checker(actor: ActorContext = Depends(get_current_actor)) -> ActorContext:
        if not has_required_role(actor.role, allowed):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return actor

    return _checker
