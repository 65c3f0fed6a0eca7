from typing import Optional

from fastapi import Depends, Header

from admission_portal.db.models import ActorRole
from admission_portal.schemas.application_schemas import Actor
from admission_portal.utils.errors import AuthenticationError, AuthorizationError

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"

STAFF_ROLES = (ActorRole.STAFF, ActorRole.SUPER_ADMIN)


def get_current_actor(
    actor_id: Optional[str] = Header(None, alias=ACTOR_ID_HEADER),
    actor_role: Optional[str] = Header(None, alias=ACTOR_ROLE_HEADER),
) -> Actor:
    """
    Dependency to get the acting user.

    The upstream gateway authenticates the caller and forwards who they are in
    the `X-Actor-Id` / `X-Actor-Role` headers.
    """
    if not actor_id or not actor_role:
        raise AuthenticationError("Actor headers are missing", "NOT_AUTHENTICATED")
    try:
        role = ActorRole(actor_role.strip().lower())
    except ValueError:
        raise AuthenticationError(f"Unknown actor role: {actor_role}", "INVALID_ROLE")
    return Actor(actor_id=actor_id.strip(), actor_role=role)


def require_actor_role(*allowed_roles: ActorRole):
    """Create dependency that requires specific actor roles"""

    def check_actor_role(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.actor_role not in allowed_roles:
            raise AuthorizationError(
                "Insufficient permissions", "INSUFFICIENT_PERMISSIONS"
            )
        return actor

    return check_actor_role


require_staff = require_actor_role(*STAFF_ROLES)
require_applicant = require_actor_role(
    ActorRole.STUDENT, ActorRole.AGENT, *STAFF_ROLES
)
