"""Role resolution — workshop assignments to a landing route, area access, XP levels."""

import enum
import math
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from maker.logging_config import get_logger
from maker.models import WorkshopRole, WorkshopUser

logger = get_logger(__name__)

# Highest first.
ROLE_PRECEDENCE: tuple[WorkshopRole, ...] = (
    WorkshopRole.admin,
    WorkshopRole.facilitator,
    WorkshopRole.participant,
)

MAX_LEVEL = 15
XP_PER_LEVEL_BASE = 100


class LandingRoute(str, enum.Enum):
    waiting_room = "/waiting-room"
    admin = "/admin"
    facilitator = "/facilitator"
    participant = "/participant"


_ROLE_LANDING: dict[WorkshopRole, LandingRoute] = {
    WorkshopRole.admin: LandingRoute.admin,
    WorkshopRole.facilitator: LandingRoute.facilitator,
    WorkshopRole.participant: LandingRoute.participant,
}

# Role-protected areas and the roles admitted to each.
AREA_ROLES: dict[str, frozenset[WorkshopRole]] = {
    "admin": frozenset({WorkshopRole.admin}),
    "facilitator": frozenset({WorkshopRole.facilitator, WorkshopRole.admin}),
    "participant": frozenset(
        {WorkshopRole.participant, WorkshopRole.facilitator, WorkshopRole.admin}
    ),
}


def effective_role(roles: Iterable[WorkshopRole | str]) -> WorkshopRole | None:
    """Collapse a user's workshop roles into one by precedence.

    This is an existence check per role, so the workshop that granted a role
    and the order of assignments do not matter. Returns None when the user
    holds no assignment at all.
    """
    held = {WorkshopRole(r) for r in roles}
    for role in ROLE_PRECEDENCE:
        if role in held:
            return role
    return None


def landing_route(role: WorkshopRole | None) -> LandingRoute:
    """Dashboard for an effective role; unassigned users wait."""
    if role is None:
        return LandingRoute.waiting_room
    return _ROLE_LANDING[role]


def can_access(role: WorkshopRole | None, area: str) -> bool:
    """Whether an effective role may enter a protected area."""
    if role is None:
        return False
    return role in AREA_ROLES[area]


async def fetch_workshop_roles(db: AsyncSession, user_id: UUID) -> list[WorkshopRole]:
    """All roles the user holds across workshops (one per assignment)."""
    result = await db.execute(
        select(WorkshopUser.role).where(WorkshopUser.user_id == user_id)
    )
    return [WorkshopRole(role) for role in result.scalars().all()]


async def resolve_effective_role(db: AsyncSession, user_id: UUID) -> WorkshopRole | None:
    return effective_role(await fetch_workshop_roles(db, user_id))


async def resolve_landing_route(db: AsyncSession, user_id: UUID) -> LandingRoute:
    """Read-only: where the user should land after authenticating."""
    role = await resolve_effective_role(db, user_id)
    route = landing_route(role)
    logger.debug(
        "landing_route_resolved",
        user_id=str(user_id),
        role=role.value if role else None,
        route=route.value,
    )
    return route


def compute_level(xp: int) -> int:
    """Level from total XP using log2 scaling over 100-XP steps, capped at 15."""
    return min(MAX_LEVEL, int(math.floor(math.log2(max(xp, 0) / XP_PER_LEVEL_BASE + 1))) + 1)
