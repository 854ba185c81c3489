"""Post-login navigation — landing route and the waiting room."""

from fastapi import APIRouter, Depends

from maker.auth import Actor, get_current_actor
from maker.errors import NavigationError
from maker.schemas import LandingResponse, WaitingRoomResponse
from maker.services.role_service import LandingRoute, landing_route

router = APIRouter(prefix="/api", tags=["navigation"])


@router.get("/landing", response_model=LandingResponse)
async def get_landing(actor: Actor = Depends(get_current_actor)):
    """Where the current user belongs, by role precedence over their assignments."""
    return LandingResponse(route=landing_route(actor.role).value, role=actor.role)


@router.get("/waiting-room", response_model=WaitingRoomResponse)
async def waiting_room(actor: Actor = Depends(get_current_actor)):
    """Holding page for users without a workshop; assigned users are sent on."""
    route = landing_route(actor.role)
    if route is not LandingRoute.waiting_room:
        raise NavigationError(route.value)
    return WaitingRoomResponse(display_name=actor.user.display_name or "User")
