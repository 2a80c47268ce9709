"""FastAPI dependencies for route handlers."""
from typing import Optional

from fastapi import Depends, Header, Request

from app.auth.service import VerifiedIdentity
from app.errors import Forbidden
from app.services import ChatServices


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


async def get_current_user(
    authorization: Optional[str] = Header(default=None),
    services: ChatServices = Depends(get_services),
) -> VerifiedIdentity:
    """Resolve ``Authorization: Bearer <token>`` to a verified identity.

    Raises:
        Unauthenticated: Rendered as 401 by the app's error handler.
    """
    return services.resolver.resolve(authorization)


async def require_admin(
    current: VerifiedIdentity = Depends(get_current_user),
) -> VerifiedIdentity:
    """Like :func:`get_current_user`, but only for accounts with the admin role.

    Raises:
        Forbidden: Rendered as 403 for signed-in non-admins.
    """
    if current.role != "admin":
        raise Forbidden("Access denied. Admin only.")
    return current
