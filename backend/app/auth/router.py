"""Auth router for account endpoints.

Endpoints:
    POST /api/auth/register  - Create an account and return a token
    POST /api/auth/login     - Exchange email + password for a token
    GET  /api/auth/me        - The caller's own profile
    GET  /api/auth/users     - Every other user, with live presence
"""
import logging

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user, get_services
from app.errors import ValidationFailed
from app.services import ChatServices
from app.users.schemas import UserPublic

from .schemas import (
    LoginRequest,
    RegisterRequest,
    TokenResponse,
    UserListResponse,
    UserResponse,
)
from .service import VerifiedIdentity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201, response_model=TokenResponse)
def register(
    request: RegisterRequest,
    services: ChatServices = Depends(get_services),
) -> TokenResponse:
    """Create a user account.

    Plain ``def``: password hashing runs in the threadpool, off the event loop
    that drives the WebSocket connections.

    Returns:
        TokenResponse with a bearer token for the new user.

    Raises:
        ValidationFailed: Password shorter than the configured minimum (400).
        Conflict: Email already registered (409).
    """
    if len(request.password) < services.auth.password_min_length:
        raise ValidationFailed(
            f"Password must be at least {services.auth.password_min_length} characters"
        )

    user, token = services.auth.register(request.name, request.email, request.password)
    logger.info(f"[Auth] Registered {user.id}")
    return TokenResponse(
        message="Registration successful",
        token=token,
        user=UserPublic.from_record(user),
    )


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    services: ChatServices = Depends(get_services),
) -> TokenResponse:
    """Exchange email and password for a bearer token (401 on mismatch).

    Plain ``def`` for the same reason as :func:`register`.
    """
    user, token = services.auth.login(request.email, request.password)
    return TokenResponse(
        message="Login successful",
        token=token,
        user=UserPublic.from_record(
            user,
            online=services.registry.is_online(user.id),
            last_seen=services.registry.last_seen(user.id),
        ),
    )


@router.get("/me", response_model=UserResponse)
async def me(
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> UserResponse:
    user = services.users.get(current.user_id)
    return UserResponse(user=UserPublic.from_record(
        user,
        online=services.registry.is_online(user.id),
        last_seen=services.registry.last_seen(user.id),
    ))


@router.get("/users", response_model=UserListResponse)
async def list_users(
    current: VerifiedIdentity = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
) -> UserListResponse:
    """List all users except the caller.

    ``status`` and ``lastSeen`` come from the presence registry, so they
    reflect live connections rather than anything stored.
    """
    online = services.registry.snapshot()
    users = [
        UserPublic.from_record(
            record,
            online=record.id in online,
            last_seen=services.registry.last_seen(record.id),
        )
        for record in services.users.list_all(exclude_id=current.user_id)
    ]
    return UserListResponse(users=users)
