"""Admin router.

Endpoints:
    GET /api/admin/users  - Every account, the caller included
    GET /api/admin/stats  - Account counts and the newest registrations

Both require a bearer token for an account with the ``admin`` role (403
otherwise). Online counts come from the presence registry.
"""
import logging

from fastapi import APIRouter, Depends

from app.auth.service import VerifiedIdentity
from app.dependencies import get_services, require_admin
from app.services import ChatServices

from .schemas import AdminStats, AdminStatsResponse, AdminUserListResponse, AdminUserView

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

RECENT_USERS_LIMIT = 5


def _view(services: ChatServices, record) -> AdminUserView:
    return AdminUserView.from_record(
        record,
        online=services.registry.is_online(record.id),
        last_seen=services.registry.last_seen(record.id),
    )


@router.get("/users", response_model=AdminUserListResponse)
async def list_all_users(
    admin: VerifiedIdentity = Depends(require_admin),
    services: ChatServices = Depends(get_services),
) -> AdminUserListResponse:
    records = services.users.list_all()
    logger.info(f"[Admin] {admin.user_id} listed {len(records)} users")
    return AdminUserListResponse(users=[_view(services, r) for r in records])


@router.get("/stats", response_model=AdminStatsResponse)
async def stats(
    admin: VerifiedIdentity = Depends(require_admin),
    services: ChatServices = Depends(get_services),
) -> AdminStatsResponse:
    """Account counts; ``onlineUsers`` counts accounts with a live connection."""
    total = services.users.count()
    online = sum(
        1 for identity in services.registry.snapshot() if services.users.exists(identity)
    )
    return AdminStatsResponse(stats=AdminStats(
        totalUsers=total,
        totalAdmins=services.users.count(role="admin"),
        onlineUsers=online,
        offlineUsers=total - online,
        recentUsers=[
            _view(services, r)
            for r in services.users.list_recent(RECENT_USERS_LIMIT)
        ],
    ))
