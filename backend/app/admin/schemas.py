"""Pydantic schemas for the admin endpoints."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from app.users.schemas import UserPublic, UserRecord


class AdminUserView(UserPublic):
    """Public user fields plus the account creation time."""
    createdAt: datetime

    @classmethod
    def from_record(
        cls,
        record: UserRecord,
        online: bool = False,
        last_seen: Optional[datetime] = None,
    ) -> "AdminUserView":
        public = UserPublic.from_record(record, online=online, last_seen=last_seen)
        return cls(**public.model_dump(), createdAt=record.created_at)


class AdminUserListResponse(BaseModel):
    success: bool = True
    users: List[AdminUserView]


class AdminStats(BaseModel):
    totalUsers: int
    totalAdmins: int
    onlineUsers: int
    offlineUsers: int
    recentUsers: List[AdminUserView]


class AdminStatsResponse(BaseModel):
    success: bool = True
    stats: AdminStats
