"""Pydantic schemas for user records."""
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


UserRole = Literal["user", "admin"]
PresenceStatus = Literal["online", "offline"]


class UserRecord(BaseModel):
    """A stored user, including the password hash (never sent to clients)."""
    id: str
    name: str
    email: str
    password_hash: str
    role: UserRole = "user"
    bio: str = ""
    profile_picture: str = ""
    created_at: datetime


class UserPublic(BaseModel):
    """User fields that are safe to return to clients."""
    id: str
    name: str
    email: str
    role: UserRole = "user"
    bio: str = ""
    profilePicture: str = ""
    status: PresenceStatus = "offline"
    lastSeen: Optional[datetime] = Field(
        default=None,
        description="When the user last disconnected (unknown since restart if null)"
    )

    @classmethod
    def from_record(
        cls,
        record: UserRecord,
        online: bool = False,
        last_seen: Optional[datetime] = None,
    ) -> "UserPublic":
        return cls(
            id=record.id,
            name=record.name,
            email=record.email,
            role=record.role,
            bio=record.bio,
            profilePicture=record.profile_picture,
            status="online" if online else "offline",
            lastSeen=last_seen,
        )
