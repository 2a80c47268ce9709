"""Pydantic schemas for the auth endpoints."""
from typing import List

from pydantic import BaseModel, Field

from app.users.schemas import UserPublic


class RegisterRequest(BaseModel):
    """Request body for ``POST /api/auth/register``."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., min_length=3, max_length=254, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=1)


class LoginRequest(BaseModel):
    """Request body for ``POST /api/auth/login``."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenResponse(BaseModel):
    success: bool = True
    message: str
    token: str
    user: UserPublic


class UserResponse(BaseModel):
    success: bool = True
    user: UserPublic


class UserListResponse(BaseModel):
    success: bool = True
    users: List[UserPublic]
