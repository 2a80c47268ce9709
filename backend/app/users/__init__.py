"""User records and their DuckDB store."""

from .schemas import UserPublic, UserRecord
from .service import UserStore

__all__ = [
    "UserPublic",
    "UserRecord",
    "UserStore",
]
