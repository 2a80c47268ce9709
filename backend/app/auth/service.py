"""Credential issuance and verification.

Passwords are stored as salted PBKDF2-HMAC-SHA256 hashes in the form
``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``. Bearer credentials are
HS256 JWTs whose ``sub`` claim is the user id.

:class:`IdentityResolver` is the only piece the real-time layer depends on:
it turns a bearer credential into a :class:`VerifiedIdentity` or raises
:class:`~app.errors.Unauthenticated`.
"""
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from app.config import AppConfig
from app.errors import Unauthenticated
from app.users import UserRecord, UserStore

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: Optional[str] = None) -> str:
    """Hash a password with a random (or given) salt."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS
    )
    return f"pbkdf2_sha256${PBKDF2_ITERATIONS}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$", 3)
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode(), salt.encode(), int(iterations)
    )
    return hmac.compare_digest(digest.hex(), expected)


@dataclass(frozen=True)
class VerifiedIdentity:
    """A user whose bearer credential checked out."""
    user_id: str
    name: str
    email: str
    role: str = "user"


class TokenService:
    """Issues and decodes signed JWT bearer tokens."""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60) -> None:
        self._secret_key = secret_key
        self._algorithm = algorithm
        self._expire = timedelta(minutes=expire_minutes)

    @classmethod
    def from_config(cls, config: AppConfig) -> "TokenService":
        return cls(
            secret_key=config.secrets.jwt.secret_key,
            algorithm=config.secrets.jwt.algorithm,
            expire_minutes=config.auth.token_expire_minutes,
        )

    def issue(self, user_id: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {"sub": user_id, "iat": now, "exp": now + self._expire}
        return jwt.encode(payload, self._secret_key, algorithm=self._algorithm)

    def decode(self, token: str) -> str:
        """Return the user id carried by *token*.

        Raises:
            Unauthenticated: If the token is expired, tampered with or has no subject.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token has expired")
        except jwt.InvalidTokenError:
            raise Unauthenticated("Invalid token")

        user_id = payload.get("sub")
        if not user_id:
            raise Unauthenticated("Invalid token")
        return user_id


class IdentityResolver:
    """Verifies a bearer credential and yields the identity of an existing user."""

    def __init__(self, tokens: TokenService, users: UserStore) -> None:
        self._tokens = tokens
        self._users = users

    def resolve(self, credential: Optional[str]) -> VerifiedIdentity:
        if not credential:
            raise Unauthenticated("No token provided")
        if credential.lower().startswith("bearer "):
            credential = credential[7:].strip()

        user_id = self._tokens.decode(credential)
        user = self._users.get(user_id)
        if user is None:
            logger.warning("[Auth] Token for unknown user %s", user_id)
            raise Unauthenticated("User not found")
        return self.identity_of(user)

    @staticmethod
    def identity_of(user: UserRecord) -> VerifiedIdentity:
        return VerifiedIdentity(
            user_id=user.id, name=user.name, email=user.email, role=user.role
        )


class AuthService:
    """Registration and login on top of the user store."""

    def __init__(
        self,
        users: UserStore,
        tokens: TokenService,
        password_min_length: int = 6,
        admin_emails: Iterable[str] = (),
    ) -> None:
        self._users = users
        self._tokens = tokens
        self._password_min_length = password_min_length
        self._admin_emails = frozenset(e.strip().lower() for e in admin_emails)

    @property
    def password_min_length(self) -> int:
        return self._password_min_length

    def register(self, name: str, email: str, password: str) -> tuple:
        """Create a user and return ``(user, token)``.

        Raises:
            Conflict: If the email is already registered.
        """
        role = "admin" if email.strip().lower() in self._admin_emails else "user"
        user = self._users.create(
            name=name, email=email, password_hash=hash_password(password), role=role,
        )
        return user, self._tokens.issue(user.id)

    def login(self, email: str, password: str) -> tuple:
        """Check credentials and return ``(user, token)``.

        Raises:
            Unauthenticated: On unknown email or wrong password (same message for both).
        """
        user = self._users.get_by_email(email)
        if user is None or not verify_password(password, user.password_hash):
            raise Unauthenticated("Invalid credentials")
        logger.info("[Auth] Login for %s", user.id)
        return user, self._tokens.issue(user.id)
