"""Application service container.

Everything with state lives here and is built once per application in the
FastAPI lifespan: the DuckDB connection, the stores, the presence registry
and the delivery coordinator. Route handlers reach it through
``app.state.services`` (see :mod:`app.dependencies`).
"""
import logging
from dataclasses import dataclass

from app.auth.service import AuthService, IdentityResolver, TokenService
from app.config import AppConfig
from app.database import Database
from app.messages.service import MessageStore
from app.realtime.delivery import DeliveryCoordinator
from app.realtime.registry import PresenceRegistry
from app.users.service import UserStore

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    config: AppConfig
    db: Database
    users: UserStore
    messages: MessageStore
    tokens: TokenService
    auth: AuthService
    resolver: IdentityResolver
    registry: PresenceRegistry
    coordinator: DeliveryCoordinator

    @classmethod
    def build(cls, config: AppConfig) -> "ChatServices":
        db = Database(config.database.path)
        users = UserStore(db)
        messages = MessageStore(db)
        tokens = TokenService.from_config(config)
        registry = PresenceRegistry()
        return cls(
            config=config,
            db=db,
            users=users,
            messages=messages,
            tokens=tokens,
            auth=AuthService(
                users,
                tokens,
                password_min_length=config.auth.password_min_length,
                admin_emails=config.auth.admin_emails,
            ),
            resolver=IdentityResolver(tokens, users),
            registry=registry,
            coordinator=DeliveryCoordinator(registry, messages, users),
        )

    def shutdown(self) -> None:
        online = len(self.registry)
        self.registry.clear()
        self.db.close()
        logger.info("Services shut down (%d connections dropped from registry)", online)
