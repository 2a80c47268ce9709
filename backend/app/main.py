"""EverLink Backend Application.

This is the main entry point for the EverLink chat backend.

Modules:
    - auth: Email/password accounts and JWT bearer tokens
    - users: User records (DuckDB)
    - messages: Direct message storage and HTTP endpoints
    - realtime: WebSocket presence registry and message delivery
    - admin: Admin-only user list and stats
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.admin.router import router as admin_router
from app.auth.router import router as auth_router
from app.config import AppConfig, get_config
from app.errors import ChatError, ValidationFailed
from app.messages.router import router as messages_router
from app.realtime.router import router as realtime_router
from app.services import ChatServices

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    return JSONResponse(
        {"success": False, "message": exc.message, "code": exc.code},
        status_code=exc.status_code,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = sorted({
        ".".join(str(part) for part in err["loc"] if part != "body")
        for err in exc.errors()
    })
    error = ValidationFailed(f"Invalid or missing fields: {', '.join(fields)}")
    return await chat_error_handler(request, error)


def create_app(config: Optional[AppConfig] = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        config: Configuration to use. Defaults to :func:`get_config`; it also
            supplies the CORS origins, so it is resolved before the app is built.
    """
    app_config = config or get_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager for startup/shutdown events."""
        # Startup
        # Apply configured log level to root logger so that
        # `logging.level: "debug"` in everlink.settings.yaml activates DEBUG output.
        configured_level = getattr(logging, app_config.logging.level.upper(), None)
        if configured_level is not None:
            logging.getLogger().setLevel(configured_level)
            logger.info("Root logger level set to %s", app_config.logging.level.upper())

        app.state.services = ChatServices.build(app_config)
        logger.info(
            f"EverLink ready on http://{app_config.server.host}:{app_config.server.port}"
        )

        yield  # Application runs here

        # Shutdown
        app.state.services.shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="EverLink API",
        description="Chat backend with real-time presence and message delivery",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_config.server.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(ChatError, chat_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Register all routers
    app.include_router(auth_router)
    app.include_router(messages_router)
    app.include_router(realtime_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()
