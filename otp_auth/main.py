"""Application entrypoint for the OTP credential service.

This module wires together the FastAPI application with its lifespan hooks,
database metadata, Redis cleanup, logging, error handlers and CORS
configuration. It is the root that other modules depend on when the API
process starts.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from otp_auth.api.routes import auth_router, users_router
from otp_auth.core.config import settings
from otp_auth.core.errors import http_error_handler, unhandled_error_handler, validation_error_handler
from otp_auth.db import models  # noqa: F401
from otp_auth.db.base import Base
from otp_auth.db.session import engine
from otp_auth.services.pending import close_redis_client


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup and dispose shared clients on shutdown.

    Dependencies:
    - Uses the async SQLAlchemy engine from `otp_auth.db.session` to ensure the
      metadata defined in `otp_auth.db.base.Base` (and the imported models) exists.
    - Cleans up the Redis client via `close_redis_client` so connections are
      properly released when the FastAPI app stops.
    """

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_redis_client()
    await engine.dispose()


def create_application() -> FastAPI:
    """Assemble and configure the FastAPI application instance.

    - Injects the lifespan manager defined above to manage startup/shutdown.
    - Applies CORS settings sourced from environment-driven `settings`; the
      session and token cookies need credentialed requests.
    - Renders every error as `{"success": false, "message": ...}`.
    - Registers the authentication and user routers.
    """

    configure_logging()
    application = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.PROJECT_VERSION,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(StarletteHTTPException, http_error_handler)
    application.add_exception_handler(RequestValidationError, validation_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(auth_router)
    application.include_router(users_router)

    @application.get("/")
    async def healthcheck():
        """Lightweight health endpoint used by uptime monitors."""
        return {"message": "OTP Credential Service is running!"}

    return application


app = create_application()
