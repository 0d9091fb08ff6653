"""Main FastAPI application for the OIDC gateway."""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from oidc_gateway.auth.directory import InMemoryUserDirectory, UserDirectory
from oidc_gateway.auth.errors import AuthError
from oidc_gateway.auth.middleware import AuthenticationGate
from oidc_gateway.auth.routes import router as auth_router
from oidc_gateway.auth.service import create_auth_service
from oidc_gateway.config import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    auth_service = app.state.auth_service
    logger.info("Starting OIDC gateway...")

    auth_service.state_store.sweeper.start()
    auth_service.session_store.sweeper.start()

    yield

    logger.info("Shutting down OIDC gateway...")
    await auth_service.state_store.sweeper.stop()
    await auth_service.session_store.sweeper.stop()


async def auth_error_handler(request: Request, exc: AuthError):
    """Render typed auth errors with their stable kind."""
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == status.HTTP_401_UNAUTHORIZED else None
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(),
        headers=headers,
    )


def create_app(
    settings: Settings | None = None,
    directory: UserDirectory | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI application with its auth services wired in."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    if directory is None:
        logger.warning("Using in-memory user directory - not suitable for production")
        directory = InMemoryUserDirectory()

    auth_service = create_auth_service(settings, directory, transport=transport)

    app = FastAPI(
        title="OIDC Gateway",
        description="OIDC authorization code login with locally issued session tokens",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.auth_service = auth_service
    app.state.auth_gate = AuthenticationGate(auth_service)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.dependency_overrides[get_settings] = lambda: settings

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "service": "oidc-gateway"}

    return app


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "oidc_gateway.main:create_app",
        factory=True,
        host=settings.server_host,
        port=settings.server_port,
        reload=not settings.is_production,
    )
