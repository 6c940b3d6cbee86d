"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from autodeploy import __version__
from autodeploy.api.middleware import RequestLoggingMiddleware
from autodeploy.api.v1.router import router as v1_router
from autodeploy.config import settings
from autodeploy.core.exceptions import (
    AutodeployError,
    DeploymentNotFoundError,
    ProjectNotFoundError,
    WebhookRejection,
)
from autodeploy.core.launcher import get_launcher
from autodeploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def error_response(status_code: int, message: str, **extra: Any) -> JSONResponse:
    """JSON error body shared by webhook senders and API clients."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message, **extra},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging on startup; drain in-flight deployments on shutdown."""
    configure_logging()
    logger.info(
        "application.starting",
        version=__version__,
        environment=settings.app_env,
        port=settings.api_port,
        database=settings.database_path or "memory",
    )

    yield

    launcher = get_launcher()
    active = launcher.active_deployments()
    if active:
        logger.info("application.shutdown.waiting", active=[a.project for a in active])
    await launcher.wait_for_idle()
    logger.info("application.shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="autodeploy",
        description="Webhook-driven deployment pipeline with health monitoring and automatic rollback",
        version=__version__,
        docs_url="/docs" if settings.app_debug else None,
        redoc_url="/redoc" if settings.app_debug else None,
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(WebhookRejection)
    async def webhook_rejection_handler(
        request: Request, exc: WebhookRejection
    ) -> JSONResponse:
        """Reject a webhook with the launcher's status code."""
        return error_response(exc.status_code, exc.message, **exc.details)

    @app.exception_handler(ProjectNotFoundError)
    @app.exception_handler(DeploymentNotFoundError)
    async def not_found_handler(request: Request, exc: AutodeployError) -> JSONResponse:
        return error_response(status.HTTP_404_NOT_FOUND, exc.message, **exc.details)

    @app.exception_handler(AutodeployError)
    async def autodeploy_error_handler(
        request: Request, exc: AutodeployError
    ) -> JSONResponse:
        """Store or pipeline failures surfacing through a request."""
        logger.error(
            "application.error",
            error=exc.message,
            error_type=type(exc).__name__,
            path=request.url.path,
            details=exc.details,
        )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message, details=exc.details
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "application.unhandled_exception",
            error=str(exc),
            path=request.url.path,
            exc_info=True,
        )
        # Internal details only leave the process in development
        message = str(exc) if settings.is_development else "Internal server error"
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, message)

    app.include_router(v1_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "autodeploy.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
