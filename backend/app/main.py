from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import structlog

from app.core.config import settings
from app.core.logging import setup_logging
from app.core.exceptions import (
    DisasterDeskError,
    domain_exception_handler,
    global_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.services.container import Services, build_services

# Setup Logging
setup_logging()
logger = structlog.get_logger()


def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Build the application. Without `services` the default wiring from
    settings is created on startup and disposed of on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifecycle manager for the application.
        """
        if services is None:
            from app.db.session import engine
            app.state.services = build_services(settings, engine=engine)
        else:
            app.state.services = services
        await app.state.services.startup()
        logger.info("startup", project=settings.PROJECT_NAME, blob_backend=settings.BLOB_BACKEND)
        yield
        await app.state.services.shutdown()
        logger.info("shutdown")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version="1.0.0",
        description="Disaster report intake, triage and response tracking",
        lifespan=lifespan,
        docs_url=f"{settings.API_V1_STR}/docs",
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )

    # Middleware: CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception Handlers
    app.add_exception_handler(DisasterDeskError, domain_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    # Health Check
    @app.get("/health", tags=["system"])
    async def health_check():
        """
        Public health check endpoint for load balancers.
        """
        return {"status": "ok", "environment": settings.ENVIRONMENT}

    from app.api.v1 import auth, files, reports
    from app.api.v1.public import reporting as public_reporting

    app.include_router(auth.router, prefix=f"{settings.API_V1_STR}/auth", tags=["auth"])
    app.include_router(public_reporting.router, prefix=f"{settings.API_V1_STR}/public/reports", tags=["reporting"])
    app.include_router(reports.router, prefix=f"{settings.API_V1_STR}/reports", tags=["reports"])
    app.include_router(files.router, prefix=f"{settings.API_V1_STR}/files", tags=["files"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
