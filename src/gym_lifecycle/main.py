import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from gym_lifecycle.api.api_v1.api import api_router
from gym_lifecycle.core.config import settings
from gym_lifecycle.core.error_handlers import (
    approval_rejected_handler,
    configuration_exception_handler,
    general_exception_handler,
    sqlalchemy_exception_handler,
    validation_exception_handler,
)
from gym_lifecycle.core.exceptions import ApprovalRejected, ConfigurationError
from gym_lifecycle.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    logger.info(f"Environment: {os.getenv('ENV', 'not set')}")

    missing = settings.missing_required()
    if missing:
        logger.warning(f"Missing required configuration: {', '.join(missing)}")

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if os.getenv("ENV") == "production":
            raise

    yield


def create_app() -> FastAPI:
    """Create FastAPI application."""
    app = FastAPI(
        lifespan=lifespan,
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )

    @app.get("/healthz")
    async def health_check():
        """Health check endpoint for the scheduler and container orchestration."""
        try:
            async with AsyncSessionLocal() as session:
                await session.execute(text("SELECT 1"))

            return {
                "status": "healthy",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "service": settings.PROJECT_NAME,
            }
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unhealthy")

    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(ConfigurationError, configuration_exception_handler)
    app.add_exception_handler(ApprovalRejected, approval_rejected_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    environment = os.getenv("ENV", "development")
    if environment == "development":
        logger.info("Development mode: Allowing all CORS origins")
        cors_origins = ["*"]
    else:
        cors_origins = settings.BACKEND_CORS_ORIGINS.copy()
    logger.info("CORS Origins: %s", cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="localhost", port=settings.SERVER_PORT)
