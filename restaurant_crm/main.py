"""
FastAPI Application

Main entry point for the Restaurant CRM tagging API.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from restaurant_crm.config import get_settings
from restaurant_crm.config.logging import configure_logging
from restaurant_crm.database.connection import close_database, init_database
from restaurant_crm.serving.api.middleware import RequestLoggingMiddleware
from restaurant_crm.serving.api.routes import (
    customers_router,
    health_router,
    tagging_router,
    triggers_router,
)
from restaurant_crm.serving.cache import close_redis, init_redis

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    configure_logging()

    logger.info("Starting Restaurant CRM API", environment=settings.app_env)

    await init_database(create_schema=settings.is_development)

    # Redis is optional; summaries are read from the database without it
    try:
        await init_redis()
    except Exception as e:
        logger.warning("Redis unavailable, summary cache disabled", error=str(e))

    yield

    logger.info("Shutting down")
    await close_database()
    await close_redis()


app = FastAPI(
    title="Restaurant CRM API",
    description="Customer tagging, segment summaries and automation triggers for restaurants",
    version=settings.version,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.security.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(health_router, prefix="/api/v1", tags=["Health"])
app.include_router(customers_router, prefix="/api/v1", tags=["Customers"])
app.include_router(tagging_router, prefix="/api/v1/restaurants", tags=["Tagging"])
app.include_router(triggers_router, prefix="/api/v1/triggers", tags=["Triggers"])


@app.get("/api/v1/info")
async def api_info():
    """API information endpoint."""
    return {
        "name": "Restaurant CRM API",
        "version": settings.version,
        "environment": settings.app_env,
        "documentation": "/docs",
    }


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
