from opentelemetry.instrumentation import auto_instrumentation

auto_instrumentation.initialize()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware

from app.api.v1 import api as api_v1
from app.core.config import settings
from app.core.database import create_db_and_tables
from app.core.events import lifespan as events_lifespan
from app.core.exceptions import setup_problem_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gère le cycle de vie de l'application:
    - Crée les tables de base de données.
    - Initialise Redis (événements Pub/Sub + cache).
    - Ferme proprement les connexions.
    """
    logger.info("=== Application Startup ===")

    await create_db_and_tables()
    logger.info("Tables de base de données créées")

    async with events_lifespan(app):
        logger.info("=== Application Startup Complete ===")
        yield
        logger.info("=== Application Shutdown ===")

    logger.info("=== Application Shutdown Complete ===")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.DESCRIPTION,
    lifespan=lifespan,
    openapi_url=f"{settings.get_api_prefix()}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
)

# Exception handlers RFC 9457 Problem Details
setup_problem_handlers(app, expose_internal_errors=settings.DEBUG)

# Middleware CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin) for origin in settings.ALLOWED_ORIGINS],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware Trusted Hosts
if settings.ENVIRONMENT not in ("development", "test"):
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.TRUSTED_HOSTS,
    )

# Include API v1 (current version)
app.include_router(api_v1.router, prefix=settings.get_api_prefix("v1"))
