"""
OmniPOS ledger service

Products, customers and transactional order placement for the point-of-sale
back office.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pathlib import Path
import subprocess

from omnipos.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from omnipos.core_settings import get_settings
from omnipos.api.orders import router as orders_router
from omnipos.api.products import router as products_router
from omnipos.api.customers import router as customers_router
from omnipos.infrastructure.db import engine, init_models

settings = get_settings()
SERVICE_DESCRIPTION = "Point-of-sale back office: catalog, customers and order ledger"
PROJECT_ROOT = Path(__file__).resolve().parent.parent

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    version=settings.SERVICE_VERSION,
    environment=settings.ENVIRONMENT,
)

logger = get_logger(__name__)

def run_migrations() -> None:
    logger.info("Running database migrations")
    result = subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        check=False
    )
    if result.returncode != 0:
        logger.warning(f"Migration output: {result.stderr}")
    else:
        logger.info("Database migrations completed")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")

    if settings.RUN_MIGRATIONS_ON_STARTUP:
        try:
            run_migrations()
        except OSError as e:
            logger.error(f"Migration error: {e}")

    try:
        init_models()
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    logger.info(f"{settings.SERVICE_NAME} started successfully")

    yield

    logger.info(f"Shutting down {settings.SERVICE_NAME}")
    engine.dispose()

app = FastAPI(
    title=settings.SERVICE_NAME,
    description=SERVICE_DESCRIPTION,
    version=settings.SERVICE_VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

health_service = ServiceHealth(settings.SERVICE_NAME, settings.SERVICE_VERSION, engine)
app.include_router(health_service.create_health_router())

app.include_router(products_router)
app.include_router(customers_router)
app.include_router(orders_router)

@app.get("/")
async def root():
    return {
        "service": settings.SERVICE_NAME,
        "version": settings.SERVICE_VERSION,
        "status": "running",
        "docs": "/api/docs"
    }
