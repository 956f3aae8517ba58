"""
KYB Intake FastAPI app
======================
Organization onboarding (Know Your Business) for the disaster-relief
donation platform: seven-step intake, document upload and the claimant
dashboard.
"""
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from app.api.v1 import dashboard, kyb
from app.config import settings
from app.core.log_config import configure_logging
from app.db.base import Base
import app.db.schemas  # noqa: F401 - registers every ORM model on Base.metadata
from app.db.session import engine
from app.middleware import LoggingMiddleware

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── startup ─────────────────────────────────────────────────────
    configure_logging(settings.LOG_LEVEL)
    logger.info(f"KYB API starting (environment: {settings.ENVIRONMENT})")

    # development creates tables directly; other environments use alembic
    if settings.ENVIRONMENT == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("DB tables ready")

    yield

    # ── shutdown ────────────────────────────────────────────────────
    await engine.dispose()
    logger.info("KYB API stopped")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description=(
        "KYB onboarding API\n\n"
        "## Steps\n"
        "1. Basic Information\n"
        "2. Contact & Address\n"
        "3. Business Details\n"
        "4. Banking Information\n"
        "5. Ultimate Beneficial Owners\n"
        "6. Documents Upload\n"
        "7. Review & Submit\n"
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
)

# ── Middleware, outermost first ─────────────────────────────────────

app.add_middleware(GZipMiddleware, minimum_size=1024)

# request logging + correlation ID
app.add_middleware(LoggingMiddleware)

# CORS (development: any origin, otherwise CORS_ALLOWED_ORIGINS)
if settings.ENVIRONMENT == "development":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
else:
    allowed_origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",") if o.strip()]
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
        )

# API routers
app.include_router(
    kyb.router,
    prefix=f"{settings.API_V1_PREFIX}/kyb",
    tags=["KYB onboarding"],
)
app.include_router(
    dashboard.router,
    prefix=f"{settings.API_V1_PREFIX}/dashboard",
    tags=["Dashboard"],
)


@app.get("/health", tags=["System"])
async def health():
    return {"status": "ok", "service": "kyb-api", "version": API_VERSION}


# ── Prometheus metrics (/metrics), enabled with ENABLE_METRICS=true ────────
Instrumentator(
    should_group_status_codes=True,
    should_ignore_untemplated=True,
    should_respect_env_var=True,
    env_var_name="ENABLE_METRICS",
    excluded_handlers=["/health", "/metrics"],
).instrument(app).expose(app, include_in_schema=False, tags=["System"])
