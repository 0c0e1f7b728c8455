import json
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import db_models  # noqa: F401  registers every table on Base.metadata
from config import settings
from db import dispose_engine
from core.errors import register_exception_handlers
from core.logging import setup_logging
from core.middleware import LoggingMiddleware
from api.auth.views import router as auth_router
from api.cycles.views import router as cycles_router
from api.exports.views import router as exports_router
from api.exports.views import download_router
from api.payment_batches.views import router as payment_batches_router
from api.payments.views import router as payments_router
from api.preparation.views import router as preparation_router
from api.security.views import router as security_router
from api.submissions.views import router as submissions_router


setup_logging()
logger = structlog.get_logger(__name__)


def get_cors_origins() -> list[str]:
    """CORS origins from settings, as a JSON array or a comma-separated list."""
    cors_env = settings.CORS_ORIGINS

    if cors_env:
        try:
            origins = json.loads(cors_env)
            if isinstance(origins, list):
                return origins
        except json.JSONDecodeError:
            return [o.strip() for o in cors_env.split(",") if o.strip()]

    # Local frontends
    return [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting", environment=settings.APP_ENV, debug=settings.DEBUG)
    yield
    await dispose_engine()
    logger.info("Application stopped")


app = FastAPI(
    title="Verification & Payments API",
    description="Weekly transaction verification cycles, business invoicing and customer reward payouts",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Authentication endpoints
app.include_router(auth_router, prefix="/api")

# Admin workflow endpoints
app.include_router(cycles_router, prefix="/api")
app.include_router(preparation_router, prefix="/api")
app.include_router(exports_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(payment_batches_router, prefix="/api")
app.include_router(security_router, prefix="/api")

# Business portal and signed downloads
app.include_router(submissions_router, prefix="/api")
app.include_router(download_router, prefix="/api")


@app.get("/health", tags=["system"])
async def health_check():
    """Health check endpoint for monitoring."""
    return {"status": "healthy"}
