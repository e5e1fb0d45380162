"""
Main FastAPI application entry point
"""
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import logging

from verifylens.core.config import settings
from verifylens.api.v1.api import api_router
from verifylens.db.session import engine
from verifylens.db.base import Base
from verifylens.services.cooldown_service import (
    CooldownTracker,
    InMemoryCooldownStore,
    RedisCooldownStore,
)
from verifylens.services.verification_provider import MockVerificationProvider

import verifylens.models  # noqa: F401  (register tables)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def create_cooldown_store():
    """
    Build the cooldown store selected by COOLDOWN_BACKEND

    An unreachable Redis is logged but not fatal: cooldown checks fail open.
    """
    if settings.COOLDOWN_BACKEND == "memory":
        logger.info("Using in-memory cooldown store")
        return InMemoryCooldownStore()

    store = RedisCooldownStore(settings.REDIS_URL)
    try:
        await store.ping()
        logger.info("Cooldown store Redis connection established")
    except Exception as e:
        logger.warning(f"Cooldown store Redis connection failed: {e}. Cooldowns will fail open.")
    return store


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events
    """
    # Startup
    logger.info(f"Starting up {settings.PROJECT_NAME}...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1] if '@' in settings.DATABASE_URL else 'SQLite'}")

    # Create database tables automatically for development
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    cooldown_store = await create_cooldown_store()
    app.state.cooldown_tracker = CooldownTracker(cooldown_store)
    app.state.verification_provider = MockVerificationProvider()

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")
    await cooldown_store.close()
    await engine.dispose()


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Credit-metered user verification API",
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router, prefix=settings.API_V1_STR)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """
    Render structured error details ({error, message}) as the response body
    """
    content = exc.detail if isinstance(exc.detail, dict) else {"detail": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Report request validation failures as 400 with field-level details
    """
    details = {}
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
        details.setdefault(".".join(loc) or "body", []).append(error.get("msg", "Invalid value"))
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"error": "Validation failed", "details": details}),
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """
    Log unhandled errors; return details only in development
    """
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    if settings.ENVIRONMENT == "development":
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc),
                "type": type(exc).__name__,
            }
        )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": "Unexpected error"}
    )


@app.get("/health")
async def health_check():
    """
    Health check endpoint
    """
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "environment": settings.ENVIRONMENT
    }


@app.get("/")
async def root():
    """
    Root endpoint
    """
    return {
        "message": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": "/docs"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "verifylens.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
