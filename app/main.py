import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded
from app.api.v1.endpoints import auth, health
from app.schemas.response import ApiResponse
from app.core.dependencies import limiter
from app.core.exceptions import AppException
from app.core.handler import (
    http_exception_handler,
    validation_exception_handler,
    app_exception_handler,
    rate_limit_exceeded_handler,
    general_exception_handler
)
from app.core.config import settings
from app.core.database import db_manager
from app.core.logging_config import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info(f"Starting up ({settings.ENVIRONMENT}, store={settings.AUTH_STORE})...")

    if settings.AUTH_STORE == "postgres":
        try:
            db_manager.init(
                database_url=settings.database_url_computed,
                echo=settings.DB_ECHO,
                pool_size=settings.DB_POOL_SIZE
            )
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    yield

    logger.info("Shutting down application...")
    await db_manager.close()


app = FastAPI(
    title=f"{settings.APP_NAME} Auth API",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.limiter = limiter

# Register global exception handlers (apply to all endpoints)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(Exception, general_exception_handler)


app.include_router(auth.router, prefix="/api/v1/auth", tags=["Authentication"])
app.include_router(health.router, prefix="/api/v1", tags=["Health"])


@app.get("/")
def root():
    """Root health check endpoint."""
    return ApiResponse(
        success=True,
        message="System operational",
        data={"status": "ok"}
    )
