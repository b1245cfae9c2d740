"""
AdherenceHub Backend
Main FastAPI application for medication adherence, refills and notifications
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from datetime import datetime

# Configuration and database
from config import settings, reminder_config
from database import init_db, DatabaseHealthCheck
from exceptions import AdherenceHubError, DependencyError, NotFoundError, ValidationError
from api import include_routers

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


# ==================== LIFESPAN ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup and shutdown"""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENV}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.APP_NAME}")


# ==================== APP INITIALIZATION ====================

app = FastAPI(
    title=settings.APP_NAME,
    description="""
    ## AdherenceHub API

    Medication adherence and reminders for a telehealth platform.

    ### Features
    - **Schedules**: Recurring medication regimens per patient
    - **Adherence**: Taken/skipped dose records, upcoming doses, adherence rates
    - **Refills**: Refill reminder cycles
    - **Notifications**: In-app notification center with unread tracking
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Attach modular API routers (prefix /api/v1)
include_routers(app, prefix=settings.API_PREFIX)


# ==================== EXCEPTION HANDLERS ====================

def _error_response(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.now().isoformat(),
            **extra
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    return _error_response(exc.status_code, exc.detail)


@app.exception_handler(ValidationError)
async def validation_exception_handler(request, exc: ValidationError):
    return _error_response(422, exc.message, code=exc.code, details=exc.details)


@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request, exc: NotFoundError):
    return _error_response(404, exc.message, code=exc.code, details=exc.details)


@app.exception_handler(DependencyError)
async def dependency_exception_handler(request, exc: DependencyError):
    logger.error(f"Dependency failure: {exc.message}")
    return _error_response(503, exc.message, code=exc.code, details=exc.details)


@app.exception_handler(AdherenceHubError)
async def domain_exception_handler(request, exc: AdherenceHubError):
    return _error_response(400, exc.message, code=exc.code, details=exc.details)


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    logger.error(f"Unexpected error: {exc}", exc_info=True)
    return _error_response(
        500,
        "An unexpected error occurred" if not settings.DEBUG else str(exc)
    )


# ==================== HEALTH ENDPOINTS ====================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint - basic health check"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """Detailed health check endpoint"""
    db_connected = DatabaseHealthCheck.is_connected()

    return {
        "status": "healthy" if db_connected else "degraded",
        "timestamp": datetime.now().isoformat(),
        "checks": {
            "database": {
                "status": "up" if db_connected else "down",
                "type": "sqlite" if "sqlite" in settings.DATABASE_URL else "postgresql"
            }
        },
        "config": {
            "adherence_lookback_days": reminder_config.ADHERENCE_LOOKBACK_DAYS,
            "refill_window_days": reminder_config.REFILL_WINDOW_DAYS,
            "notification_page_size": reminder_config.NOTIFICATION_PAGE_SIZE
        },
        "version": settings.APP_VERSION,
        "environment": settings.ENV
    }


# ==================== MAIN ====================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower()
    )
