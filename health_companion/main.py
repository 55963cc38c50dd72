"""
Health Companion - FastAPI Application

Medical report locker and Hindi symptom assistant. Authentication and
records live in Firebase, report files in Cloudinary, and answers come
from Gemini.

IMPORTANT: The assistant is NOT a doctor.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from health_companion.config import settings
from health_companion.api.routes import router
from health_companion.api.middleware import (
    RequestLoggingMiddleware,
    ErrorHandlingMiddleware,
    register_error_handlers,
    setup_rate_limiting
)
from health_companion.services.speech import prune_clips
from health_companion.utils.logger import get_logger, configure_logging

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    configure_logging(
        log_level=settings.log_level,
        json_format=not settings.debug
    )

    logger.info(
        "Starting Health Companion",
        version=settings.app_version,
        debug=settings.debug,
        speech_backend=settings.speech_backend
    )

    # Ensure the speech clip directory exists and drop expired clips
    prune_clips(settings.audio_path, settings.speech_clip_ttl_seconds)

    logger.info("Application ready")

    yield

    logger.info("Shutting down Health Companion")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title=settings.app_name,
        description="""
## Health Companion - Medical Report Locker & Symptom Assistant

Upload medical reports and ask about symptoms in Hindi. Answers use your
most recent reports and conversation as context.

### ⚠️ Important Disclaimer

**The assistant is NOT a doctor.** Its answers are general information
and always recommend consulting a healthcare professional.

### API Endpoints

| Endpoint | Method | Description |
|----------|--------|-------------|
| `/auth/signin` | POST | Start a session from a provider ID token |
| `/auth/signout` | POST | Revoke the session |
| `/auth/session` | GET | Resolve the current session |
| `/api/upload` | POST | Store a file, get its public URL |
| `/reports` | POST / GET | Upload and record a report / list recent reports |
| `/reports/stream` | GET | Live report feed (SSE) |
| `/conversation` | POST | Ask about a symptom |
| `/conversation/history` | GET | Recent conversation |
| `/conversation/stream` | GET | Live conversation feed (SSE) |
| `/speech/{clip_id}` | GET | Spoken reply (MP3) |
| `/health` | GET | Health check |
        """,
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc" if settings.debug else None,
    )

    # Setup middleware (order matters - first added is outermost)

    # Error handling (outermost)
    app.add_middleware(ErrorHandlingMiddleware)

    # Request logging
    app.add_middleware(RequestLoggingMiddleware)

    # CORS - the browser client may be served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    setup_rate_limiting(app)

    app.include_router(router)

    return app


# Create app instance
app = create_app()


# Run with: uvicorn health_companion.main:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "health_companion.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
