"""
ReelSmith - Prompt to Short Video Generator
Main FastAPI Application Entry Point
"""

from pathlib import Path
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import JSONResponse

from .config import get_settings
from .utils.logger import setup_logger
from .utils.exceptions import ReelSmithError, JobNotFoundError
from .routers import generate_router, events_router
from .services.job_runner import get_job_runner
from .services.toolchain import get_toolchain


# Set up logging
logger = setup_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings = get_settings()

    # Create required directories
    Path(settings.videos_dir).mkdir(parents=True, exist_ok=True)
    Path(settings.music_dir).mkdir(parents=True, exist_ok=True)

    runner = get_job_runner()
    runner.start()

    logger.info("=" * 60)
    logger.info("ReelSmith - Prompt to Short Video Generator")
    logger.info("=" * 60)
    logger.info(f"Videos directory: {settings.videos_dir}")
    logger.info(f"Music directory: {settings.music_dir}")
    logger.info(f"Script model: {settings.gemini_model}")
    logger.info(f"Image model: {settings.image_model}")

    if not get_toolchain().check_available():
        logger.warning("[!] FFmpeg unavailable; segment assembly will fail")

    # Check service configurations
    if settings.gemini_api_key:
        logger.info("[OK] Gemini AI configured")
    else:
        logger.warning("[!] Gemini API key not set")

    if settings.together_api_key:
        logger.info("[OK] Together AI configured")
    else:
        logger.warning("[!] Together AI API key not set")

    logger.info("=" * 60)
    logger.info("Server started successfully!")
    logger.info("API Docs: http://localhost:8000/docs")
    logger.info("=" * 60)

    yield

    # Cleanup on shutdown
    logger.info("Shutting down ReelSmith...")
    await runner.stop()


# Create FastAPI app
app = FastAPI(
    title="ReelSmith",
    description="Turn a short prompt into a narrated, subtitled short-form video",
    version=get_settings().app_version,
    lifespan=lifespan
)

# CORS middleware
settings = get_settings()
cors_origins = settings.cors_allowed_origins or ["http://localhost:8000", "http://127.0.0.1:8000"]
cors_allow_credentials = "*" not in cors_origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Global Exception Handlers
# ============================================================================

@app.exception_handler(ReelSmithError)
async def reelsmith_exception_handler(request: Request, exc: ReelSmithError):
    """Handle all ReelSmith custom exceptions"""
    logger.error(f"ReelSmithError [{exc.code}]: {exc.message}")
    if isinstance(exc, JobNotFoundError):
        status_code = 404
    else:
        status_code = 400 if exc.recoverable else 500
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(ValueError)
async def validation_exception_handler(request: Request, exc: ValueError):
    """Handle validation errors"""
    logger.warning(f"Validation error: {exc}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": str(exc),
            "recoverable": True,
            "recovery_hint": "Check your input parameters and try again."
        }
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle any unhandled exceptions"""
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again.",
            "recoverable": True,
            "recovery_hint": "If this persists, check the server logs for details."
        }
    )


# Include routers
app.include_router(generate_router)
app.include_router(events_router)

# Static file serving for finished videos
videos_path = Path(settings.videos_dir)
videos_path.mkdir(parents=True, exist_ok=True)
app.mount("/videos", StaticFiles(directory=str(videos_path)), name="videos")


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "app": "ReelSmith", "jobs": get_job_runner().stats()}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "reelsmith.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
