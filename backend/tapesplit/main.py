import os
import logging

# Configure logging before any other imports
debug_mode = os.getenv("DEBUG", "false").lower() == "true"
logging.basicConfig(
    level=logging.DEBUG if debug_mode else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    force=True,
)

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .api.routes import core, items
from .api.routes.core import get_app_version
from .app import get_app_state
from .core.config import get_settings
from .services.audio_service import FfmpegAudioBackend

logger = logging.getLogger(__name__)

# Get settings
settings = get_settings()


# noinspection PyUnusedLocal
@asynccontextmanager
async def lifespan(tapesplit_app: FastAPI):
    """Application lifespan context manager"""
    logger.info("Starting tapesplit")
    logger.info(f"Output directory: {os.path.abspath(settings.OUTPUT_DIR)}")

    if not FfmpegAudioBackend.from_settings(settings).is_available():
        logger.warning(f"{settings.FFMPEG_BIN}/{settings.FFPROBE_BIN} not found on PATH; processing will fail")

    get_app_state()
    logger.info("App state initialized")

    yield

    logger.info("Shutting down tapesplit")
    active = list(get_app_state().runs)
    if active:
        logger.warning(f"Shutting down with active runs: {', '.join(active)}")


app = FastAPI(
    title="tapesplit",
    description="Split two-sided tape recordings into numbered tracks",
    version=get_app_version(),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.include_router(core.router, prefix="/api", tags=["core"])
app.include_router(items.router, prefix="/api", tags=["items"])


@app.get("/api")
async def api_root():
    """API root endpoint"""
    return {
        "message": "tapesplit API",
        "version": get_app_version(),
        "status": "running",
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "presets": "/api/presets",
            "items": "/api/items/{identifier}",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        app_state = get_app_state()
        return {
            "status": "healthy",
            "active_runs": sorted(app_state.runs),
            "version": get_app_version(),
        }
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "error": str(e)},
        )


def run():
    import uvicorn

    uvicorn.run(
        "tapesplit.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="info",
    )


if __name__ == "__main__":
    run()
