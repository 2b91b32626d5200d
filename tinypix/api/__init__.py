"""
API module for the TinyPix recompression service.
"""
import io
import os
import time
import shutil
import logging
import platform
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from tinypix import TEMP_DIR
from tinypix.config import get_settings
from tinypix.api.compress import router as compress_router
from tinypix.models.compression import HealthResponse

# Set up logging
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Remove stored artifacts when the application shuts down."""
    yield
    logger.info(f"Cleaning up temporary directory: {TEMP_DIR}")
    shutil.rmtree(TEMP_DIR, ignore_errors=True)


# Create FastAPI app
app = FastAPI(
    title="TinyPix Image Compression API",
    description="""
    API for recompressing JPEG and PNG images with Pillow.

    Upload one image to get the smaller image back, or several to get a JSON
    summary with base64 data and download links.
    """,
    version=VERSION,
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(compress_router)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unexpected errors."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred", "error": str(exc)}
    )


# Health check endpoints
@app.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Check if the API is running."""
    return HealthResponse(status="OK", message="Image compression server is running", version=VERSION)


@app.get("/api/health/detailed")
async def detailed_health_check():
    """
    Provides detailed health information including system metrics and codec status.
    """
    import psutil
    from PIL import Image, features
    from tinypix.core.codec import compress_image, JPEG_MIME, PNG_MIME
    from tinypix.errors import CompressionError
    from tinypix.utils.metrics import get_cpu_mem

    # System info
    system_info = {
        **get_cpu_mem(interval=0.1),
        "disk_usage": psutil.disk_usage('/').percent,
        "python_version": platform.python_version(),
        "platform": platform.platform()
    }

    # Round-trip a tiny image through each encoder
    codec_status = {}
    sample = Image.new("RGB", (16, 16), (200, 120, 40))
    for mime_type, fmt in ((JPEG_MIME, "JPEG"), (PNG_MIME, "PNG")):
        buffer = io.BytesIO()
        sample.save(buffer, format=fmt)
        try:
            result = compress_image(buffer.getvalue(), mime_type, png_engine=get_settings().png_engine)
            codec_status[fmt.lower()] = {"status": "ok", "output_size": len(result.data)}
        except CompressionError as e:
            codec_status[fmt.lower()] = {"status": "error", "message": str(e)}
    codec_status["libjpeg_turbo"] = bool(features.check_feature("libjpeg_turbo"))

    # Check pngquant
    pngquant_path = shutil.which("pngquant")
    codec_status["pngquant"] = {"status": "ok" if pngquant_path else "missing", "path": pngquant_path}

    # Check temp directory
    temp_status = {"exists": os.path.isdir(TEMP_DIR)}
    if temp_status["exists"]:
        temp_status["writable"] = os.access(TEMP_DIR, os.W_OK)
        temp_status["artifacts"] = len(os.listdir(TEMP_DIR))
        try:
            temp_status["free_space_mb"] = shutil.disk_usage(TEMP_DIR).free / (1024 * 1024)
        except OSError as e:
            temp_status["space_error"] = str(e)

    return {
        "status": "OK",
        "version": VERSION,
        "system": system_info,
        "codec": codec_status,
        "temp_directory": temp_status,
        "timestamp": time.time()
    }

