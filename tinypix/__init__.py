"""
TinyPix Image Recompression

This package implements a FastAPI service that recompresses JPEG and PNG
images with Pillow, plus the client-side pipeline that drives it:
- Intake: validation, dimensions and preview handles
- Orchestrator: per-item status tracking and bounded dispatch
- Results: single downloads, ZIP archives and size formatting

Compressed artifacts served by the API are kept in TEMP_DIR.
"""
import tempfile

# Create a temporary directory for compressed artifacts
TEMP_DIR = tempfile.mkdtemp(prefix="tinypix-")

# Export the app instance
from tinypix.api import app

__all__ = ['app', 'TEMP_DIR']
