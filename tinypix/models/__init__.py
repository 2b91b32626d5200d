"""
Data models for the TinyPix service and client pipeline.

Pydantic models describe the JSON wire format; dataclasses describe the
items tracked in memory by the orchestrator.
"""
from tinypix.models.compression import (
    CompressedImage,
    CompressResponse,
    HealthResponse,
    ArtifactInfo
)

from tinypix.models.item import (
    Item,
    ItemStatus,
    CompressedPayload
)

__all__ = [
    # Wire models
    'CompressedImage',
    'CompressResponse',
    'HealthResponse',
    'ArtifactInfo',

    # In-memory models
    'Item',
    'ItemStatus',
    'CompressedPayload'
]
