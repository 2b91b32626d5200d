"""
The in-memory unit of work tracked by the client pipeline.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tinypix.core.handles import BlobHandle, PreviewHandle


class ItemStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    DONE = "done"
    ERROR = "error"


@dataclass
class CompressedPayload:
    """What a compressor hands back for one item."""
    data: bytes
    mime_type: str


@dataclass(eq=False)
class Item:
    """
    One user-submitted image.

    compressed / compressed_bytes are set only while status is DONE and
    error_message only while status is ERROR. Only the orchestrator
    mutates an item after intake.
    """
    id: str
    source: BlobHandle
    preview: PreviewHandle
    width: int
    height: int
    mime_type: str
    original_bytes: int
    status: ItemStatus = ItemStatus.PENDING
    compressed: Optional[BlobHandle] = None
    compressed_bytes: Optional[int] = None
    error_message: Optional[str] = None
    quality: Optional[int] = None

    @property
    def name(self) -> str:
        return self.source.name

    @property
    def is_done(self) -> bool:
        return self.status is ItemStatus.DONE
