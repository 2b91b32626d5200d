"""
Image intake: validation, metadata extraction and item creation.

Only candidates with a supported type, an acceptable size and a readable
header become Items; everything else is reported as a Rejection.
"""
import os
import uuid
import logging
import mimetypes
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from tinypix.core.codec import SUPPORTED_MIME_TYPES, read_dimensions, make_thumbnail
from tinypix.core.handles import BlobHandle, PreviewRegistry
from tinypix.core.results import format_bytes
from tinypix.errors import (
    CodecError,
    FileTooLargeError,
    ImageDecodeError,
    IntakeError,
    UnsupportedMediaTypeError
)
from tinypix.models.item import Item

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_SIZE = 256

_EXTENSION_TYPES = {".jpg": "image/jpeg", ".jpeg": "image/jpeg", ".png": "image/png"}


@dataclass
class Candidate:
    """A file offered for intake."""
    name: str
    data: bytes
    mime_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path) -> "Candidate":
        path = os.fspath(path)
        ext = os.path.splitext(path)[1].lower()
        mime_type = _EXTENSION_TYPES.get(ext) or mimetypes.guess_type(path)[0]
        with open(path, "rb") as f:
            data = f.read()
        return cls(name=os.path.basename(path), data=data, mime_type=mime_type)


@dataclass
class Rejection:
    name: str
    code: str
    reason: str


@dataclass
class IntakeReport:
    items: List[Item] = field(default_factory=list)
    rejected: List[Rejection] = field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.items)

    @property
    def rejected_count(self) -> int:
        return len(self.rejected)


class ImageIntake:
    """
    Turns candidate files into pending Items.

    Usage:
        intake = ImageIntake(previews, max_bytes=10 * 1024 * 1024)
        report = intake.accept(candidates)
    """

    def __init__(
        self,
        previews: PreviewRegistry,
        max_bytes: Optional[int] = None,
        preview_size: int = DEFAULT_PREVIEW_SIZE
    ):
        self.previews = previews
        self.max_bytes = max_bytes
        self.preview_size = preview_size

    def validate(self, candidate: Candidate) -> None:
        """
        Check type and size of a candidate.

        Raises:
            UnsupportedMediaTypeError: If the type is not JPEG or PNG
            FileTooLargeError: If the candidate exceeds max_bytes
        """
        if candidate.mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedMediaTypeError(
                f"{candidate.name}: unsupported type {candidate.mime_type or 'unknown'}, only JPG and PNG are accepted"
            )
        if self.max_bytes is not None and candidate.size > self.max_bytes:
            raise FileTooLargeError(
                f"{candidate.name}: {format_bytes(candidate.size)} exceeds the {format_bytes(self.max_bytes)} limit"
            )

    def _create_item(self, candidate: Candidate) -> Item:
        try:
            width, height = read_dimensions(candidate.data)
            thumbnail = make_thumbnail(candidate.data, self.preview_size)
        except CodecError as e:
            raise ImageDecodeError(f"{candidate.name}: {e}") from e

        preview = self.previews.create(thumbnail)
        return Item(
            id=uuid.uuid4().hex,
            source=BlobHandle(candidate.name, candidate.data, candidate.mime_type),
            preview=preview,
            width=width,
            height=height,
            mime_type=candidate.mime_type,
            original_bytes=candidate.size,
        )

    def accept(self, candidates: Iterable[Candidate]) -> IntakeReport:
        """
        Validate candidates and create an Item for each accepted one.

        Args:
            candidates: Files offered by the user

        Returns:
            IntakeReport with the new pending items and the rejections
        """
        report = IntakeReport()
        for candidate in candidates:
            try:
                self.validate(candidate)
                item = self._create_item(candidate)
            except IntakeError as e:
                logger.info(f"Rejected {candidate.name}: {e}")
                report.rejected.append(Rejection(candidate.name, e.code, str(e)))
                continue
            report.items.append(item)

        logger.info(f"Intake accepted {report.accepted_count} file(s), rejected {report.rejected_count}")
        return report
