"""
Result aggregation: size formatting, ratios, single downloads and ZIP archives.
"""
import io
import os
import logging
import zipfile
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from tinypix.errors import ArchiveError, ItemNotReadyError
from tinypix.models.item import Item, ItemStatus

# Set up logging
logger = logging.getLogger(__name__)

ARCHIVE_MIME = "application/zip"
DEFAULT_ARCHIVE_NAME = "compressed_images.zip"

_UNITS = ("KB", "MB", "GB", "TB")


def format_bytes(num_bytes: int) -> str:
    """
    Render a byte count with binary units.

    Bytes are shown as an integer, KB with one decimal and larger units
    with two, e.g. 0 -> "0 B", 1536 -> "1.5 KB", 1048576 -> "1.00 MB".
    """
    if num_bytes < 1024:
        return f"{int(num_bytes)} B"
    value = float(num_bytes)
    for unit in _UNITS:
        value /= 1024
        decimals = 1 if unit == "KB" else 2
        # Pick the unit after rounding so 1048575 is "1.00 MB", not "1024.0 KB"
        if round(value, decimals) < 1024 or unit == _UNITS[-1]:
            break
    return f"{value:.{decimals}f} {unit}"


def compression_ratio(original_size: int, compressed_size: int) -> float:
    """
    Signed space savings in percent.

    Negative values mean the recompressed image is larger than the original.
    """
    if original_size <= 0:
        return 0.0
    return round((original_size - compressed_size) / original_size * 100, 1)


def format_ratio(ratio: float) -> str:
    return f"{ratio:.1f}%"


@dataclass
class Download:
    filename: str
    content: bytes
    mime_type: str


def _with_suffix(name: str, suffix: Optional[str]) -> str:
    if not suffix:
        return name
    root, ext = os.path.splitext(name)
    return f"{root}{suffix}{ext}"


def prepare_download(item: Item, suffix: Optional[str] = None) -> Download:
    """
    Materialize an item's compressed content for saving.

    Args:
        item: A done item
        suffix: Optional text inserted before the file extension

    Raises:
        ItemNotReadyError: If the item has no compressed content
    """
    if item.status is not ItemStatus.DONE or item.compressed is None:
        raise ItemNotReadyError(f"{item.name} is {item.status.value}, nothing to download")
    return Download(
        filename=_with_suffix(item.name, suffix),
        content=item.compressed.data,
        mime_type=item.compressed.mime_type,
    )


def save_download(download: Download, directory) -> str:
    """Write a download into directory and return the written path."""
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(os.fspath(directory), download.filename)
    with open(path, "wb") as f:
        f.write(download.content)
    logger.info(f"Saved {download.filename} ({format_bytes(len(download.content))})")
    return path


def _unique_name(name: str, used: Dict[str, int]) -> str:
    if name not in used:
        used[name] = 1
        return name
    root, ext = os.path.splitext(name)
    count = used[name]
    while True:
        count += 1
        candidate = f"{root} ({count}){ext}"
        if candidate not in used:
            used[name] = count
            used[candidate] = 1
            return candidate


def build_archive(items: Iterable[Item], suffix: Optional[str] = None) -> Optional[bytes]:
    """
    Collect every done item into a ZIP archive.

    Entries are named after the original files; repeated names get a
    " (n)" counter. Items that are not done are skipped.

    Returns:
        ZIP bytes, or None when no item is done

    Raises:
        ArchiveError: If the archive cannot be generated
    """
    done = [item for item in items if item.status is ItemStatus.DONE and item.compressed is not None]
    if not done:
        logger.info("No compressed items to archive")
        return None

    used: Dict[str, int] = {}
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zip_file:
            for item in done:
                arcname = _unique_name(_with_suffix(item.name, suffix), used)
                # Image data is already compressed
                zip_file.writestr(arcname, item.compressed.data, compress_type=zipfile.ZIP_STORED)
    except Exception as e:
        logger.error(f"Failed to create ZIP archive: {e}")
        raise ArchiveError(f"Failed to create ZIP archive: {e}") from e

    logger.info(f"Archived {len(done)} item(s), {format_bytes(buffer.tell())}")
    return buffer.getvalue()


def write_archive(items: Iterable[Item], path, suffix: Optional[str] = None) -> Optional[str]:
    """
    Build an archive of done items and write it to path.

    Returns:
        The written path, or None when there was nothing to archive
    """
    archive = build_archive(items, suffix)
    if archive is None:
        return None
    path = os.fspath(path)
    try:
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "wb") as f:
            f.write(archive)
    except OSError as e:
        raise ArchiveError(f"Could not write archive to {path}: {e}") from e
    return path


@dataclass
class BatchSummary:
    total: int
    pending: int
    processing: int
    done: int
    failed: int
    original_bytes: int
    compressed_bytes: int

    @property
    def ratio(self) -> float:
        return compression_ratio(self.original_bytes, self.compressed_bytes)


def summarize(items: List[Item]) -> BatchSummary:
    """Count items per status and total the sizes of done items."""
    counts = {status: 0 for status in ItemStatus}
    original = compressed = 0
    for item in items:
        counts[item.status] += 1
        if item.status is ItemStatus.DONE:
            original += item.original_bytes
            compressed += item.compressed_bytes or 0
    return BatchSummary(
        total=len(items),
        pending=counts[ItemStatus.PENDING],
        processing=counts[ItemStatus.PROCESSING],
        done=counts[ItemStatus.DONE],
        failed=counts[ItemStatus.ERROR],
        original_bytes=original,
        compressed_bytes=compressed,
    )
