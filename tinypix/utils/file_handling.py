"""
Utilities for artifact storage and temporary file management.
"""
import os
import re
import time
import uuid
import logging
from typing import Optional
from urllib.parse import quote

from tinypix import TEMP_DIR

# Set up logging
logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "compressed-"
_UNSAFE_CHARS = re.compile(r'[\r\n"\\<>/:*?|\x00]')
_ARTIFACT_PATTERN = re.compile(rf"^{ARTIFACT_PREFIX}[0-9a-f]{{32}}-(?P<name>.+)$")
_NON_ASCII = re.compile(r"[^\x20-\x7e]")


def get_temp_filepath(file_id: Optional[str] = None, suffix: str = "") -> str:
    """
    Generate a path for a temporary file.

    Args:
        file_id: Optional file ID to use (generates a new UUID if not provided)
        suffix: Optional file suffix/extension

    Returns:
        Absolute path to a temporary file
    """
    if file_id is None:
        file_id = uuid.uuid4().hex

    os.makedirs(TEMP_DIR, exist_ok=True)
    return os.path.join(TEMP_DIR, f"{file_id}{suffix}")


def safe_filename(name: Optional[str], default: str = "image") -> str:
    """Reduce an uploaded file name to a bare name safe for headers and paths."""
    base = os.path.basename((name or "").replace("\\", "/"))
    base = _UNSAFE_CHARS.sub("_", base).strip()
    if base in ("", ".", ".."):
        return default
    return base


def content_disposition(name: str, disposition: str = "inline") -> str:
    """
    Build a Content-Disposition header value for a sanitized file name.

    Non-ASCII names get an ASCII fallback plus an RFC 5987 filename* parameter,
    since header values are sent as latin-1.
    """
    fallback = _NON_ASCII.sub("_", name)
    if fallback == name:
        return f'{disposition}; filename="{name}"'
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


def is_plain_filename(name: str) -> bool:
    """True when name has no directory part and is not a relative reference."""
    return bool(name) and name not in (".", "..") and os.path.basename(name) == name and "\\" not in name


def artifact_name(original_name: str) -> str:
    return f"{ARTIFACT_PREFIX}{uuid.uuid4().hex}-{safe_filename(original_name)}"


def original_name_from_artifact(filename: str) -> str:
    """Recover the uploaded file name from a stored artifact name."""
    match = _ARTIFACT_PATTERN.match(filename)
    return match.group("name") if match else filename


def store_artifact(data: bytes, original_name: str) -> str:
    """
    Write a compressed artifact into the temp directory.

    Args:
        data: Compressed image bytes
        original_name: File name as uploaded

    Returns:
        The stored artifact's file name
    """
    filename = artifact_name(original_name)
    with open(get_temp_filepath(filename), "wb") as f:
        f.write(data)
    logger.debug(f"Stored artifact {filename} ({len(data)} bytes)")
    return filename


def artifact_path(filename: str) -> Optional[str]:
    """Absolute path of a stored artifact, or None if it does not exist."""
    if not is_plain_filename(filename):
        return None
    path = os.path.join(TEMP_DIR, filename)
    return path if os.path.isfile(path) else None


def sweep_expired(ttl_seconds: int, now: Optional[float] = None) -> int:
    """
    Delete stored artifacts older than ttl_seconds.

    Args:
        ttl_seconds: Maximum artifact age
        now: Reference time (defaults to the current time)

    Returns:
        Number of files removed
    """
    if not os.path.isdir(TEMP_DIR):
        return 0
    now = time.time() if now is None else now
    removed = 0
    for entry in os.scandir(TEMP_DIR):
        if not entry.is_file() or not entry.name.startswith(ARTIFACT_PREFIX):
            continue
        try:
            if now - entry.stat().st_mtime > ttl_seconds:
                os.remove(entry.path)
                removed += 1
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.error(f"Failed to clean up artifact {entry.path}: {e}")
    if removed:
        logger.info(f"Removed {removed} expired artifacts")
    return removed
