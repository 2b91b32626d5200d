"""
Persisted client quality preferences.

Stored as a small JSON file so the last chosen JPEG/PNG quality survives
between runs. Unreadable files and out-of-range values fall back to the
defaults.
"""
import os
import json
import logging
from dataclasses import dataclass, asdict
from typing import Optional

from tinypix.core.codec import DEFAULT_JPEG_QUALITY, DEFAULT_PNG_QUALITY, MAX_QUALITY, MIN_QUALITY

logger = logging.getLogger(__name__)


def default_preferences_path() -> str:
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, "tinypix", "preferences.json")


@dataclass
class Qualities:
    jpeg_quality: int = DEFAULT_JPEG_QUALITY
    png_quality: int = DEFAULT_PNG_QUALITY


def _valid(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and MIN_QUALITY <= value <= MAX_QUALITY


class QualityPreferences:
    def __init__(self, path: Optional[str] = None):
        self.path = os.fspath(path) if path else default_preferences_path()

    def load(self) -> Qualities:
        defaults = Qualities()
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                stored = json.load(f)
        except FileNotFoundError:
            return defaults
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read preferences from {self.path}: {e}")
            return defaults
        if not isinstance(stored, dict):
            logger.warning(f"Ignoring malformed preferences in {self.path}")
            return defaults

        values = {}
        for name, default in asdict(defaults).items():
            value = stored.get(name, default)
            if _valid(value):
                values[name] = value
            else:
                logger.warning(f"Ignoring stored {name}={value!r}, expected {MIN_QUALITY}-{MAX_QUALITY}")
        return Qualities(**values)

    def save(self, qualities: Qualities) -> None:
        directory = os.path.dirname(self.path)
        try:
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(asdict(qualities), f, indent=2)
        except OSError as e:
            logger.warning(f"Could not save preferences to {self.path}: {e}")
