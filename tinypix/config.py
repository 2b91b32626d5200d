"""
Runtime configuration for the TinyPix service and client.

Values come from TINYPIX_* environment variables and fall back to the
defaults declared on the Settings model.
"""
import os
import logging
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ENV_PREFIX = "TINYPIX_"


class Settings(BaseModel):
    """Service and client settings"""
    max_upload_mb: float = Field(50, gt=0, description="Maximum accepted upload size in MB")
    max_files_per_request: int = Field(10, ge=1, description="Maximum files in one batch request")
    jpeg_quality: int = Field(75, description="Default JPEG quality (clamped to 1-100)")
    png_quality: int = Field(80, description="Default PNG quality used by pngquant (clamped to 1-100)")
    png_engine: str = Field("pillow", pattern="^(pillow|pngquant)$", description="PNG encoder")
    artifact_ttl_seconds: int = Field(3600, ge=0, description="Lifetime of stored artifacts")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    server_url: str = Field("http://localhost:8000", description="Compression service base URL")
    request_timeout: float = Field(30.0, gt=0, description="Client request timeout in seconds")
    max_concurrency: int = Field(3, ge=1, description="Outstanding compression calls per client")
    debounce_seconds: float = Field(0.5, ge=0, description="Quiet period before a re-dispatch wave")
    preferences_path: Optional[str] = Field(None, description="Where client quality preferences are kept")

    @property
    def max_upload_bytes(self) -> int:
        return int(self.max_upload_mb * 1024 * 1024)

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)

        Returns:
            Validated Settings instance
        """
        environ = os.environ if environ is None else environ
        values = {}
        for name in cls.model_fields:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name == "cors_origins":
                values[name] = [origin.strip() for origin in raw.split(",") if origin.strip()]
            else:
                values[name] = raw
        if values:
            logger.debug(f"Settings overridden from environment: {sorted(values)}")
        return cls(**values)


@lru_cache()
def get_settings() -> Settings:
    """Return the process-wide settings."""
    return Settings.from_env()
