"""
Utility functions for the TinyPix service.
"""
from tinypix.utils.metrics import (
    get_cpu_mem,
    calculate_image_metrics,
    PerformanceTimer
)

from tinypix.utils.file_handling import (
    get_temp_filepath,
    safe_filename,
    content_disposition,
    store_artifact,
    artifact_path,
    original_name_from_artifact,
    sweep_expired
)

__all__ = [
    # Metrics utilities
    'get_cpu_mem',
    'calculate_image_metrics',
    'PerformanceTimer',

    # File handling utilities
    'get_temp_filepath',
    'safe_filename',
    'content_disposition',
    'store_artifact',
    'artifact_path',
    'original_name_from_artifact',
    'sweep_expired'
]
