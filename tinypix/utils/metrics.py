"""
Utilities for measuring recompression cost and image quality.
"""
import io
import time
import logging
import numpy as np
import psutil
from PIL import Image
from typing import Tuple, Optional, Dict, Union
from skimage.metrics import peak_signal_noise_ratio, structural_similarity

# Set up logging
logger = logging.getLogger(__name__)

# Identical images have an infinite PSNR; report this ceiling instead
PSNR_CEILING = 100.0


def get_cpu_mem(interval: Optional[float] = None) -> Dict[str, float]:
    """
    Get current CPU and memory usage.

    Args:
        interval: Seconds to sample CPU usage over (None compares with the last call)

    Returns:
        Dictionary with CPU and memory usage percentages
    """
    return {
        "cpu_usage": psutil.cpu_percent(interval=interval),
        "memory_usage": psutil.virtual_memory().percent
    }


def _to_array(img: Union[bytes, np.ndarray, Image.Image]) -> np.ndarray:
    if isinstance(img, np.ndarray):
        return img
    if isinstance(img, (bytes, bytearray)):
        img = Image.open(io.BytesIO(img))
    return np.array(img.convert("RGB"))


def calculate_image_metrics(
    original_img: Union[bytes, np.ndarray, Image.Image],
    compressed_img: Union[bytes, np.ndarray, Image.Image]
) -> Tuple[Optional[float], Optional[float]]:
    """
    Calculate PSNR and SSIM between an original and a recompressed image.

    Args:
        original_img: Original image (encoded bytes, PIL Image or numpy array)
        compressed_img: Recompressed image (encoded bytes, PIL Image or numpy array)

    Returns:
        Tuple of (PSNR, SSIM) values, rounded to 2 and 4 decimal places respectively
        Returns (None, None) if calculation fails
    """
    try:
        original = _to_array(original_img)
        compressed = _to_array(compressed_img)
    except Exception as e:
        logger.error(f"Failed to convert images to arrays: {e}")
        return None, None

    if original.shape != compressed.shape:
        logger.info(f"Image shapes don't match: original {original.shape} vs compressed {compressed.shape}")
        try:
            resized = Image.fromarray(compressed).resize((original.shape[1], original.shape[0]))
            compressed = np.array(resized)
        except Exception as e:
            logger.error(f"Failed to resize images to match: {e}")
            return None, None

    try:
        diff = original.astype(np.float32) - compressed.astype(np.float32)
        mse = float(np.mean(np.square(diff)))
        if mse < 1e-10:
            psnr = PSNR_CEILING
        else:
            psnr = float(peak_signal_noise_ratio(original, compressed, data_range=255))

        # SSIM needs at least a 7x7 window
        win_size = min(7, original.shape[0], original.shape[1])
        if win_size % 2 == 0:
            win_size -= 1
        if win_size < 3:
            return round(psnr, 2), None
        ssim = float(structural_similarity(
            original, compressed, data_range=255, channel_axis=2, win_size=win_size
        ))
        return round(psnr, 2), round(ssim, 4)
    except Exception as e:
        logger.error(f"Error calculating metrics: {e}")
        return None, None


class PerformanceTimer:
    """
    Context manager for measuring execution time.

    Example:
        with PerformanceTimer() as timer:
            # Code to measure
        execution_time = timer.execution_time
    """

    def __init__(self):
        self.start_time = None
        self.execution_time = 0

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.execution_time = time.perf_counter() - self.start_time
        return False  # Don't suppress exceptions
