"""
Image recompression capability.

Wraps Pillow (and optionally the pngquant binary) behind a single
function: compress_image(bytes, mime_type, quality) -> CodecResult.
Only JPEG and PNG are accepted; everything else fails explicitly.
"""
import io
import math
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

from tinypix.errors import CodecError, UnsupportedMediaTypeError
from tinypix.utils.metrics import PerformanceTimer

# Set up logging
logger = logging.getLogger(__name__)

# Codec constants
JPEG_MIME = "image/jpeg"
PNG_MIME = "image/png"
SUPPORTED_MIME_TYPES = frozenset({JPEG_MIME, PNG_MIME})
MIN_QUALITY = 1
MAX_QUALITY = 100
DEFAULT_JPEG_QUALITY = 75
DEFAULT_PNG_QUALITY = 80
PNG_ENGINES = ("pillow", "pngquant")

_FORMAT_TO_MIME = {"JPEG": JPEG_MIME, "MPO": JPEG_MIME, "PNG": PNG_MIME}
_DECODE_ERRORS = (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError)


@dataclass
class CodecResult:
    data: bytes
    mime_type: str
    width: int
    height: int
    compression_time: float


def default_quality(mime_type: str) -> int:
    return DEFAULT_PNG_QUALITY if mime_type == PNG_MIME else DEFAULT_JPEG_QUALITY


def clamp_quality(value, default: int = DEFAULT_JPEG_QUALITY) -> int:
    """
    Clamp a requested quality into the supported range.

    Args:
        value: Requested quality (None or NaN selects the default)
        default: Quality used when value is None or NaN

    Returns:
        Integer quality between MIN_QUALITY and MAX_QUALITY
    """
    value = default if value is None else float(value)
    if math.isnan(value):
        value = default
    # Clamp before rounding so infinities map to the bounds
    return int(round(max(MIN_QUALITY, min(MAX_QUALITY, value))))


def _open_image(data: bytes) -> Image.Image:
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except _DECODE_ERRORS as e:
        raise CodecError(f"Could not decode image: {e}") from e
    return img


def read_dimensions(data: bytes) -> Tuple[int, int]:
    """Return (width, height) from the image header without a full decode."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except _DECODE_ERRORS as e:
        raise CodecError(f"Could not read image dimensions: {e}") from e


def make_thumbnail(data: bytes, max_side: int = 256) -> bytes:
    """Render a PNG thumbnail whose longest side is at most max_side pixels."""
    img = ImageOps.exif_transpose(_open_image(data))
    img.thumbnail((max_side, max_side))
    if img.mode not in ("RGB", "RGBA", "L", "LA"):
        img = img.convert("RGBA")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    if img.mode in ("RGBA", "LA", "P"):
        # JPEG has no alpha channel; flatten onto white
        rgba = img.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.split()[-1])
        img = background
    elif img.mode not in ("RGB", "L", "CMYK"):
        img = img.convert("RGB")

    buffer = io.BytesIO()
    img.save(
        buffer,
        format="JPEG",
        quality=quality,
        optimize=True,
        progressive=True,
        subsampling=2,  # 4:2:0
    )
    return buffer.getvalue()


def _encode_png(img: Image.Image) -> bytes:
    buffer = io.BytesIO()
    img.save(buffer, format="PNG", optimize=True, compress_level=9)
    return buffer.getvalue()


def _pngquant(png_data: bytes, quality: int) -> bytes:
    try:
        result = subprocess.run(
            ["pngquant", "--force", "--quality", f"{max(0, quality - 10)}-{quality}", "-"],
            input=png_data, check=True, capture_output=True
        )
    except subprocess.CalledProcessError as e:
        raise CodecError(f"pngquant compression failed: {e.stderr.decode('utf-8', 'replace').strip()}")
    except FileNotFoundError:
        raise CodecError("pngquant not installed. Install it or use the pillow PNG engine.")
    return result.stdout


def compress_image(
    data: bytes,
    mime_type: str,
    quality: Optional[int] = None,
    png_engine: str = "pillow"
) -> CodecResult:
    """
    Recompress a JPEG or PNG image.

    Args:
        data: Raw image bytes
        mime_type: Declared content type (image/jpeg or image/png)
        quality: Requested quality, clamped to 1-100
        png_engine: "pillow" (lossless) or "pngquant" (palette, lossy)

    Returns:
        CodecResult with the re-encoded bytes and their content type

    Raises:
        UnsupportedMediaTypeError: If mime_type is not JPEG or PNG
        CodecError: If decoding or encoding fails
    """
    if mime_type not in SUPPORTED_MIME_TYPES:
        raise UnsupportedMediaTypeError(f"Unsupported image type: {mime_type or 'unknown'}")
    if png_engine not in PNG_ENGINES:
        raise ValueError(f"Unknown PNG engine: {png_engine}")

    quality = clamp_quality(quality, default_quality(mime_type))
    img = _open_image(data)

    detected = _FORMAT_TO_MIME.get(img.format)
    if detected is None:
        raise CodecError(f"Image content is {img.format or 'unknown'}, not JPEG or PNG")
    if detected != mime_type:
        logger.warning(f"Declared type {mime_type} but content is {detected}; encoding as {detected}")

    img = ImageOps.exif_transpose(img)

    timer = PerformanceTimer()
    with timer:
        try:
            if detected == JPEG_MIME:
                output = _encode_jpeg(img, quality)
            else:
                output = _encode_png(img)
                if png_engine == "pngquant":
                    output = _pngquant(output, quality)
        except CodecError:
            raise
        except (OSError, ValueError) as e:
            raise CodecError(f"Could not encode image: {e}") from e

    if not output:
        raise CodecError("Encoder produced no data")

    logger.debug(
        f"Recompressed {detected} {img.width}x{img.height} at quality {quality}: "
        f"{len(data)} -> {len(output)} bytes in {timer.execution_time:.4f}s"
    )
    return CodecResult(
        data=output,
        mime_type=detected,
        width=img.width,
        height=img.height,
        compression_time=round(timer.execution_time, 4)
    )
