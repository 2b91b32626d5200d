"""
Image recompression endpoints.

POST /api/compress accepts either a single `file` (answered with the
compressed image itself) or a list of `images` (answered with JSON, one
entry per file). Per-file failures in a batch are reported in that file's
entry and never fail the other files.
"""
import os
import base64
import logging
import mimetypes
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse, Response

from tinypix.config import Settings, get_settings
from tinypix.core.codec import (
    JPEG_MIME,
    SUPPORTED_MIME_TYPES,
    CodecResult,
    clamp_quality,
    compress_image
)
from tinypix.core.results import compression_ratio, format_bytes
from tinypix.errors import CodecError, IntakeError
from tinypix.models.compression import ArtifactInfo, CompressedImage, CompressResponse
from tinypix.utils.file_handling import (
    artifact_path,
    content_disposition,
    original_name_from_artifact,
    safe_filename,
    store_artifact,
    sweep_expired
)
from tinypix.utils.metrics import calculate_image_metrics

# Set up logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Compression"])


def _quality_for(mime_type: str, quality: Optional[float], settings: Settings) -> int:
    default = settings.jpeg_quality if mime_type == JPEG_MIME else settings.png_quality
    return clamp_quality(quality, clamp_quality(default))


async def _run_codec(data: bytes, mime_type: str, quality: int, settings: Settings) -> CodecResult:
    return await run_in_threadpool(compress_image, data, mime_type, quality, settings.png_engine)


async def _compress_upload(
    upload: UploadFile,
    quality: Optional[float],
    settings: Settings,
    with_metrics: bool
) -> CompressedImage:
    """Compress one file of a batch, turning any per-file failure into a failed entry."""
    name = upload.filename or "image"
    data = await upload.read()
    await upload.close()
    mime_type = upload.content_type

    def failed(reason: str) -> CompressedImage:
        logger.warning(f"Failed to compress {name}: {reason}")
        return CompressedImage(original_name=name, original_size=len(data), status="failed", error=reason)

    if mime_type not in SUPPORTED_MIME_TYPES:
        return failed("Only JPG and PNG files are supported")
    if len(data) > settings.max_upload_bytes:
        return failed(f"File is {format_bytes(len(data))}, the limit is {format_bytes(settings.max_upload_bytes)}")

    try:
        result = await _run_codec(data, mime_type, _quality_for(mime_type, quality, settings), settings)
    except (CodecError, IntakeError) as e:
        return failed(str(e))

    filename = store_artifact(result.data, name)

    psnr = ssim = None
    if with_metrics:
        psnr, ssim = await run_in_threadpool(calculate_image_metrics, data, result.data)

    logger.info(f"Compressed {name}: {len(data)} -> {len(result.data)} bytes")
    return CompressedImage(
        original_name=name,
        original_size=len(data),
        status="success",
        compressed_size=len(result.data),
        compression_ratio=compression_ratio(len(data), len(result.data)),
        compressed_data=base64.b64encode(result.data).decode("ascii"),
        mime_type=result.mime_type,
        download_url=f"/api/download/{filename}",
        width=result.width,
        height=result.height,
        compression_time=result.compression_time,
        psnr=psnr,
        ssim=ssim,
    )


async def _compress_single(upload: UploadFile, quality: Optional[float], settings: Settings) -> Response:
    name = safe_filename(upload.filename)
    data = await upload.read()
    await upload.close()
    mime_type = upload.content_type

    if mime_type not in SUPPORTED_MIME_TYPES:
        raise HTTPException(status_code=415, detail="Only JPG and PNG files are supported")
    if len(data) > settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"File is {format_bytes(len(data))}, the limit is {format_bytes(settings.max_upload_bytes)}"
        )

    try:
        result = await _run_codec(data, mime_type, _quality_for(mime_type, quality, settings), settings)
    except (CodecError, IntakeError) as e:
        logger.warning(f"Failed to compress {name}: {e}")
        raise HTTPException(status_code=422, detail=f"Compression failed: {e}")

    ratio = compression_ratio(len(data), len(result.data))
    logger.info(f"Compressed {name}: {len(data)} -> {len(result.data)} bytes ({ratio}%)")
    return Response(
        content=result.data,
        media_type=result.mime_type,
        headers={
            "Content-Disposition": content_disposition(name),
            "X-Original-Size": str(len(data)),
            "X-Compressed-Size": str(len(result.data)),
            "X-Compression-Ratio": str(ratio),
        }
    )


@router.post("/compress")
async def compress(
    file: Optional[UploadFile] = File(None),
    images: Optional[List[UploadFile]] = File(None),
    quality: Optional[float] = Form(None, description="Quality 1-100, out of range values are clamped"),
    metrics: bool = Form(False, description="Compute PSNR/SSIM for each compressed image"),
    settings: Settings = Depends(get_settings)
):
    """
    Recompress JPEG and PNG images.

    - **file**: a single image; the response body is the compressed image
    - **images**: one or more images; the response is JSON with one entry per image
    - **quality**: JPEG quality (and pngquant quality for PNG), clamped to 1-100
    - **metrics**: compute PSNR and SSIM against the original
    """
    if file is not None and images:
        raise HTTPException(status_code=400, detail="Send either 'file' or 'images', not both")
    if file is not None:
        return await _compress_single(file, quality, settings)
    if not images:
        raise HTTPException(status_code=400, detail="No files provided")
    if len(images) > settings.max_files_per_request:
        raise HTTPException(
            status_code=400,
            detail=f"At most {settings.max_files_per_request} files can be compressed per request"
        )

    sweep_expired(settings.artifact_ttl_seconds)

    results = []
    for upload in images:
        results.append(await _compress_upload(upload, quality, settings, metrics))

    succeeded = sum(1 for result in results if result.status == "success")
    return CompressResponse(
        success=succeeded > 0,
        message=f"Processed {len(results)} images, {succeeded} compressed",
        results=results,
    ).model_dump(by_alias=True)


@router.get("/download/{filename}", response_class=FileResponse)
async def download(filename: str):
    """
    Download a previously compressed image by its artifact name.
    """
    path = artifact_path(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")

    media_type = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return FileResponse(path, media_type=media_type, filename=original_name_from_artifact(filename))


@router.get("/info/{filename}", response_model=ArtifactInfo)
async def artifact_info(filename: str):
    """
    Get size and creation time of a stored artifact.
    """
    path = artifact_path(filename)
    if path is None:
        raise HTTPException(status_code=404, detail="File not found")

    stats = os.stat(path)
    return ArtifactInfo(filename=filename, size=stats.st_size, created=stats.st_mtime)
