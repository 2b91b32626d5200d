"""
Compression backends used by the orchestrator.

LocalCompressor runs the codec in a worker thread; RemoteCompressor posts
the image to a TinyPix service and validates the JSON it gets back.
Both raise CompressionError subclasses on failure.
"""
import base64
import asyncio
import binascii
import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from tinypix.core.codec import compress_image
from tinypix.errors import CodecError, TransportError
from tinypix.models.compression import CompressResponse
from tinypix.models.item import CompressedPayload

logger = logging.getLogger(__name__)

COMPRESS_PATH = "/api/compress"


class Compressor:
    """Interface of a compression backend."""

    async def compress(self, data: bytes, mime_type: str, quality: int, filename: str) -> CompressedPayload:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class LocalCompressor(Compressor):
    """Compresses in-process with Pillow."""

    def __init__(self, png_engine: str = "pillow"):
        self.png_engine = png_engine

    async def compress(self, data: bytes, mime_type: str, quality: int, filename: str) -> CompressedPayload:
        result = await asyncio.to_thread(compress_image, data, mime_type, quality, self.png_engine)
        return CompressedPayload(data=result.data, mime_type=result.mime_type)


class RemoteCompressor(Compressor):
    """
    Compresses through the service's POST /api/compress endpoint.

    Usage:
        compressor = RemoteCompressor("http://localhost:8000")
        payload = await compressor.compress(data, "image/png", 80, "logo.png")
        await compressor.aclose()
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.http_client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        """Close HTTP client."""
        await self.http_client.aclose()

    async def compress(self, data: bytes, mime_type: str, quality: int, filename: str) -> CompressedPayload:
        try:
            response = await self.http_client.post(
                COMPRESS_PATH,
                files={"images": (filename, data, mime_type)},
                data={"quality": str(quality)},
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransportError(f"Compression request for {filename} timed out") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Server returned {e.response.status_code} for {filename}: {_error_detail(e.response)}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Compression server unreachable: {e}") from e

        return self._parse(response, filename)

    def _parse(self, response: httpx.Response, filename: str) -> CompressedPayload:
        try:
            body = CompressResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise TransportError(f"Malformed response for {filename}: {e}") from e

        if len(body.results) != 1:
            raise TransportError(f"Expected one result for {filename}, got {len(body.results)}")
        result = body.results[0]

        if result.status == "failed":
            # The server could not recompress this image
            raise CodecError(result.error or f"Server failed to compress {filename}")
        if result.compressed_data is None or result.mime_type is None:
            raise TransportError(f"Malformed response for {filename}: missing compressedData or mimeType")

        try:
            content = base64.b64decode(result.compressed_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise TransportError(f"Malformed compressedData for {filename}: {e}") from e
        if not content:
            raise TransportError(f"Server returned empty data for {filename}")
        if result.compressed_size is not None and result.compressed_size != len(content):
            raise TransportError(
                f"Size mismatch for {filename}: declared {result.compressed_size}, received {len(content)}"
            )
        return CompressedPayload(data=content, mime_type=result.mime_type)


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    return str(detail) if detail else (response.reason_phrase or "error")
