"""
Shared pytest fixtures for the TinyPix tests.

Images are generated with Pillow so every test runs on real JPEG/PNG data
without fixture files on disk.
"""
import io
import asyncio

import numpy as np
import pytest
from PIL import Image

from tinypix.core.compressors import Compressor
from tinypix.core.handles import PreviewRegistry
from tinypix.core.intake import Candidate, ImageIntake
from tinypix.errors import TransportError
from tinypix.models.item import CompressedPayload


# ============================================
# Image factories
# ============================================

def _pixels(width, height, seed=0, alpha=False):
    rng = np.random.default_rng(seed)
    x = np.linspace(0, 255, width, dtype=np.float32)
    y = np.linspace(0, 255, height, dtype=np.float32)[:, None]
    base = np.stack([np.broadcast_to(x, (height, width)),
                     np.broadcast_to(y, (height, width)),
                     np.full((height, width), 128, dtype=np.float32)], axis=2)
    noisy = base + rng.normal(0, 12, size=base.shape)
    pixels = np.clip(noisy, 0, 255).astype(np.uint8)
    if alpha:
        a = np.full((height, width, 1), 200, dtype=np.uint8)
        pixels = np.concatenate([pixels, a], axis=2)
    return pixels


def make_jpeg(width=64, height=48, quality=100, seed=0) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(_pixels(width, height, seed)).save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


def make_png(width=64, height=48, seed=0, alpha=False) -> bytes:
    buffer = io.BytesIO()
    Image.fromarray(_pixels(width, height, seed, alpha)).save(buffer, format="PNG", compress_level=0)
    return buffer.getvalue()


@pytest.fixture
def jpeg_bytes():
    return make_jpeg()


@pytest.fixture
def png_bytes():
    return make_png()


# ============================================
# Pipeline fixtures
# ============================================

class FakeCompressor(Compressor):
    """
    Compressor double that records calls.

    - fail_names: file names whose call raises TransportError
    - gate: when set, every call waits for the event before answering
    """

    def __init__(self, fail_names=(), gate=None, shrink=0.5):
        self.fail_names = set(fail_names)
        self.gate = gate
        self.shrink = shrink
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.closed = False

    async def compress(self, data, mime_type, quality, filename):
        self.calls.append((filename, mime_type, quality))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            await asyncio.sleep(0)
            if filename in self.fail_names:
                raise TransportError(f"Server returned 503 for {filename}: unavailable")
            return CompressedPayload(data=data[:max(1, int(len(data) * self.shrink))], mime_type=mime_type)
        finally:
            self.in_flight -= 1

    async def aclose(self):
        self.closed = True


@pytest.fixture
def previews():
    return PreviewRegistry()


@pytest.fixture
def intake(previews):
    return ImageIntake(previews, max_bytes=10 * 1024 * 1024)


@pytest.fixture
def make_items(intake):
    """
    Build pending items from (name, kind) pairs, kind being "jpeg" or "png".
    """
    def factory(*specs):
        candidates = []
        for seed, (name, kind) in enumerate(specs):
            if kind == "jpeg":
                candidates.append(Candidate(name, make_jpeg(seed=seed), "image/jpeg"))
            else:
                candidates.append(Candidate(name, make_png(seed=seed), "image/png"))
        report = intake.accept(candidates)
        assert not report.rejected
        return report.items

    return factory
