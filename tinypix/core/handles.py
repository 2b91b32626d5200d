"""
Owned references to image content.

BlobHandle owns a byte buffer (source or compressed image). PreviewHandle
is a revocable display resource issued by a PreviewRegistry, addressed by
a preview:// url. Both must be released exactly once.
"""
import uuid
import logging
from typing import Dict, Optional

from tinypix.errors import HandleError

logger = logging.getLogger(__name__)

PREVIEW_SCHEME = "preview://"


class BlobHandle:
    """Ownership of a named byte buffer."""

    def __init__(self, name: str, data: bytes, mime_type: str):
        self.name = name
        self.mime_type = mime_type
        self._data: Optional[bytes] = data
        self._size = len(data)

    @property
    def size(self) -> int:
        return self._size

    @property
    def released(self) -> bool:
        return self._data is None

    @property
    def data(self) -> bytes:
        if self._data is None:
            raise HandleError(f"Content of {self.name!r} has already been released")
        return self._data

    def release(self) -> None:
        if self._data is None:
            raise HandleError(f"Content of {self.name!r} released twice")
        self._data = None

    def __repr__(self):
        state = "released" if self.released else f"{self._size} bytes"
        return f"BlobHandle({self.name!r}, {self.mime_type}, {state})"


class PreviewHandle:
    """A revocable display handle."""

    def __init__(self, registry: "PreviewRegistry", url: str):
        self._registry = registry
        self.url = url

    @property
    def revoked(self) -> bool:
        return not self._registry.is_live(self.url)

    def release(self) -> None:
        self._registry.revoke(self)

    def __repr__(self):
        return f"PreviewHandle({self.url!r})"


class PreviewRegistry:
    """
    Issues preview handles and keeps their content until revoked.

    The registry is the single owner of preview content; live_count is the
    number of handles issued and not yet revoked.
    """

    def __init__(self):
        self._content: Dict[str, bytes] = {}

    def create(self, content: bytes) -> PreviewHandle:
        url = f"{PREVIEW_SCHEME}{uuid.uuid4().hex}"
        self._content[url] = content
        return PreviewHandle(self, url)

    def resolve(self, url: str) -> bytes:
        try:
            return self._content[url]
        except KeyError:
            raise HandleError(f"Preview {url} is not live") from None

    def is_live(self, url: str) -> bool:
        return url in self._content

    def revoke(self, handle: PreviewHandle) -> None:
        if self._content.pop(handle.url, None) is None:
            raise HandleError(f"Preview {handle.url} revoked twice or never issued here")
        logger.debug(f"Revoked preview {handle.url}")

    @property
    def live_count(self) -> int:
        return len(self._content)
