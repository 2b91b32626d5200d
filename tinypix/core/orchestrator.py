"""
Compression orchestrator.

Owns the item set and every status change after intake. Items move
through pending -> processing -> done | error; error and done items can be
dispatched again (retry, or a quality change for their format).

All mutation happens on the event loop thread. Compressor calls are the
only suspension points, so an update is applied by id after the await and
dropped when the id has been removed in the meantime.
"""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Set

from tinypix.core.codec import (
    DEFAULT_JPEG_QUALITY,
    DEFAULT_PNG_QUALITY,
    JPEG_MIME,
    PNG_MIME,
    SUPPORTED_MIME_TYPES,
    clamp_quality
)
from tinypix.core.compressors import Compressor
from tinypix.core.handles import BlobHandle, PreviewRegistry
from tinypix.errors import CompressionError, HandleError, InvalidTransitionError
from tinypix.models.item import CompressedPayload, Item, ItemStatus

# Set up logging
logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3
DEFAULT_DEBOUNCE_SECONDS = 0.5
GENERIC_FAILURE = "Could not compress. The server is unavailable or returned an error."

ALLOWED_TRANSITIONS = {
    ItemStatus.PENDING: {ItemStatus.PROCESSING},
    ItemStatus.PROCESSING: {ItemStatus.DONE, ItemStatus.ERROR},
    ItemStatus.ERROR: {ItemStatus.PROCESSING},
    ItemStatus.DONE: {ItemStatus.PROCESSING},
}

Listener = Callable[[Item], None]


class CompressionOrchestrator:
    """
    Drives items through compression and exposes their live status.

    Usage:
        orchestrator = CompressionOrchestrator(LocalCompressor(), previews)
        orchestrator.add(report.items)
        await orchestrator.dispatch()
        orchestrator.set_quality("image/jpeg", 60)
        await orchestrator.wait_idle()
    """

    def __init__(
        self,
        compressor: Compressor,
        previews: PreviewRegistry,
        jpeg_quality: int = DEFAULT_JPEG_QUALITY,
        png_quality: int = DEFAULT_PNG_QUALITY,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.compressor = compressor
        self.previews = previews
        self.debounce_seconds = debounce_seconds
        self._qualities = {
            JPEG_MIME: clamp_quality(jpeg_quality, DEFAULT_JPEG_QUALITY),
            PNG_MIME: clamp_quality(png_quality, DEFAULT_PNG_QUALITY),
        }
        self._items: Dict[str, Item] = {}
        self._listeners: List[Listener] = []
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._changed_formats: Set[str] = set()
        self._debounce_task: Optional[asyncio.Task] = None
        self._waves: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Item set
    # ------------------------------------------------------------------

    @property
    def items(self) -> List[Item]:
        return list(self._items.values())

    def get(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def __len__(self):
        return len(self._items)

    def __contains__(self, item_id):
        return item_id in self._items

    def add(self, items: Iterable[Item]) -> List[str]:
        """Add pending items from intake; returns their ids."""
        added = []
        for item in items:
            if item.id in self._items:
                raise ValueError(f"Duplicate item id {item.id}")
            if item.status is not ItemStatus.PENDING:
                raise InvalidTransitionError(f"Only pending items can be added, {item.id} is {item.status.value}")
            self._items[item.id] = item
            added.append(item.id)
            self._notify(item)
        return added

    def remove(self, item_id: str) -> bool:
        """
        Remove an item and release its handles.

        An outstanding compression call for the item is not interrupted;
        its result is discarded when it arrives.
        """
        item = self._items.pop(item_id, None)
        if item is None:
            return False
        self._release(item)
        logger.debug(f"Removed item {item_id} ({item.name})")
        return True

    def clear(self) -> int:
        """Remove every item; returns how many were removed."""
        items = list(self._items.values())
        self._items.clear()
        for item in items:
            self._release(item)
        logger.info(f"Cleared {len(items)} item(s)")
        return len(items)

    def _release(self, item: Item) -> None:
        for handle in (item.preview, item.source, item.compressed):
            if handle is None:
                continue
            try:
                handle.release()
            except HandleError as e:
                logger.error(f"Handle of item {item.id} was already released: {e}")
        item.compressed = None

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a callback invoked after each status change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, item: Item) -> None:
        for listener in list(self._listeners):
            try:
                listener(item)
            except Exception:
                logger.exception(f"Status listener failed for item {item.id}")

    # ------------------------------------------------------------------
    # State transitions (by id)
    # ------------------------------------------------------------------

    def _transition(self, item: Item, status: ItemStatus) -> None:
        if status not in ALLOWED_TRANSITIONS[item.status]:
            raise InvalidTransitionError(
                f"Item {item.id} cannot go from {item.status.value} to {status.value}"
            )
        item.status = status

    def _mark_processing(self, item_id: str, quality: int) -> Optional[Item]:
        item = self._items.get(item_id)
        if item is None:
            return None
        self._transition(item, ItemStatus.PROCESSING)
        if item.compressed is not None:
            item.compressed.release()
        item.compressed = None
        item.compressed_bytes = None
        item.error_message = None
        item.quality = quality
        self._notify(item)
        return item

    def _mark_done(self, item_id: str, payload: CompressedPayload) -> None:
        item = self._items.get(item_id)
        if item is None:
            logger.debug(f"Discarding result for removed item {item_id}")
            return
        self._transition(item, ItemStatus.DONE)
        item.compressed = BlobHandle(item.name, payload.data, payload.mime_type)
        item.compressed_bytes = len(payload.data)
        item.error_message = None
        self._notify(item)

    def _mark_error(self, item_id: str, message: str) -> None:
        item = self._items.get(item_id)
        if item is None:
            logger.debug(f"Discarding failure for removed item {item_id}")
            return
        self._transition(item, ItemStatus.ERROR)
        item.error_message = message
        self._notify(item)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def quality_for(self, mime_type: str) -> int:
        return self._qualities[mime_type]

    def _select(self, ids: Optional[Iterable[str]]) -> List[str]:
        if ids is None:
            return [
                item.id for item in self._items.values()
                if item.status in (ItemStatus.PENDING, ItemStatus.ERROR)
            ]
        selected = []
        for item_id in ids:
            item = self._items.get(item_id)
            if item is None or item.status is ItemStatus.PROCESSING or item_id in selected:
                continue
            selected.append(item_id)
        return selected

    async def dispatch(self, ids: Optional[Iterable[str]] = None) -> List[str]:
        """
        Compress the selected items and wait for all of them.

        Args:
            ids: Items to (re)compress; defaults to every pending or failed
                item. Items currently processing are always skipped.

        Returns:
            The ids that were dispatched
        """
        selected = self._select(ids)
        started = []
        for item_id in selected:
            item = self._items[item_id]
            if self._mark_processing(item_id, self._qualities[item.mime_type]) is not None:
                started.append(item_id)
        if not started:
            return []

        logger.info(f"Dispatching {len(started)} item(s)")
        await asyncio.gather(*(self._run(item_id) for item_id in started))
        return started

    async def submit(self, items: Iterable[Item]) -> List[str]:
        """Add items from intake and compress them right away."""
        return await self.dispatch(self.add(items))

    async def _run(self, item_id: str) -> None:
        async with self._semaphore:
            item = self._items.get(item_id)
            if item is None:
                return
            try:
                payload = await self.compressor.compress(
                    item.source.data, item.mime_type, item.quality, item.name
                )
            except CompressionError as e:
                logger.warning(f"Compression failed for {item.name}: {e}")
                self._mark_error(item_id, str(e) or GENERIC_FAILURE)
                return
            except Exception:
                logger.exception(f"Unexpected error compressing {item.name}")
                self._mark_error(item_id, GENERIC_FAILURE)
                return

        if not payload.data:
            self._mark_error(item_id, "Compression returned no data")
            return
        self._mark_done(item_id, payload)

    # ------------------------------------------------------------------
    # Quality changes
    # ------------------------------------------------------------------

    def set_quality(self, mime_type: str, value) -> int:
        """
        Change the quality for one format and schedule a re-dispatch.

        Calls arriving within debounce_seconds of each other coalesce into a
        single wave covering every format changed meanwhile. Must be called
        from the running event loop.

        Returns:
            The clamped quality that was stored
        """
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise ValueError(f"Unsupported image type: {mime_type}")
        quality = clamp_quality(value, self._qualities[mime_type])
        if quality != self._qualities[mime_type]:
            self._qualities[mime_type] = quality
            self._changed_formats.add(mime_type)
        elif mime_type not in self._changed_formats:
            # Unchanged and not pending; other formats' timers are left alone
            return quality

        if self._debounce_task is not None:
            self._debounce_task.cancel()
        self._debounce_task = asyncio.get_running_loop().create_task(self._debounced_redispatch())
        return quality

    async def _debounced_redispatch(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        formats, self._changed_formats = self._changed_formats, set()
        self._debounce_task = None

        ids = [
            item.id for item in self._items.values()
            if item.mime_type in formats and item.status is not ItemStatus.PROCESSING
        ]
        if not ids:
            return
        logger.info(f"Quality changed for {', '.join(sorted(formats))}; recompressing {len(ids)} item(s)")
        wave = asyncio.ensure_future(self.dispatch(ids))
        self._waves.add(wave)
        wave.add_done_callback(self._waves.discard)
        await wave

    async def wait_idle(self) -> None:
        """Wait for a pending quality change and every re-dispatch wave to finish."""
        while self._debounce_task is not None or self._waves:
            pending = [task for task in (self._debounce_task, *self._waves) if task is not None]
            await asyncio.gather(*pending, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel the pending debounce timer and close the compressor."""
        if self._debounce_task is not None:
            self._debounce_task.cancel()
            self._debounce_task = None
        self._changed_formats.clear()
        await self.compressor.aclose()
