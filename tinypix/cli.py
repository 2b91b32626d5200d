"""
Command line interface.

    tinypix serve --port 8000
    tinypix compress photo.jpg logo.png --quality 70 --output-dir out --zip out/all.zip
    tinypix compress *.png --local --png-quality 60 --remember
"""
import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from tinypix.config import get_settings
from tinypix.core.codec import JPEG_MIME, PNG_MIME
from tinypix.core.compressors import LocalCompressor, RemoteCompressor
from tinypix.core.handles import PreviewRegistry
from tinypix.core.intake import Candidate, ImageIntake
from tinypix.core.orchestrator import CompressionOrchestrator
from tinypix.core.preferences import Qualities, QualityPreferences
from tinypix.core.results import (
    compression_ratio,
    format_bytes,
    format_ratio,
    prepare_download,
    save_download,
    summarize,
    write_archive
)
from tinypix.errors import ArchiveError
from tinypix.models.item import Item, ItemStatus

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(prog="tinypix", description="JPEG/PNG recompression service and client")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Run the compression API server")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # Compress command
    compress_parser = subparsers.add_parser("compress", help="Compress JPEG/PNG files")
    compress_parser.add_argument("paths", nargs="+", help="Image files to compress")
    target = compress_parser.add_mutually_exclusive_group()
    target.add_argument("--server", default=settings.server_url,
                        help=f"Compression server URL (default: {settings.server_url})")
    target.add_argument("--local", action="store_true", help="Compress in-process instead of via a server")
    compress_parser.add_argument("--quality", type=int, help="JPEG quality 1-100 (clamped)")
    compress_parser.add_argument("--png-quality", type=int, help="PNG quality 1-100, used by pngquant")
    compress_parser.add_argument("--output-dir", default="compressed", help="Where to save compressed files")
    compress_parser.add_argument("--suffix", default="", help="Text added before each file extension")
    compress_parser.add_argument("--zip", dest="zip_path", help="Also write every compressed file into this ZIP")
    compress_parser.add_argument("--max-size-mb", type=float, default=settings.max_upload_mb,
                                 help=f"Reject files larger than this (default: {settings.max_upload_mb})")
    compress_parser.add_argument("--concurrency", type=int, default=settings.max_concurrency,
                                 help="Outstanding compression calls")
    compress_parser.add_argument("--remember", action="store_true",
                                 help="Store the given qualities as the new defaults")
    return parser


def _print_item(item: Item) -> None:
    if item.status is ItemStatus.DONE:
        ratio = format_ratio(compression_ratio(item.original_bytes, item.compressed_bytes))
        print(f"  done   {item.name} ({item.width}x{item.height}): "
              f"{format_bytes(item.original_bytes)} -> {format_bytes(item.compressed_bytes)} ({ratio})")
    elif item.status is ItemStatus.ERROR:
        print(f"  error  {item.name}: {item.error_message}")


async def run_compress(args) -> int:
    settings = get_settings()
    preferences = QualityPreferences(settings.preferences_path)
    stored = preferences.load()
    qualities = Qualities(
        jpeg_quality=args.quality if args.quality is not None else stored.jpeg_quality,
        png_quality=args.png_quality if args.png_quality is not None else stored.png_quality,
    )
    if args.remember:
        preferences.save(qualities)

    candidates = []
    for path in args.paths:
        try:
            candidates.append(Candidate.from_path(path))
        except OSError as e:
            print(f"  skipped {path}: {e}", file=sys.stderr)

    previews = PreviewRegistry()
    intake = ImageIntake(previews, max_bytes=int(args.max_size_mb * 1024 * 1024))
    report = intake.accept(candidates)
    for rejection in report.rejected:
        print(f"  rejected {rejection.name}: {rejection.reason}", file=sys.stderr)
    if not report.items:
        print("No supported images to compress", file=sys.stderr)
        return 1

    if args.local:
        compressor = LocalCompressor(settings.png_engine)
    else:
        compressor = RemoteCompressor(args.server, timeout=settings.request_timeout)

    orchestrator = CompressionOrchestrator(
        compressor,
        previews,
        jpeg_quality=qualities.jpeg_quality,
        png_quality=qualities.png_quality,
        max_concurrency=max(1, args.concurrency),
        debounce_seconds=settings.debounce_seconds,
    )
    try:
        print(f"Compressing {len(report.items)} image(s) "
              f"(JPEG quality {orchestrator.quality_for(JPEG_MIME)}, PNG quality {orchestrator.quality_for(PNG_MIME)})")
        await orchestrator.submit(report.items)

        items = orchestrator.items
        for item in items:
            _print_item(item)
            if item.is_done:
                save_download(prepare_download(item, args.suffix or None), args.output_dir)

        if args.zip_path:
            try:
                written = write_archive(items, args.zip_path, args.suffix or None)
            except ArchiveError as e:
                print(f"Archive failed: {e}", file=sys.stderr)
            else:
                if written:
                    print(f"Archive written to {written}")

        summary = summarize(items)
        print(f"{summary.done} of {summary.total} compressed, "
              f"{format_bytes(summary.original_bytes)} -> {format_bytes(summary.compressed_bytes)} "
              f"({format_ratio(summary.ratio)})")
        return 0 if summary.failed == 0 and not report.rejected else 1
    finally:
        orchestrator.clear()
        await orchestrator.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr
    )

    if args.command == "serve":
        import uvicorn
        uvicorn.run("tinypix:app", host=args.host, port=args.port, reload=args.reload)
        return 0
    return asyncio.run(run_compress(args))


if __name__ == "__main__":
    sys.exit(main())
