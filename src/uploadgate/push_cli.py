"""CLI entry point for uploadgate-push: upload a file through an uploadgate server."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import httpx

from uploadgate.client import DEFAULT_PART_SIZE, UploadClient, UploadClientError
from uploadgate.logging_config import configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="uploadgate-push",
        description="Upload a file through an uploadgate server",
    )
    parser.add_argument("file", type=Path, help="File to upload")
    parser.add_argument(
        "--url", type=str, default="http://localhost:8080",
        help="Server base URL (default: http://localhost:8080)",
    )
    parser.add_argument(
        "--part-size", type=int, default=DEFAULT_PART_SIZE,
        help=f"Bytes per part (default: {DEFAULT_PART_SIZE})",
    )
    parser.add_argument(
        "--concurrency", type=int, default=4,
        help="Parts uploaded in parallel (default: 4)",
    )
    parser.add_argument(
        "--name", type=str, default=None,
        help="File name sent to the server (default: the file's base name)",
    )
    return parser.parse_args(argv)


async def _push(args: argparse.Namespace) -> str:
    async with UploadClient(args.url) as client:
        result = await client.upload_file(
            args.file,
            part_size=args.part_size,
            concurrency=args.concurrency,
            file_name=args.name,
        )
    return result.key


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    configure_logging(level="INFO")
    logger = logging.getLogger("uploadgate.push")

    if not args.file.is_file():
        logger.error("Not a file: %s", args.file)
        sys.exit(1)

    try:
        key = asyncio.run(_push(args))
    except UploadClientError as exc:
        logger.error("Upload failed: %s", exc)
        sys.exit(1)
    except httpx.HTTPError as exc:
        logger.error("Cannot reach %s: %s", args.url, exc)
        sys.exit(1)

    print(key)


if __name__ == "__main__":
    main()
