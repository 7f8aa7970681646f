"""Async HTTP client for the uploadgate endpoints.

Splits a local file into fixed-size parts, uploads them concurrently and
completes the upload. Parts may finish in any order; the server restores
numeric order at completion.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path

import httpx

logger = logging.getLogger(__name__)

# S3 rejects non-final parts smaller than 5 MiB.
DEFAULT_PART_SIZE = 5 * 1024 * 1024


class UploadClientError(Exception):
    """The server answered with a non-200 status.

    Attributes:
        status_code: HTTP status returned by the server.
        code: Error code from the JSON body, if any.
        message: Error message from the JSON body (or the raw body).
    """

    def __init__(self, status_code: int, code: str, message: str) -> None:
        super().__init__(f"{status_code} {code}: {message}")
        self.status_code = status_code
        self.code = code
        self.message = message


@dataclass
class UploadedFile:
    upload_id: str
    key: str
    parts: int


class UploadClient:
    """Client for one uploadgate server.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``
    (e.g. one bound to an ASGI transport in tests).
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080",
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> UploadClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, path: str, headers: dict[str, str], content: bytes = b"") -> dict:
        resp = await self._client.post(path, headers=headers, content=content)
        if resp.status_code != 200:
            try:
                body = resp.json()
                code, message = body.get("code", ""), body.get("error", resp.text)
            except ValueError:
                code, message = "", resp.text
            raise UploadClientError(resp.status_code, code, message)
        return resp.json()

    async def initiate(self, file_name: str, total_parts: int) -> tuple[str, str]:
        """Start an upload; returns ``(upload_id, key)``."""
        body = await self._post(
            "/upload/initiate",
            {"X-File-Name": file_name, "X-Total-Parts": str(total_parts)},
        )
        return body["upload_id"], body["key"]

    async def upload_part(self, upload_id: str, part_number: int, data: bytes) -> str:
        """Upload one part; returns its ETag."""
        body = await self._post(
            "/upload/part",
            {"X-Upload-ID": upload_id, "X-Part-Number": str(part_number)},
            content=data,
        )
        return body["etag"]

    async def complete(self, upload_id: str) -> str:
        """Complete an upload; returns the object key."""
        body = await self._post("/upload/complete", {"X-Upload-ID": upload_id})
        return body["key"]

    async def abort(self, upload_id: str) -> str:
        """Abort an upload; returns the object key."""
        body = await self._post("/upload/abort", {"X-Upload-ID": upload_id})
        return body["key"]

    async def upload_file(
        self,
        path: Path,
        part_size: int = DEFAULT_PART_SIZE,
        concurrency: int = 4,
        file_name: str | None = None,
    ) -> UploadedFile:
        """Upload a whole file.

        On any part failure the remaining parts are cancelled, the upload is
        aborted and the error re-raised.

        Args:
            path: File to upload.
            part_size: Bytes per part (the last part may be shorter).
            concurrency: Maximum parts in flight at once.
            file_name: Name sent to the server; defaults to ``path.name``.
        """
        if part_size < 1:
            raise ValueError("part_size must be positive")
        size = path.stat().st_size
        total_parts = max(1, math.ceil(size / part_size))

        upload_id, key = await self.initiate(file_name or path.name, total_parts)
        logger.info("Upload %s initiated for %s (%d parts)", upload_id, key, total_parts)

        semaphore = asyncio.Semaphore(concurrency)

        async def send(part_number: int) -> None:
            async with semaphore:
                with open(path, "rb") as fh:
                    fh.seek((part_number - 1) * part_size)
                    data = fh.read(part_size)
                etag = await self.upload_part(upload_id, part_number, data)
                logger.info("Part %d/%d uploaded, ETag %s", part_number, total_parts, etag)

        tasks = [asyncio.create_task(send(n)) for n in range(1, total_parts + 1)]
        try:
            await asyncio.gather(*tasks)
        except Exception:
            # No part may reach the server once the abort is sent.
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning("Part upload failed, aborting %s", upload_id)
            try:
                await self.abort(upload_id)
            except (UploadClientError, httpx.HTTPError):
                logger.warning("Abort of %s failed", upload_id)
            raise

        await self.complete(upload_id)
        logger.info("Upload completed: %s", key)
        return UploadedFile(upload_id=upload_id, key=key, parts=total_parts)
