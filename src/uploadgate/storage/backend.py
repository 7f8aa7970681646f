"""Object store capability protocol for uploadgate."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable
from typing import TYPE_CHECKING, Protocol, TypeVar

from uploadgate.errors import StoreUnavailable

if TYPE_CHECKING:
    from uploadgate.uploads.models import PartInfo

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Client-facing messages per store operation.
_FAILURE_MESSAGES = {
    "initiate": "Failed to initiate upload",
    "upload_part": "Failed to upload part",
    "complete": "Failed to complete upload",
    "abort": "Failed to abort upload",
}


class StoreError(Exception):
    """Raised by a store adapter when the upstream store rejects or fails a call."""


class MultipartStore(Protocol):
    """Protocol defining the multipart capability of the backing object store.

    All store adapters (AWS S3, in-memory) must implement this interface.
    Adapters raise :class:`StoreError` for upstream failures; the upload core
    turns those into ``StoreUnavailable``.
    """

    async def init(self) -> None:
        """Initialize the store (connect, verify the bucket, etc.)."""
        ...

    async def close(self) -> None:
        """Release resources held by the store."""
        ...

    async def initiate(self, key: str) -> str:
        """Start a multipart upload.

        Args:
            key: The object key the assembled object will be stored under.

        Returns:
            The store-assigned upload id.
        """
        ...

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        stream: AsyncIterator[bytes],
        content_length: int,
    ) -> str:
        """Upload one part.

        Args:
            key: The object key.
            upload_id: The multipart upload identifier.
            part_number: The 1-based part number.
            stream: Async iterator yielding the part bytes.
            content_length: Declared size of the part in bytes.

        Returns:
            The part's ETag, exactly as the store reported it.
        """
        ...

    async def complete(self, key: str, upload_id: str, parts: list[PartInfo]) -> None:
        """Assemble the uploaded parts into the final object.

        Args:
            key: The object key.
            upload_id: The multipart upload identifier.
            parts: Parts in ascending part-number order.
        """
        ...

    async def abort(self, key: str, upload_id: str) -> None:
        """Abort a multipart upload and discard its parts.

        Args:
            key: The object key.
            upload_id: The multipart upload identifier.
        """
        ...


async def call_store(operation: str, awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await a store call under a deadline.

    Args:
        operation: Operation name for logs and the error message.
        awaitable: The pending store call.
        timeout: Deadline in seconds, or None/0 for no deadline.

    Returns:
        Whatever the store call returned.

    Raises:
        StoreUnavailable: If the store raised :class:`StoreError` or the
            deadline expired.
    """
    try:
        if timeout:
            return await asyncio.wait_for(awaitable, timeout)
        return await awaitable
    except asyncio.TimeoutError as exc:
        logger.warning("Store %s timed out after %.1fs", operation, timeout)
        raise StoreUnavailable(f"Object store {operation} timed out") from exc
    except StoreError as exc:
        logger.warning("Store %s failed: %s", operation, exc)
        raise StoreUnavailable(_FAILURE_MESSAGES.get(operation, f"Store {operation} failed")) from exc
