"""In-memory multipart store for uploadgate.

Implements the MultipartStore protocol using Python dictionaries. Meant for
local development and tests; nothing survives a restart.

Semantics follow S3 closely enough for the upload core to be exercised end
to end:
    - Upload ids are random UUIDs; part ETags are the quoted MD5 of the part.
    - ``complete`` requires strictly ascending part numbers and ETags that
      match the stored parts, then concatenates the parts into the object.
    - ``abort`` and ``complete`` forget the upload; later calls for the same
      id fail.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import AsyncIterator

from uploadgate.config import StorageConfig
from uploadgate.storage.backend import StoreError
from uploadgate.uploads.models import PartInfo

logger = logging.getLogger(__name__)


class MemoryStoreError(StoreError):
    """Raised when the memory store cannot fulfill a request."""


class NoSuchUploadError(MemoryStoreError):
    """The upload id is unknown to the store (never issued, completed, or aborted)."""


class InvalidPartError(MemoryStoreError):
    """A part in the completion list is missing or its ETag does not match."""


class MemoryCapacityError(MemoryStoreError):
    """Raised when a part would exceed the configured max_size_bytes."""


class _PendingUpload:
    def __init__(self, key: str) -> None:
        self.key = key
        self.parts: dict[int, tuple[bytes, str]] = {}


class MemoryMultipartStore:
    """Multipart store that holds all uploads and objects in memory.

    Attributes:
        max_size_bytes: Maximum total bytes of pending parts (0 = unlimited).
    """

    def __init__(self, max_size_bytes: int = 0) -> None:
        self.max_size_bytes = max_size_bytes
        # upload_id -> pending upload
        self._uploads: dict[str, _PendingUpload] = {}
        # key -> (data, etag)
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._pending_size = 0

    @classmethod
    def from_config(cls, storage: StorageConfig) -> MemoryMultipartStore:
        return cls(max_size_bytes=storage.memory_max_size_bytes)

    async def init(self) -> None:
        logger.info("Memory multipart store initialized")

    async def close(self) -> None:
        self._uploads.clear()

    def _pending(self, upload_id: str, key: str) -> _PendingUpload:
        upload = self._uploads.get(upload_id)
        if upload is None or upload.key != key:
            raise NoSuchUploadError(f"No such upload: {upload_id}")
        return upload

    def _check_capacity(self, additional_bytes: int) -> None:
        if self.max_size_bytes > 0:
            if self._pending_size + additional_bytes > self.max_size_bytes:
                raise MemoryCapacityError(
                    f"Cannot store {additional_bytes} bytes: would exceed "
                    f"max_size_bytes ({self._pending_size} + {additional_bytes} "
                    f"> {self.max_size_bytes})"
                )

    def _forget(self, upload_id: str) -> None:
        upload = self._uploads.pop(upload_id, None)
        if upload is not None:
            self._pending_size -= sum(len(data) for data, _ in upload.parts.values())

    async def initiate(self, key: str) -> str:
        upload_id = uuid.uuid4().hex
        self._uploads[upload_id] = _PendingUpload(key)
        return upload_id

    async def upload_part(
        self,
        key: str,
        upload_id: str,
        part_number: int,
        stream: AsyncIterator[bytes],
        content_length: int,
    ) -> str:
        """Store a part and return its quoted MD5 ETag.

        Raises:
            NoSuchUploadError: If the upload is unknown.
            MemoryCapacityError: If storing the part would exceed max_size_bytes.
        """
        self._pending(upload_id, key)
        chunks = []
        async for chunk in stream:
            chunks.append(chunk)
        data = b"".join(chunks)

        # Re-resolve: the upload may have been aborted while the body streamed.
        upload = self._pending(upload_id, key)
        old = upload.parts.get(part_number)
        old_size = len(old[0]) if old else 0
        self._check_capacity(len(data) - old_size)

        etag = f'"{hashlib.md5(data).hexdigest()}"'
        upload.parts[part_number] = (data, etag)
        self._pending_size += len(data) - old_size
        return etag

    async def complete(self, key: str, upload_id: str, parts: list[PartInfo]) -> None:
        """Concatenate ``parts`` into the final object.

        The object ETag follows the S3 multipart convention: MD5 of the
        concatenated binary part digests, suffixed with ``-<part count>``.

        Raises:
            NoSuchUploadError: If the upload is unknown.
            InvalidPartError: If the list is empty, not strictly ascending, or
                names a part that is missing or has a different ETag.
        """
        upload = self._pending(upload_id, key)
        if not parts:
            raise InvalidPartError("At least one part must be specified")

        previous = 0
        chunks: list[bytes] = []
        digests = hashlib.md5()
        for part in parts:
            if part.part_number <= previous:
                raise InvalidPartError("The list of parts was not in ascending order")
            previous = part.part_number
            stored = upload.parts.get(part.part_number)
            if stored is None or stored[1] != part.etag:
                raise InvalidPartError(f"Invalid part {part.part_number}")
            chunks.append(stored[0])
            digests.update(bytes.fromhex(stored[1].strip('"')))

        etag = f'"{digests.hexdigest()}-{len(parts)}"'
        self._objects[key] = (b"".join(chunks), etag)
        self._forget(upload_id)
        logger.debug("Assembled %s from %d parts", key, len(parts))

    async def abort(self, key: str, upload_id: str) -> None:
        """Discard an upload and its parts.

        Raises:
            NoSuchUploadError: If the upload is unknown.
        """
        self._pending(upload_id, key)
        self._forget(upload_id)

    # -- Inspection helpers (not part of the store protocol) ------------------

    def get_object(self, key: str) -> bytes:
        """Return the bytes of an assembled object.

        Raises:
            FileNotFoundError: If no object was assembled under ``key``.
        """
        if key not in self._objects:
            raise FileNotFoundError(f"Object not found: {key}")
        return self._objects[key][0]

    def object_etag(self, key: str) -> str:
        if key not in self._objects:
            raise FileNotFoundError(f"Object not found: {key}")
        return self._objects[key][1]

    def has_upload(self, upload_id: str) -> bool:
        return upload_id in self._uploads
