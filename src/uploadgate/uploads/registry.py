"""Session registry: upload id -> :class:`UploadSession`.

The registry is the only shared mutable structure of the upload core. Its
lock guards the map itself and is never held across a store call; part
bookkeeping happens under each session's own lock, so unrelated uploads never
contend.
"""

from __future__ import annotations

import logging
import threading
import time

from uploadgate.errors import SessionNotFound
from uploadgate.storage.backend import MultipartStore, call_store
from uploadgate.uploads.ledger import UploadSession
from uploadgate.uploads.models import PartInfo

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Concurrent map of live upload sessions.

    Attributes:
        store: The store capability used to obtain upload ids.
        store_timeout: Deadline in seconds for the initiate call.
    """

    def __init__(self, store: MultipartStore, store_timeout: float | None = 30.0) -> None:
        self.store = store
        self.store_timeout = store_timeout
        self._lock = threading.Lock()
        self._sessions: dict[str, UploadSession] = {}

    async def create(self, object_key: str, expected_part_count: int) -> UploadSession:
        """Initiate an upload on the store and register its session.

        No lock is held while the store call is outstanding; the session is
        installed in one step once the upload id is known.

        Raises:
            StoreUnavailable: If the store's initiate call fails or times out.
                No session is registered in that case.
        """
        upload_id = await call_store(
            "initiate", self.store.initiate(object_key), self.store_timeout
        )
        session = UploadSession(
            upload_id=upload_id,
            object_key=object_key,
            expected_part_count=expected_part_count,
        )
        with self._lock:
            if upload_id in self._sessions:
                # Stores never reuse a live id; keep the newer record regardless.
                logger.warning("Store reissued live upload id %s", upload_id)
            self._sessions[upload_id] = session
        logger.debug(
            "Registered upload session",
            extra={"upload_id": upload_id, "key": object_key},
        )
        return session

    def get(self, upload_id: str) -> UploadSession:
        """Look up a live session without removing it.

        Raises:
            SessionNotFound: If no session is registered under ``upload_id``.
        """
        with self._lock:
            session = self._sessions.get(upload_id)
        if session is None:
            raise SessionNotFound(upload_id)
        return session

    def take_for_completion(self, upload_id: str) -> UploadSession:
        """Atomically remove and return a session.

        At most one caller can take a given session; every later ``get`` or
        ``take_for_completion`` for the same id raises ``SessionNotFound``.

        Raises:
            SessionNotFound: If no session is registered under ``upload_id``.
        """
        with self._lock:
            session = self._sessions.pop(upload_id, None)
        if session is None:
            raise SessionNotFound(upload_id)
        return session

    def take_if_complete(self, upload_id: str) -> tuple[UploadSession, list[PartInfo] | None]:
        """Remove a session only if its part set is complete.

        Completeness is read under the session lock and the removal happens
        under the registry lock before either is released, so a concurrent
        completer cannot also observe the session as complete.

        Returns:
            ``(session, ordered_parts)`` when complete and removed, or
            ``(session, None)`` when incomplete (the session stays registered).

        Raises:
            SessionNotFound: If no session is registered under ``upload_id``.
        """
        with self._lock:
            session = self._sessions.get(upload_id)
            if session is None:
                raise SessionNotFound(upload_id)
            parts = session.ledger.snapshot_if_complete(session.expected_part_count)
            if parts is not None:
                del self._sessions[upload_id]
        return session, parts

    def take_expired(self, max_idle_seconds: float, now: float | None = None) -> list[UploadSession]:
        """Remove and return every session idle for longer than ``max_idle_seconds``."""
        if now is None:
            now = time.monotonic()
        with self._lock:
            expired = [
                s for s in self._sessions.values() if s.idle_seconds(now) > max_idle_seconds
            ]
            for session in expired:
                del self._sessions[session.upload_id]
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, upload_id: object) -> bool:
        with self._lock:
            return upload_id in self._sessions
