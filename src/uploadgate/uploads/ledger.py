"""Per-session part bookkeeping.

An :class:`UploadSession` is the in-memory record of one multipart upload.
It embeds a :class:`PartLedger` that collects ``(part_number, etag)`` pairs as
parts arrive, in any order and from any number of concurrent callers.

The ledger lock guards in-memory state only and is never held across an
``await``; store calls happen outside it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field

from uploadgate.uploads.models import PartInfo


class PartLedger:
    """Parts received for one upload, unique by part number.

    A repeated part number overwrites the earlier entry (last write wins),
    mirroring how the store itself treats a re-uploaded part.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._parts: dict[int, str] = {}

    def add_part(self, part_number: int, etag: str) -> None:
        """Record (or overwrite) the ETag for ``part_number``."""
        with self._lock:
            self._parts[part_number] = etag

    def __len__(self) -> int:
        with self._lock:
            return len(self._parts)

    def is_complete(self, expected_part_count: int) -> bool:
        """True iff exactly ``expected_part_count`` distinct parts were received."""
        with self._lock:
            return len(self._parts) == expected_part_count

    def ordered_parts(self) -> list[PartInfo]:
        """Return received parts sorted ascending by part number."""
        with self._lock:
            return self._ordered()

    def snapshot_if_complete(self, expected_part_count: int) -> list[PartInfo] | None:
        """Check completeness and read the ordered parts in one critical section.

        Returns:
            The ordered parts, or None if the ledger is incomplete.
        """
        with self._lock:
            if len(self._parts) != expected_part_count:
                return None
            return self._ordered()

    def _ordered(self) -> list[PartInfo]:
        return [PartInfo(part_number=n, etag=self._parts[n]) for n in sorted(self._parts)]


@dataclass
class UploadSession:
    """In-memory record correlating an upload id with its parts.

    Attributes:
        upload_id: Opaque id assigned by the store at initiation.
        object_key: Key the assembled object will be stored under.
        expected_part_count: Part count declared by the client.
        ledger: Parts received so far.
        created_at: ``time.monotonic()`` at creation.
        last_activity: ``time.monotonic()`` of the last part started or recorded.
        parts_in_flight: Part uploads currently streaming to the store.
    """

    upload_id: str
    object_key: str
    expected_part_count: int
    ledger: PartLedger = field(default_factory=PartLedger)
    created_at: float = field(default_factory=time.monotonic)
    last_activity: float = 0.0
    parts_in_flight: int = 0

    def __post_init__(self) -> None:
        if not self.last_activity:
            self.last_activity = self.created_at

    def record_part(self, part: PartInfo) -> None:
        """Add a part to the ledger and refresh the activity timestamp."""
        self.ledger.add_part(part.part_number, part.etag)
        self.last_activity = time.monotonic()

    def begin_part(self) -> None:
        """Mark a part upload as started. A session is never idle while one runs."""
        self.parts_in_flight += 1
        self.last_activity = time.monotonic()

    def end_part(self) -> None:
        self.parts_in_flight -= 1
        self.last_activity = time.monotonic()

    def idle_seconds(self, now: float | None = None) -> float:
        if self.parts_in_flight:
            return 0.0
        if now is None:
            now = time.monotonic()
        return now - self.last_activity
