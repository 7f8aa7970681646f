"""Upload orchestration: initiate -> parts -> complete | abort.

State machine per upload id::

    Initiated -> (PartsArriving)* -> Completed | Aborted | Expired

Terminal states are reached by removing the session from the registry, so
no transition can leave them: any later call for the id raises
``SessionNotFound``.

Completion policy:
    - Default: the session is removed *before* completeness is checked, so a
      premature ``complete_upload`` discards the upload for good.
    - ``retain_incomplete=True``: completeness is checked first and the session
      is removed only when complete; an incomplete upload stays resumable.
    - Either way, a store failure during the final assemble leaves the session
      removed. No automatic abort or retry is issued for it; the store-side
      upload stays open until it expires or is aborted separately.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator

from uploadgate.errors import IncompletePartSet, InvalidArgument, StoreUnavailable
from uploadgate.storage.backend import MultipartStore, call_store
from uploadgate.uploads.ledger import UploadSession
from uploadgate.uploads.models import (
    AbortRequest,
    AbortResult,
    CompleteRequest,
    CompleteResult,
    InitiateRequest,
    InitiateResult,
    PartInfo,
    PartResult,
    PartUploadRequest,
)
from uploadgate.uploads.registry import SessionRegistry
from uploadgate.validation import MAX_KEY_BYTES, MAX_PARTS, validate_object_key

logger = logging.getLogger(__name__)


def derive_object_key(file_name: str) -> str:
    """Prefix the client's file name with a random id so uploads never collide."""
    return f"{uuid.uuid4()}_{file_name}"


class UploadOrchestrator:
    """Sequences multipart uploads against the registry and the store.

    Attributes:
        registry: The injected session registry.
        store: The store capability (shared with the registry).
        store_timeout: Deadline in seconds for every store call.
        max_parts: Largest accepted ``total_parts``.
        max_key_bytes: Largest accepted derived key, UTF-8 encoded.
        retain_incomplete: Keep incomplete sessions on premature completion.
        abort_discarded: Abort the store-side upload of sessions discarded
            as incomplete.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        store: MultipartStore | None = None,
        *,
        store_timeout: float | None = 30.0,
        max_parts: int = MAX_PARTS,
        max_key_bytes: int = MAX_KEY_BYTES,
        retain_incomplete: bool = False,
        abort_discarded: bool = False,
    ) -> None:
        self.registry = registry
        self.store = store if store is not None else registry.store
        self.store_timeout = store_timeout
        self.max_parts = max_parts
        self.max_key_bytes = max_key_bytes
        self.retain_incomplete = retain_incomplete
        self.abort_discarded = abort_discarded

    async def initiate(self, request: InitiateRequest) -> InitiateResult:
        """Start a multipart upload for ``request.file_name``.

        Raises:
            InvalidArgument: If ``total_parts`` exceeds ``max_parts`` or the
                derived key is too long.
            StoreUnavailable: If the store's initiate call fails.
        """
        if request.total_parts > self.max_parts:
            raise InvalidArgument(f"Invalid X-Total-Parts header: must not exceed {self.max_parts}")

        key = derive_object_key(request.file_name)
        validate_object_key(key, self.max_key_bytes)

        session = await self.registry.create(key, request.total_parts)
        logger.info(
            "Upload initiated: upload_id=%s key=%s parts=%d",
            session.upload_id,
            key,
            request.total_parts,
            extra={"upload_id": session.upload_id, "key": key},
        )
        return InitiateResult(upload_id=session.upload_id, key=key)

    async def upload_part(
        self, request: PartUploadRequest, body: AsyncIterator[bytes]
    ) -> PartResult:
        """Stream one part to the store and record its ETag.

        The session is looked up fresh and no lock is held while the part is
        in flight; the ledger is only touched once the store has answered. The
        sweep skips the session while the part streams.

        Raises:
            SessionNotFound: If the upload id is unknown.
            InvalidArgument: If the part number exceeds the declared total.
            StoreUnavailable: If the store's upload-part call fails.
        """
        session = self.registry.get(request.upload_id)
        if request.part_number > session.expected_part_count:
            raise InvalidArgument(
                f"Invalid X-Part-Number header: upload declared "
                f"{session.expected_part_count} parts"
            )

        logger.debug(
            "Uploading part %d (%d bytes) for %s",
            request.part_number,
            request.content_length,
            request.upload_id,
        )
        session.begin_part()
        try:
            etag = await call_store(
                "upload_part",
                self.store.upload_part(
                    session.object_key,
                    session.upload_id,
                    request.part_number,
                    body,
                    request.content_length,
                ),
                self.store_timeout,
            )
        finally:
            session.end_part()
        session.record_part(PartInfo(part_number=request.part_number, etag=etag))
        return PartResult(part_number=request.part_number, etag=etag)

    async def complete_upload(self, request: CompleteRequest) -> CompleteResult:
        """Assemble the upload from its parts in ascending part order.

        Raises:
            SessionNotFound: If the upload id is unknown or another caller
                already took the session.
            IncompletePartSet: If fewer distinct parts than declared arrived.
            StoreUnavailable: If the store's complete call fails.
        """
        if self.retain_incomplete:
            session, parts = self.registry.take_if_complete(request.upload_id)
            if parts is None:
                raise IncompletePartSet(len(session.ledger), session.expected_part_count)
        else:
            session = self.registry.take_for_completion(request.upload_id)
            parts = session.ledger.snapshot_if_complete(session.expected_part_count)
            if parts is None:
                logger.info(
                    "Discarding incomplete upload %s (%d/%d parts)",
                    session.upload_id,
                    len(session.ledger),
                    session.expected_part_count,
                )
                if self.abort_discarded:
                    await self._abort_quietly(session)
                raise IncompletePartSet(len(session.ledger), session.expected_part_count)

        await call_store(
            "complete",
            self.store.complete(session.object_key, session.upload_id, parts),
            self.store_timeout,
        )
        logger.info(
            "Upload completed: upload_id=%s key=%s parts=%d",
            session.upload_id,
            session.object_key,
            len(parts),
            extra={"upload_id": session.upload_id, "key": session.object_key},
        )
        return CompleteResult(key=session.object_key)

    async def abort_upload(self, request: AbortRequest) -> AbortResult:
        """Drop the session and abort the store-side upload.

        Raises:
            SessionNotFound: If the upload id is unknown.
            StoreUnavailable: If the store's abort call fails; the session is
                already removed.
        """
        session = self.registry.take_for_completion(request.upload_id)
        await call_store(
            "abort",
            self.store.abort(session.object_key, session.upload_id),
            self.store_timeout,
        )
        logger.info(
            "Upload aborted: upload_id=%s key=%s",
            session.upload_id,
            session.object_key,
            extra={"upload_id": session.upload_id, "key": session.object_key},
        )
        return AbortResult(key=session.object_key)

    async def reap_expired(self, max_idle_seconds: float) -> int:
        """Remove sessions idle for longer than ``max_idle_seconds``.

        Their store-side uploads are aborted best-effort.

        Returns:
            The number of sessions removed.
        """
        expired = self.registry.take_expired(max_idle_seconds)
        for session in expired:
            await self._abort_quietly(session)
        if expired:
            logger.info("Reaped %d expired upload sessions", len(expired))
        return len(expired)

    async def _abort_quietly(self, session: UploadSession) -> None:
        try:
            await call_store(
                "abort",
                self.store.abort(session.object_key, session.upload_id),
                self.store_timeout,
            )
        except StoreUnavailable:
            logger.warning("Failed to abort store upload %s", session.upload_id)
