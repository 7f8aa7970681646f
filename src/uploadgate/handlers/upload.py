"""Upload request handlers for uploadgate.

Implements the multipart upload endpoints:
    - Initiate  (POST /upload/initiate)
    - Part      (POST /upload/part)
    - Complete  (POST /upload/complete)
    - Abort     (POST /upload/abort)

Handlers only translate between HTTP and the upload core: headers are parsed
into typed request records, the orchestrator does the work, and its result
records are rendered as JSON. ``UploadError`` exceptions propagate to the
app's exception handler.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from uploadgate import metrics
from uploadgate.errors import UploadError
from uploadgate.uploads.models import (
    AbortRequest,
    CompleteRequest,
    InitiateRequest,
    PartUploadRequest,
)
from uploadgate.uploads.orchestrator import UploadOrchestrator

logger = logging.getLogger(__name__)


class UploadHandler:
    """Handles the upload endpoints.

    Attributes:
        app: The parent FastAPI application.
    """

    def __init__(self, app: FastAPI) -> None:
        """Initialize the upload handler.

        Args:
            app: The FastAPI application instance.
        """
        self.app = app

    @property
    def orchestrator(self) -> UploadOrchestrator:
        """Shortcut to the upload orchestrator on app.state."""
        return self.app.state.orchestrator

    @property
    def config(self):
        """Shortcut to the UploadGateConfig on app.state."""
        return self.app.state.config

    async def initiate_upload(self, request: Request) -> JSONResponse:
        """Start a multipart upload.

        Requires ``X-File-Name`` and ``X-Total-Parts``.

        Returns:
            200 with ``{"upload_id", "key"}``.
        """
        try:
            req = InitiateRequest.from_headers(
                request.headers, max_parts=self.config.uploads.max_parts
            )
            result = await self.orchestrator.initiate(req)
        except UploadError as exc:
            metrics.record_operation("initiate", exc.code)
            raise
        metrics.record_operation("initiate", "ok")
        return JSONResponse({"upload_id": result.upload_id, "key": result.key})

    async def upload_part(self, request: Request) -> JSONResponse:
        """Stream the request body to the store as one part.

        Requires ``X-Upload-ID``, ``X-Part-Number`` and ``Content-Length``.

        Returns:
            200 with ``{"part_number", "etag"}``.
        """
        try:
            req = PartUploadRequest.from_headers(request.headers)
            result = await self.orchestrator.upload_part(req, request.stream())
        except UploadError as exc:
            metrics.record_operation("upload_part", exc.code)
            raise
        metrics.record_operation("upload_part", "ok")
        return JSONResponse({"part_number": result.part_number, "etag": result.etag})

    async def complete_upload(self, request: Request) -> JSONResponse:
        """Assemble the upload from its parts.

        Requires ``X-Upload-ID``.

        Returns:
            200 with ``{"message", "key"}``.
        """
        try:
            req = CompleteRequest.from_headers(request.headers)
            result = await self.orchestrator.complete_upload(req)
        except UploadError as exc:
            metrics.record_operation("complete", exc.code)
            raise
        metrics.record_operation("complete", "ok")
        return JSONResponse({"message": "Upload completed successfully", "key": result.key})

    async def abort_upload(self, request: Request) -> JSONResponse:
        """Abort the upload and discard its parts.

        Requires ``X-Upload-ID``.

        Returns:
            200 with ``{"message", "key"}``.
        """
        try:
            req = AbortRequest.from_headers(request.headers)
            result = await self.orchestrator.abort_upload(req)
        except UploadError as exc:
            metrics.record_operation("abort", exc.code)
            raise
        metrics.record_operation("abort", "ok")
        return JSONResponse({"message": "Upload aborted", "key": result.key})
