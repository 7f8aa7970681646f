"""Data model types for the upload core.

These dataclasses are the typed request records the HTTP layer builds from
raw headers, and the result records the orchestrator hands back. Request
records are validated once at construction, so the core never sees a
malformed value.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from uploadgate.validation import (
    MAX_PARTS,
    parse_non_negative_int,
    parse_positive_int,
    require_header,
)

# Header names are part of the wire contract with existing clients.
FILE_NAME_HEADER = "X-File-Name"
TOTAL_PARTS_HEADER = "X-Total-Parts"
UPLOAD_ID_HEADER = "X-Upload-ID"
PART_NUMBER_HEADER = "X-Part-Number"
CONTENT_LENGTH_HEADER = "Content-Length"


@dataclass(frozen=True)
class PartInfo:
    """One received part.

    Attributes:
        part_number: 1-based part number.
        etag: Opaque token returned by the store, passed back verbatim.
    """

    part_number: int
    etag: str


@dataclass(frozen=True)
class InitiateRequest:
    """Validated ``POST /upload/initiate`` request."""

    file_name: str
    total_parts: int

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], max_parts: int = MAX_PARTS
    ) -> InitiateRequest:
        """Build the record from request headers.

        Raises:
            InvalidArgument: If a header is missing or malformed.
        """
        file_name = require_header(headers.get(FILE_NAME_HEADER), FILE_NAME_HEADER)
        total_parts = parse_positive_int(
            headers.get(TOTAL_PARTS_HEADER), TOTAL_PARTS_HEADER, maximum=max_parts
        )
        return cls(file_name=file_name, total_parts=total_parts)


@dataclass(frozen=True)
class PartUploadRequest:
    """Validated ``POST /upload/part`` request (the body travels separately)."""

    upload_id: str
    part_number: int
    content_length: int

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> PartUploadRequest:
        """Build the record from request headers.

        Raises:
            InvalidArgument: If a header is missing or malformed.
        """
        upload_id = require_header(headers.get(UPLOAD_ID_HEADER), UPLOAD_ID_HEADER)
        part_number = parse_positive_int(
            headers.get(PART_NUMBER_HEADER), PART_NUMBER_HEADER, maximum=MAX_PARTS
        )
        content_length = parse_non_negative_int(
            headers.get(CONTENT_LENGTH_HEADER), CONTENT_LENGTH_HEADER
        )
        return cls(upload_id=upload_id, part_number=part_number, content_length=content_length)


@dataclass(frozen=True)
class CompleteRequest:
    """Validated ``POST /upload/complete`` request."""

    upload_id: str

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> CompleteRequest:
        return cls(upload_id=require_header(headers.get(UPLOAD_ID_HEADER), UPLOAD_ID_HEADER))


@dataclass(frozen=True)
class AbortRequest:
    """Validated ``POST /upload/abort`` request."""

    upload_id: str

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> AbortRequest:
        return cls(upload_id=require_header(headers.get(UPLOAD_ID_HEADER), UPLOAD_ID_HEADER))


@dataclass(frozen=True)
class InitiateResult:
    upload_id: str
    key: str


@dataclass(frozen=True)
class PartResult:
    part_number: int
    etag: str


@dataclass(frozen=True)
class CompleteResult:
    key: str


@dataclass(frozen=True)
class AbortResult:
    key: str
