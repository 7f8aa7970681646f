"""Upload service error definitions for uploadgate."""


class UploadError(Exception):
    """An upload error with code, message, and HTTP status.

    Attributes:
        code: The error code string (e.g. "SessionNotFound").
        message: Human-readable error description.
        http_status: The HTTP status code to return.
        extra_fields: Additional key-value pairs to include in the JSON error body.
    """

    def __init__(
        self,
        code: str,
        message: str,
        http_status: int = 400,
        extra_fields: dict[str, str] | None = None,
    ) -> None:
        """Initialize the upload error.

        Args:
            code: Error code.
            message: Error description.
            http_status: HTTP status code (default 400).
            extra_fields: Optional extra JSON fields.
        """
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra_fields = extra_fields or {}

    def to_dict(self) -> dict[str, str]:
        """Render the error as the JSON body returned to clients."""
        body = {"error": self.message, "code": self.code}
        body.update(self.extra_fields)
        return body


# -- Taxonomy -----------------------------------------------------------------


class InvalidArgument(UploadError):
    """A required header is missing or holds a malformed value."""

    def __init__(self, message: str = "Invalid Argument") -> None:
        super().__init__(code="InvalidArgument", message=message, http_status=400)


class SessionNotFound(UploadError):
    """The upload id is unknown, expired, or already completed."""

    def __init__(self, upload_id: str = "") -> None:
        super().__init__(
            code="SessionNotFound",
            message="Upload not found",
            http_status=404,
            extra_fields={"upload_id": upload_id} if upload_id else {},
        )


class IncompletePartSet(UploadError):
    """Completion was attempted before every declared part arrived."""

    def __init__(self, received: int = 0, expected: int = 0) -> None:
        super().__init__(
            code="IncompletePartSet",
            message="Not all parts have been uploaded",
            http_status=400,
            extra_fields={"received_parts": str(received), "expected_parts": str(expected)},
        )


class StoreUnavailable(UploadError):
    """The backing object store failed or did not answer in time."""

    def __init__(self, message: str = "Object store unavailable") -> None:
        super().__init__(code="StoreUnavailable", message=message, http_status=500)


class InternalError(UploadError):
    """Unexpected failure inside the service."""

    def __init__(self, message: str = "Internal Error") -> None:
        super().__init__(code="InternalError", message=message, http_status=500)
