"""Header validation helpers for uploadgate.

These functions turn raw header strings into typed values *independently* of
any HTTP handler, so they can be unit-tested in isolation and reused by the
request records in :mod:`uploadgate.uploads.models`.

Each function raises :class:`~uploadgate.errors.InvalidArgument` on invalid
input.
"""

from uploadgate.errors import InvalidArgument

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# S3 caps a multipart upload at 10,000 parts and keys at 1024 UTF-8 bytes.
MAX_PARTS = 10000
MAX_KEY_BYTES = 1024


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def require_header(value: str | None, name: str) -> str:
    """Return a header value, rejecting missing or blank values.

    Args:
        value: The raw header value (None when absent).
        name: The header name, used in the error message.

    Returns:
        The header value, unchanged.

    Raises:
        InvalidArgument: If the header is absent or empty.
    """
    if value is None or not value.strip():
        raise InvalidArgument(f"{name} header is required")
    return value


def parse_positive_int(value: str | None, name: str, maximum: int | None = None) -> int:
    """Parse a header value as an integer >= 1.

    Args:
        value: The raw header value.
        name: The header name, used in the error message.
        maximum: Optional inclusive upper bound.

    Returns:
        The parsed integer.

    Raises:
        InvalidArgument: If the value is missing, not an integer, below 1,
            or above ``maximum``.
    """
    n = _parse_int(value, name)
    if n < 1:
        raise InvalidArgument(f"Invalid {name} header: must be a positive integer")
    if maximum is not None and n > maximum:
        raise InvalidArgument(f"Invalid {name} header: must not exceed {maximum}")
    return n


def parse_non_negative_int(value: str | None, name: str) -> int:
    """Parse a header value as an integer >= 0.

    Raises:
        InvalidArgument: If the value is missing, not an integer, or negative.
    """
    n = _parse_int(value, name)
    if n < 0:
        raise InvalidArgument(f"Invalid {name} header: must not be negative")
    return n


def validate_object_key(key: str, max_bytes: int = MAX_KEY_BYTES) -> None:
    """Validate a derived object key.

    Args:
        key: The object key string.
        max_bytes: Maximum length of the key when UTF-8 encoded.

    Raises:
        InvalidArgument: If the key exceeds ``max_bytes`` when UTF-8 encoded.
    """
    if len(key.encode("utf-8")) > max_bytes:
        raise InvalidArgument("X-File-Name header is too long")


def _parse_int(value: str | None, name: str) -> int:
    if value is None or not value.strip():
        raise InvalidArgument(f"Invalid {name} header")
    # int() also accepts digit-group underscores ("1_000") and non-ASCII digits.
    digits = value.strip().lstrip("+-")
    if not (digits.isascii() and digits.isdigit()):
        raise InvalidArgument(f"Invalid {name} header")
    try:
        return int(value)
    except (ValueError, TypeError):
        raise InvalidArgument(f"Invalid {name} header")
