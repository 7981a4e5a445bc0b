"""
URL utilities for the transfer service.

Provides source URL validation, file-name derivation, job id generation
and storage key construction.
"""

import re
import secrets
import time
from urllib.parse import unquote, urlparse

from ..core.exceptions import InvalidInputError

# URL-safe alphabet, 64 symbols
ID_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_-"
ID_LENGTH = 12

STORAGE_KEY_PREFIX = "downloads"
DEFAULT_FILE_STEM = "file"
DEFAULT_EXTENSION = ".bin"

_UNSAFE_CHARS = re.compile(r"[\\/\x00-\x1f\x7f]")


def validate_source_url(url: object) -> str:
    """
    Validate a submitted source URL.

    Args:
        url: Raw value from the request

    Returns:
        The URL stripped of surrounding whitespace

    Raises:
        InvalidInputError: If the URL is missing or not an absolute http(s) URL
    """
    if url is None or not isinstance(url, str) or not url.strip():
        raise InvalidInputError("URL is required")

    candidate = url.strip()
    try:
        parsed = urlparse(candidate)
        # Raises ValueError for an out-of-range or non-numeric port
        parsed.port
    except ValueError as e:
        raise InvalidInputError("Invalid URL format", e) from e

    if parsed.scheme.lower() not in ("http", "https") or not parsed.hostname:
        raise InvalidInputError("Invalid URL format")

    return candidate


def sanitize_file_name(name: str) -> str:
    """Replace path separators and control characters so the name is a single key segment."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip()
    if not cleaned or set(cleaned) == {"."}:
        return f"{DEFAULT_FILE_STEM}{DEFAULT_EXTENSION}"
    return cleaned


def extract_file_name(url: str) -> str:
    """
    Derive a file name from the last path segment of a URL.

    The segment is percent-decoded and sanitized; names without an extension
    get ``.bin`` appended, and an empty path yields ``file.bin``.
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return f"{DEFAULT_FILE_STEM}_{int(time.time() * 1000)}{DEFAULT_EXTENSION}"

    segments = [segment for segment in parsed.path.split("/") if segment]
    last_segment = segments[-1] if segments else DEFAULT_FILE_STEM

    file_name = sanitize_file_name(unquote(last_segment))
    if "." not in file_name:
        file_name = f"{file_name}{DEFAULT_EXTENSION}"

    return file_name


def file_extension(file_name: str) -> str:
    """Lowercase extension without the dot, or an empty string."""
    if "." not in file_name:
        return ""
    return file_name.rsplit(".", 1)[-1].lower()


def generate_download_id(length: int = ID_LENGTH) -> str:
    """Generate a short random job id from the URL-safe alphabet."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def build_storage_key(download_id: str, file_name: str) -> str:
    """Object-store key joining a job record to its payload."""
    return f"{STORAGE_KEY_PREFIX}/{download_id}/{file_name}"
